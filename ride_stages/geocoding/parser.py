"""Parsing of GeoNames per-country dump files.

Each ``<CC>.zip`` holds a tab-separated ``<CC>.txt`` with 19 columns. Only
these are used:

    1 name (UTF-8)        2 asciiname           4 latitude
    5 longitude           6 feature class       8 country code
    10 admin1 code        11 admin2 code        17 timezone

Feature classes: A = country/state/region, H = stream/lake, L = parks/area,
P = city/village, R = road/railroad, S = spot/building/farm,
T = mountain/hill, U = undersea, V = forest/heath. Only P is loaded.
"""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path
from typing import Iterable, List

from ..errors import GeocodeFetchFailedError
from ..models import PlaceRecord

_LOGGER = logging.getLogger(__name__)

POPULATED_PLACE = "P"
_MIN_FIELDS = 18


def member_name(country_code: str) -> str:
    return f"{country_code.upper()}.txt"


def parse_places(lines: Iterable[str], *, source: str = "<memory>") -> List[PlaceRecord]:
    """Parse GeoNames rows into populated-place records, skipping bad rows."""

    places: List[PlaceRecord] = []
    skipped = 0
    for line in lines:
        line = line.rstrip("\r\n")
        if not line or line.startswith("#"):
            continue
        fields = line.split("\t")
        if len(fields) < _MIN_FIELDS:
            skipped += 1
            continue
        if fields[6] != POPULATED_PLACE:
            continue
        name = fields[1] or fields[2]
        country_code = fields[8]
        if not name or not country_code:
            skipped += 1
            continue
        try:
            lat = float(fields[4])
            lon = float(fields[5])
        except ValueError:
            _LOGGER.debug("Cannot parse lat/lon %r, %r in %s", fields[4], fields[5], source)
            skipped += 1
            continue
        places.append(
            PlaceRecord(
                name=name,
                lat=lat,
                lon=lon,
                country_code=country_code,
                admin1=fields[10],
                admin2=fields[11],
                timezone=fields[17],
            )
        )
    if skipped:
        _LOGGER.warning("Skipped %d malformed rows in %s", skipped, source)
    return places


def validate_dataset(path: Path, country_code: str) -> None:
    """Raise unless ``path`` is a zip holding the country's text file."""

    expected = member_name(country_code)
    try:
        with zipfile.ZipFile(path) as archive:
            if expected not in archive.namelist():
                raise GeocodeFetchFailedError(
                    country_code, f"{path.name} does not contain {expected}"
                )
    except zipfile.BadZipFile as exc:
        raise GeocodeFetchFailedError(country_code, f"{path.name} is not a zip file") from exc


def read_country_dataset(path: Path, country_code: str) -> List[PlaceRecord]:
    """Read all populated places for ``country_code`` from its cached zip."""

    expected = member_name(country_code)
    try:
        with zipfile.ZipFile(path) as archive:
            with archive.open(expected) as raw:
                text = io.TextIOWrapper(raw, encoding="utf-8", errors="replace")
                places = parse_places(text, source=f"{path.name}:{expected}")
    except KeyError as exc:
        raise GeocodeFetchFailedError(
            country_code, f"{path.name} does not contain {expected}"
        ) from exc
    except (zipfile.BadZipFile, OSError) as exc:
        raise GeocodeFetchFailedError(country_code, f"cannot read {path.name}: {exc}") from exc
    _LOGGER.info("Loaded %d places from %s", len(places), expected)
    return places


__all__ = ["member_name", "parse_places", "read_country_dataset", "validate_dataset"]
