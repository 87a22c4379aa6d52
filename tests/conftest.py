"""Global pytest fixtures & helpers.

Adds project root to path and provides track factories shared by the
simplification, stage detection, writer and service tests.
"""
from __future__ import annotations

import io
import os
import sys
import zipfile
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from ride_stages.models import Track, TrackPoint
from ride_stages.segmentation import StageDetectionParameters

BASE_TIME = datetime(2024, 6, 1, 8, 0, 0, tzinfo=timezone.utc)
# WGS84 meridian arc length of one degree of latitude near 51.5N.
METRES_PER_DEG_LAT = 111_250.0


# --- Factory helpers -------------------------------------------------
def make_points(
    steps_m: Sequence[float],
    *,
    start: datetime = BASE_TIME,
    interval_s: float = 10.0,
    lat0: float = 51.5,
    lon0: float = -0.1,
    eles: Optional[Sequence[Optional[float]]] = None,
) -> List[TrackPoint]:
    """Points heading due north, ``steps_m[i]`` metres apart, every ``interval_s``."""

    lat = lat0
    points = [TrackPoint.create(lat, lon0, eles[0] if eles else None, start)]
    for i, step in enumerate(steps_m, start=1):
        lat += step / METRES_PER_DEG_LAT
        ele = eles[i] if eles else None
        points.append(
            TrackPoint.create(lat, lon0, ele, start + timedelta(seconds=interval_s * i))
        )
    return points


def make_track(steps_m: Sequence[float], name: str = "ride", **kwargs) -> Track:
    return Track(name=name, points=tuple(make_points(steps_m, **kwargs)))


def three_stage_steps() -> List[float]:
    """Ride 9 x 100m, stand still for 200s, ride 10 x 100m (40 points)."""

    return [100.0] * 9 + [0.0] * 20 + [100.0] * 10


def geonames_row(
    name: str,
    lat: float,
    lon: float,
    *,
    feature_class: str = "P",
    country: str = "GB",
    asciiname: str = "",
    admin1: str = "ENG",
    admin2: str = "",
    timezone_name: str = "Europe/London",
) -> str:
    fields = [""] * 19
    fields[0] = "1"
    fields[1] = name
    fields[2] = asciiname or name
    fields[4] = str(lat)
    fields[5] = str(lon)
    fields[6] = feature_class
    fields[7] = "PPL"
    fields[8] = country
    fields[10] = admin1
    fields[11] = admin2
    fields[17] = timezone_name
    return "\t".join(fields)


def make_geonames_zip(country: str, rows: Iterable[str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(f"{country}.txt", "\n".join(rows) + "\n")
    return buffer.getvalue()


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def stage_params() -> StageDetectionParameters:
    return StageDetectionParameters(
        control_speed_kmh=2.0,
        min_control_time_s=120.0,
        control_resumption_distance_m=50.0,
    )


@pytest.fixture
def three_stage_track() -> Track:
    return make_track(three_stage_steps(), name="audax")
