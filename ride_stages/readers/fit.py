"""FIT activity decoding."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import List, Optional

import fitdecode
from fitdecode.records import FitDataMessage

from ..errors import EmptyTrackError, TrackReadError
from ..models import Track, TrackPoint

_LOGGER = logging.getLogger(__name__)

# Positions are stored as 32-bit semicircles.
_SEMICIRCLES_TO_DEGREES = 180.0 / 2**31


def semicircles_to_degrees(value: int) -> float:
    return value * _SEMICIRCLES_TO_DEGREES


def _record_point(frame: FitDataMessage) -> Optional[TrackPoint]:
    lat_sc = frame.get_value("position_lat", fallback=None)
    lon_sc = frame.get_value("position_long", fallback=None)
    timestamp = frame.get_value("timestamp", fallback=None)
    if lat_sc is None or lon_sc is None or not isinstance(timestamp, datetime):
        return None
    altitude = frame.get_value("enhanced_altitude", fallback=None)
    if altitude is None:
        altitude = frame.get_value("altitude", fallback=None)
    return TrackPoint.create(
        semicircles_to_degrees(lat_sc),
        semicircles_to_degrees(lon_sc),
        altitude,
        timestamp,
    )


def read_fit(path: Path | str) -> Track:
    """Read the ``record`` messages of a FIT file as a track.

    Records without a position or a timestamp (common while a device is
    acquiring satellites) are skipped.
    """

    path = Path(path)
    points: List[TrackPoint] = []
    skipped = 0
    try:
        with fitdecode.FitReader(str(path)) as fit:
            for frame in fit:
                if not isinstance(frame, FitDataMessage) or frame.name != "record":
                    continue
                point = _record_point(frame)
                if point is None:
                    skipped += 1
                    continue
                points.append(point)
    except fitdecode.FitError as exc:
        raise TrackReadError(f"{path}: malformed FIT file ({exc})") from exc
    except OSError as exc:
        raise TrackReadError(f"{path}: cannot read file ({exc})") from exc

    if skipped:
        _LOGGER.debug("Skipped %d FIT records without position or time in %s", skipped, path)
    if not points:
        raise EmptyTrackError(f"{path}: no usable records")
    _LOGGER.info("Read %d records from %s", len(points), path)
    return Track(name=path.stem, points=tuple(points), source_files=(path,))


__all__ = ["read_fit", "semicircles_to_degrees"]
