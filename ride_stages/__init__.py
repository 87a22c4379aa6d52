"""GPS ride simplification and stage analysis package."""

from .main import main
from .models import Stage, StageList, StageType, Track, TrackPoint
from .errors import RideStagesError, GeocodeFetchFailedError

__all__ = [
    "main",
    "Stage",
    "StageList",
    "StageType",
    "Track",
    "TrackPoint",
    "RideStagesError",
    "GeocodeFetchFailedError",
]
