"""Stage segmentation of rides into Moving and Control stages."""

from .detector import PlaceNamer, detect_stages, segment_boundaries
from .machine import (
    Boundary,
    Control,
    Moving,
    StageDetectionParameters,
    TentativeControl,
    TrackContext,
    Transition,
    advance,
    finish,
)

__all__ = [
    "Boundary",
    "Control",
    "Moving",
    "PlaceNamer",
    "StageDetectionParameters",
    "TentativeControl",
    "TrackContext",
    "Transition",
    "advance",
    "detect_stages",
    "finish",
    "segment_boundaries",
]
