"""Geographic distance and track simplification."""

from .distance import (
    geodesic_m,
    geodesic_steps_m,
    haversine_m,
    haversine_many_m,
    segment_distance_many_m,
)
from .simplify import simplify_indices, simplify_points, simplify_track

__all__ = [
    "geodesic_m",
    "geodesic_steps_m",
    "haversine_m",
    "haversine_many_m",
    "segment_distance_many_m",
    "simplify_indices",
    "simplify_points",
    "simplify_track",
]
