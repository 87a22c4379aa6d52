"""Ramer-Douglas-Peucker simplification over geographic coordinates.

Measurements on a 200km ride recorded at one point per second (31k points)
give a feel for the tolerance:

    Metres  Kept points   Quality
    1       ~13%          near-perfect map to the road
    5       ~4.7%         stays within the road lines
    10      ~3.1%         good enough for DIY submission
    20      ~2.0%         within a few metres of the road
    50      ~1.2%         cuts off a lot of corners

Distances are great-circle cross-track distances on a sphere, so the
tolerance means metres at any latitude. Polar regions, where the spherical
approximation and chord geometry break down, are not supported.
"""

from __future__ import annotations

import logging
import math
from typing import List, Sequence

import numpy as np

from ..errors import InvalidToleranceError
from ..models import Track, TrackPoint
from .distance import segment_distance_many_m

_LOGGER = logging.getLogger(__name__)


def _validate_tolerance(tolerance_m: float) -> float:
    try:
        value = float(tolerance_m)
    except (TypeError, ValueError) as exc:
        raise InvalidToleranceError(f"Tolerance must be a number, got {tolerance_m!r}") from exc
    if math.isnan(value) or value <= 0:
        raise InvalidToleranceError(f"Tolerance must be greater than zero, got {tolerance_m!r}")
    return value


def simplify_indices(points: Sequence[TrackPoint], tolerance_m: float) -> List[int]:
    """Return the sorted indices of the points kept by RDP.

    The first and last indices are always kept. When several interior points
    share the maximum distance from a chord, the first one in scan order is
    the one kept.
    """

    tolerance = _validate_tolerance(tolerance_m)
    count = len(points)
    if count < 3:
        return list(range(count))

    lats = np.fromiter((p.lat for p in points), dtype=float, count=count)
    lons = np.fromiter((p.lon for p in points), dtype=float, count=count)

    keep = np.zeros(count, dtype=bool)
    keep[0] = keep[-1] = True

    # Explicit stack instead of recursion: a 30k point track can nest deeply.
    stack = [(0, count - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        interior = slice(first + 1, last)
        distances = segment_distance_many_m(
            (lats[first], lons[first]),
            (lats[last], lons[last]),
            lats[interior],
            lons[interior],
        )
        offset = int(np.argmax(distances))
        if distances[offset] <= tolerance:
            continue
        split = first + 1 + offset
        keep[split] = True
        stack.append((split, last))
        stack.append((first, split))

    return [int(i) for i in np.flatnonzero(keep)]


def simplify_points(
    points: Sequence[TrackPoint], tolerance_m: float
) -> List[TrackPoint]:
    """Return the subsequence of ``points`` kept by RDP."""

    return [points[i] for i in simplify_indices(points, tolerance_m)]


def simplify_track(track: Track, tolerance_m: float) -> Track:
    """Simplify a track so no dropped point is further than ``tolerance_m`` from it."""

    kept = simplify_points(track.points, tolerance_m)
    _LOGGER.info(
        "Using Ramer-Douglas-Peucker with a precision of %sm reduced the "
        "trackpoint count from %d to %d for %s",
        tolerance_m,
        len(track),
        len(kept),
        track.name,
    )
    return track.with_points(kept)


__all__ = ["simplify_indices", "simplify_points", "simplify_track"]
