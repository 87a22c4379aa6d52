"""Distance helpers over geographic coordinates.

Two earth models are used:

* A sphere of mean radius for the great-circle maths in the simplifier and
  the spatial index (cheap, vectorised, and symmetric with cross-track
  distance).
* The WGS84 ellipsoid via :class:`pyproj.Geod` for ride distances, speeds and
  stop displacement, where accuracy is reported to the user.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from numpy.typing import NDArray
from pyproj import Geod

from ..models import TrackPoint

EARTH_RADIUS_M = 6_371_008.8  # mean Earth radius in metres

FloatArray = NDArray[np.float64]

_GEOD = Geod(ellps="WGS84")


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two lat/lon points."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def haversine_many_m(
    lat: float, lon: float, lats: FloatArray, lons: FloatArray
) -> FloatArray:
    """Vectorised great-circle distance from one point to many."""

    phi1 = math.radians(lat)
    phi2 = np.radians(lats)
    d_phi = phi2 - phi1
    d_lambda = np.radians(lons - lon)
    a = np.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * np.cos(phi2) * np.sin(
        d_lambda / 2.0
    ) ** 2
    return 2.0 * EARTH_RADIUS_M * np.arcsin(np.minimum(1.0, np.sqrt(a)))


def _initial_bearing(
    lat1: float, lon1: float, lats: FloatArray, lons: FloatArray
) -> FloatArray:
    phi1 = math.radians(lat1)
    phi2 = np.radians(lats)
    d_lambda = np.radians(lons - lon1)
    y = np.sin(d_lambda) * np.cos(phi2)
    x = math.cos(phi1) * np.sin(phi2) - math.sin(phi1) * np.cos(phi2) * np.cos(
        d_lambda
    )
    return np.arctan2(y, x)


def segment_distance_many_m(
    start: Sequence[float],
    end: Sequence[float],
    lats: FloatArray,
    lons: FloatArray,
) -> FloatArray:
    """Distance from many points to the great-circle chord ``start``-``end``.

    Uses the cross-track distance when the point projects onto the chord and
    the distance to the nearer endpoint otherwise. A degenerate chord (both
    ends coincident) degrades to plain distance from ``start``.
    """

    lat1, lon1 = float(start[0]), float(start[1])
    lat2, lon2 = float(end[0]), float(end[1])
    lats = np.asarray(lats, dtype=float)
    lons = np.asarray(lons, dtype=float)

    d13 = haversine_many_m(lat1, lon1, lats, lons) / EARTH_RADIUS_M
    d12 = haversine_m(lat1, lon1, lat2, lon2) / EARTH_RADIUS_M
    if d12 == 0.0:
        return d13 * EARTH_RADIUS_M

    theta12 = _initial_bearing(lat1, lon1, np.asarray([lat2]), np.asarray([lon2]))[0]
    theta13 = _initial_bearing(lat1, lon1, lats, lons)
    dtheta = theta13 - theta12

    dxt = np.arcsin(np.clip(np.sin(d13) * np.sin(dtheta), -1.0, 1.0))
    cos_dxt = np.cos(dxt)
    ratio = np.divide(
        np.cos(d13), cos_dxt, out=np.ones_like(d13), where=cos_dxt != 0.0
    )
    dat = np.arccos(np.clip(ratio, -1.0, 1.0)) * np.sign(np.cos(dtheta))

    result = np.abs(dxt) * EARTH_RADIUS_M
    before = dat < 0.0
    after = dat > d12
    if before.any():
        result[before] = d13[before] * EARTH_RADIUS_M
    if after.any():
        result[after] = haversine_many_m(lat2, lon2, lats[after], lons[after])
    return result


def geodesic_m(p1: TrackPoint, p2: TrackPoint) -> float:
    """WGS84 geodesic distance between two track points in metres."""

    _, _, dist = _GEOD.inv(p1.lon, p1.lat, p2.lon, p2.lat)
    return float(dist)


def geodesic_steps_m(points: Sequence[TrackPoint]) -> FloatArray:
    """Distances between consecutive points; element 0 is always zero."""

    count = len(points)
    steps = np.zeros(count, dtype=float)
    if count < 2:
        return steps
    lats = np.fromiter((p.lat for p in points), dtype=float, count=count)
    lons = np.fromiter((p.lon for p in points), dtype=float, count=count)
    _, _, dist = _GEOD.inv(lons[:-1], lats[:-1], lons[1:], lats[1:])
    steps[1:] = np.asarray(dist, dtype=float)
    return steps
