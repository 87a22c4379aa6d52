"""Stage detection: split a track into Moving and Control stages.

Invariants of the result: the first stage starts at point 0, the last stage
ends at the last point, and each stage starts on the point after the previous
one ended. In other words there are no gaps and no point is in two stages.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

import numpy as np

from ..models import Stage, StageList, StageType, Track, TrackPoint
from .machine import Boundary, StageDetectionParameters, TrackContext, run

_LOGGER = logging.getLogger(__name__)


class PlaceNamer(Protocol):
    """Anything that can turn a coordinate into a place name."""

    def place_name(self, lat: float, lon: float) -> Optional[str]:
        ...


def segment_boundaries(
    track: Track, params: StageDetectionParameters
) -> List[Boundary]:
    """Return the stage index ranges for ``track`` without building stages."""

    return run(TrackContext(track.points), params)


def detect_stages(
    track: Track,
    params: StageDetectionParameters | None = None,
    namer: PlaceNamer | None = None,
) -> StageList:
    """Detect the stages in ``track`` and return them with ride metrics.

    ``namer`` is optional: without one, or when it finds nothing, the stages
    simply have no place names.
    """

    params = params or StageDetectionParameters()
    _LOGGER.info(
        "Detecting stages in %s using control_speed_kmh=%s, min_control_time_s=%s, "
        "control_resumption_distance_m=%s",
        track.name,
        params.control_speed_kmh,
        params.min_control_time_s,
        params.control_resumption_distance_m,
    )
    ctx = TrackContext(track.points)
    boundaries = run(ctx, params)
    _check_coverage(boundaries, len(track))

    cumulative = np.cumsum(ctx.steps_m)
    stages: List[Stage] = []
    for boundary in boundaries:
        previous = stages[-1] if stages else None
        stage = _build_stage(boundary, ctx, cumulative, namer, previous)
        _LOGGER.debug(
            "Adding %s stage from point %d to %d, length=%.3fkm, duration=%s",
            stage.stage_type,
            stage.start_index,
            stage.end_index,
            stage.distance_km,
            stage.duration,
        )
        stages.append(stage)

    _LOGGER.info("Detection finished, found %d stages in %s", len(stages), track.name)
    return StageList(stages=tuple(stages))


def _check_coverage(boundaries: Sequence[Boundary], point_count: int) -> None:
    if not boundaries:
        raise AssertionError("Stage detection produced no stages")
    if boundaries[0].start_index != 0:
        raise AssertionError("Stages should always start with the first point")
    if boundaries[-1].end_index != point_count - 1:
        raise AssertionError("Stages should always end with the last point")
    for previous, current in zip(boundaries, boundaries[1:]):
        if previous.end_index + 1 != current.start_index:
            raise AssertionError(
                f"Stage starting at {current.start_index} does not follow "
                f"stage ending at {previous.end_index}"
            )
    for boundary in boundaries:
        if boundary.end_index < boundary.start_index:
            raise AssertionError("A stage must contain at least 1 point")


def _build_stage(
    boundary: Boundary,
    ctx: TrackContext,
    cumulative: np.ndarray,
    namer: PlaceNamer | None,
    previous: Stage | None = None,
) -> Stage:
    start_idx = boundary.start_index
    end_idx = boundary.end_index
    points = ctx.points
    # A stage owns the step arriving at its first point.
    lead_idx = max(start_idx - 1, 0)

    distance = float(cumulative[end_idx] - cumulative[start_idx] + ctx.steps_m[start_idx])
    ascent, descent = _ascent_descent(points, lead_idx, end_idx)
    min_ele, max_ele = _min_max_elevation(points, start_idx, end_idx)
    running_ascent, running_descent = ascent, descent
    if previous is not None:
        running_ascent = _add_climb(previous.running_ascent_m, ascent)
        running_descent = _add_climb(previous.running_descent_m, descent)

    start_place = _safe_place_name(namer, points[start_idx])
    end_place = None
    if boundary.stage_type is StageType.MOVING:
        end_place = _safe_place_name(namer, points[end_idx])

    return Stage(
        stage_type=boundary.stage_type,
        start_index=start_idx,
        end_index=end_idx,
        start=points[start_idx],
        end=points[end_idx],
        start_time=points[lead_idx].time,
        distance_m=distance,
        running_distance_m=float(cumulative[end_idx]),
        ascent_m=ascent,
        descent_m=descent,
        min_ele=min_ele,
        max_ele=max_ele,
        max_speed_kmh=_max_speed(ctx, start_idx, end_idx),
        track_start_time=points[0].time,
        running_ascent_m=running_ascent,
        running_descent_m=running_descent,
        start_place=start_place,
        end_place=end_place,
    )


def _ascent_descent(
    points: Sequence[TrackPoint], first: int, last: int
) -> tuple[Optional[float], Optional[float]]:
    """Total climb and descent over the points ``first..last``."""

    elevations = [points[i].ele for i in range(first, last + 1)]
    # Any missing elevation invalidates the calculation.
    if any(e is None for e in elevations):
        return None, None
    deltas = np.diff(np.asarray(elevations, dtype=float))
    ascent = float(deltas[deltas > 0].sum())
    descent = float(-deltas[deltas < 0].sum())
    return round(ascent, 1), round(descent, 1)


def _add_climb(total: Optional[float], climb: Optional[float]) -> Optional[float]:
    # Unknown anywhere so far means unknown from here on.
    if total is None or climb is None:
        return None
    return round(total + climb, 1)


def _min_max_elevation(
    points: Sequence[TrackPoint], first: int, last: int
) -> tuple[Optional[float], Optional[float]]:
    elevations = [points[i].ele for i in range(first, last + 1)]
    if any(e is None for e in elevations):
        return None, None
    values = [float(e) for e in elevations if e is not None]
    return min(values), max(values)


def _max_speed(ctx: TrackContext, first: int, last: int) -> Optional[float]:
    speeds = [
        ctx.speed_kmh(i)
        for i in range(max(first, 1), last + 1)
        if ctx.elapsed_s(i - 1, i) > 0
    ]
    if not speeds:
        return None
    return max(speeds)


def _safe_place_name(namer: PlaceNamer | None, point: TrackPoint) -> Optional[str]:
    """Best-effort reverse geocode. A failure means no name, never an error."""

    if namer is None:
        return None
    try:
        return namer.place_name(point.lat, point.lon)
    except Exception as exc:
        _LOGGER.warning(
            "Reverse geocode failed for (%s, %s): %s", point.lat, point.lon, exc
        )
        return None


__all__ = ["PlaceNamer", "detect_stages", "segment_boundaries"]
