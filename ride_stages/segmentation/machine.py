"""The Moving / Control state machine behind stage detection.

Every transition is a pure function of the current state and the next point,
see :func:`advance`. The machine holds at most one pending Control candidate
(``TentativeControl``) which is either committed, once the rider has stayed
near the candidate's anchor for ``min_control_time_s``, or discarded when the
rider moves ``control_resumption_distance_m`` away first. Discarding rejects
transient slow-downs such as traffic lights.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import math
from typing import List, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from ..config import (
    DEFAULT_CONTROL_RESUMPTION_DISTANCE_M,
    DEFAULT_CONTROL_SPEED_KMH,
    DEFAULT_MIN_CONTROL_TIME_MINUTES,
)
from ..errors import InvalidParametersError
from ..geometry.distance import geodesic_m, geodesic_steps_m
from ..models import StageType, TrackPoint, speed_kmh


@dataclass(frozen=True, slots=True)
class StageDetectionParameters:
    """Parameters controlling stage detection."""

    # You are considered stopped if your speed drops below this.
    control_speed_kmh: float = DEFAULT_CONTROL_SPEED_KMH
    # A stop shorter than this is not a Control (traffic lights etc).
    min_control_time_s: float = DEFAULT_MIN_CONTROL_TIME_MINUTES * 60.0
    # You are moving again once you are this far from where you stopped.
    control_resumption_distance_m: float = DEFAULT_CONTROL_RESUMPTION_DISTANCE_M

    def __post_init__(self) -> None:
        if not self.control_speed_kmh > 0:
            raise InvalidParametersError(
                f"control_speed_kmh must be > 0, got {self.control_speed_kmh}"
            )
        if not self.min_control_time_s >= 0:
            raise InvalidParametersError(
                f"min_control_time_s must be >= 0, got {self.min_control_time_s}"
            )
        if not self.control_resumption_distance_m > 0:
            raise InvalidParametersError(
                "control_resumption_distance_m must be > 0, got "
                f"{self.control_resumption_distance_m}"
            )


@dataclass(frozen=True, slots=True)
class Moving:
    stage_start: int


@dataclass(frozen=True, slots=True)
class TentativeControl:
    """Still Moving, but slow since ``anchor``; may become a Control."""

    stage_start: int
    anchor: int
    since: datetime


@dataclass(frozen=True, slots=True)
class Control:
    stage_start: int
    anchor: int


State = Union[Moving, TentativeControl, Control]


@dataclass(frozen=True, slots=True)
class Boundary:
    """A closed stage: an inclusive index range and its type."""

    stage_type: StageType
    start_index: int
    end_index: int


@dataclass(frozen=True, slots=True)
class Transition:
    state: State
    closed: Tuple[Boundary, ...] = ()


class TrackContext:
    """Per-track lookups shared by all transitions (points and step lengths)."""

    def __init__(self, points: Sequence[TrackPoint]) -> None:
        self.points = points
        self.steps_m: NDArray[np.float64] = geodesic_steps_m(points)

    def __len__(self) -> int:
        return len(self.points)

    def elapsed_s(self, from_idx: int, to_idx: int) -> float:
        return (self.points[to_idx].time - self.points[from_idx].time).total_seconds()

    def speed_kmh(self, index: int) -> float:
        """Instantaneous speed arriving at ``index``. Point 0 has no speed."""

        if index <= 0:
            return 0.0
        metres = float(self.steps_m[index])
        seconds = self.elapsed_s(index - 1, index)
        if seconds <= 0:
            return 0.0 if metres == 0.0 else math.inf
        return speed_kmh(metres, seconds)

    def displacement_m(self, from_idx: int, to_idx: int) -> float:
        """Straight-line distance, as the crow flies."""

        return geodesic_m(self.points[from_idx], self.points[to_idx])


def advance(
    state: State,
    index: int,
    ctx: TrackContext,
    params: StageDetectionParameters,
) -> Transition:
    """Feed point ``index`` to the machine and return the new state."""

    if isinstance(state, Moving):
        return _from_moving(state, index, ctx, params)
    if isinstance(state, TentativeControl):
        return _from_tentative(state, index, ctx, params)
    if isinstance(state, Control):
        return _from_control(state, index, ctx, params)
    raise TypeError(f"Unknown stage state {state!r}")


def finish(state: State, last_index: int) -> Tuple[Boundary, ...]:
    """Close whatever stage is open at the end of the track.

    A pending candidate is dropped: the stage it would have split stays Moving.
    """

    if state.stage_start > last_index:
        return ()
    stage_type = StageType.CONTROL if isinstance(state, Control) else StageType.MOVING
    return (Boundary(stage_type, state.stage_start, last_index),)


def run(ctx: TrackContext, params: StageDetectionParameters) -> List[Boundary]:
    """Drive the machine over every point and return the closed stages."""

    boundaries: List[Boundary] = []
    state: State = Moving(stage_start=0)
    for index in range(len(ctx)):
        transition = advance(state, index, ctx, params)
        boundaries.extend(transition.closed)
        state = transition.state
    boundaries.extend(finish(state, len(ctx) - 1))
    return boundaries


def _from_moving(
    state: Moving, index: int, ctx: TrackContext, params: StageDetectionParameters
) -> Transition:
    if index == 0 or ctx.speed_kmh(index) >= params.control_speed_kmh:
        return Transition(state)
    # The stop began at the point we arrived at, not the first slow reading.
    anchor = max(index - 1, state.stage_start)
    candidate = TentativeControl(
        stage_start=state.stage_start,
        anchor=anchor,
        since=ctx.points[anchor].time,
    )
    if ctx.elapsed_s(anchor, index) >= params.min_control_time_s:
        return _commit(candidate, index, ctx, params)
    return Transition(candidate)


def _from_tentative(
    state: TentativeControl,
    index: int,
    ctx: TrackContext,
    params: StageDetectionParameters,
) -> Transition:
    elapsed = (ctx.points[index].time - state.since).total_seconds()
    if elapsed >= params.min_control_time_s:
        return _commit(state, index, ctx, params)
    if ctx.displacement_m(state.anchor, index) > params.control_resumption_distance_m:
        return _from_moving(Moving(stage_start=state.stage_start), index, ctx, params)
    return Transition(state)


def _commit(
    state: TentativeControl,
    index: int,
    ctx: TrackContext,
    params: StageDetectionParameters,
) -> Transition:
    # The anchor is the last point of the ride in; the stop itself starts
    # after it. A stage that is slow from its first point is all Control.
    closed: Tuple[Boundary, ...] = ()
    control_start = state.stage_start
    if state.anchor > state.stage_start:
        closed = (Boundary(StageType.MOVING, state.stage_start, state.anchor),)
        control_start = state.anchor + 1
    control = Control(stage_start=control_start, anchor=state.anchor)
    after = _from_control(control, index, ctx, params)
    return Transition(after.state, closed + after.closed)


def _from_control(
    state: Control, index: int, ctx: TrackContext, params: StageDetectionParameters
) -> Transition:
    if index <= state.anchor:
        return Transition(state)
    if ctx.displacement_m(state.anchor, index) > params.control_resumption_distance_m:
        return Transition(
            Moving(stage_start=index + 1),
            (Boundary(StageType.CONTROL, state.stage_start, index),),
        )
    return Transition(state)


__all__ = [
    "StageDetectionParameters",
    "Moving",
    "TentativeControl",
    "Control",
    "State",
    "Boundary",
    "Transition",
    "TrackContext",
    "advance",
    "finish",
    "run",
]
