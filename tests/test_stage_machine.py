import pytest

from ride_stages.errors import InvalidParametersError
from ride_stages.models import StageType
from ride_stages.segmentation.machine import (
    Boundary,
    Control,
    Moving,
    StageDetectionParameters,
    TentativeControl,
    TrackContext,
    advance,
    finish,
    run,
)

from conftest import BASE_TIME, make_points, three_stage_steps


def test_parameters_validation():
    with pytest.raises(InvalidParametersError):
        StageDetectionParameters(control_speed_kmh=0.0)
    with pytest.raises(InvalidParametersError):
        StageDetectionParameters(min_control_time_s=-1.0)
    with pytest.raises(InvalidParametersError):
        StageDetectionParameters(control_resumption_distance_m=0.0)
    params = StageDetectionParameters()
    assert params.control_speed_kmh == 2.0
    assert params.min_control_time_s == 120.0
    assert params.control_resumption_distance_m == 100.0


def test_track_context_speeds():
    ctx = TrackContext(make_points([100.0, 0.0]))
    assert ctx.speed_kmh(0) == 0.0
    assert ctx.speed_kmh(1) == pytest.approx(36.0, rel=1e-2)
    assert ctx.speed_kmh(2) == 0.0
    assert ctx.elapsed_s(0, 2) == 20.0


def test_track_context_zero_time_step():
    ctx = TrackContext(make_points([100.0, 0.0], interval_s=0.0))
    assert ctx.speed_kmh(1) == float("inf")
    assert ctx.speed_kmh(2) == 0.0


def test_moving_stays_moving_when_fast(stage_params):
    ctx = TrackContext(make_points([100.0, 100.0]))
    state = Moving(stage_start=0)
    for index in range(3):
        transition = advance(state, index, ctx, stage_params)
        assert transition.state == state
        assert transition.closed == ()


def test_slow_point_opens_candidate_anchored_on_previous_point(stage_params):
    points = make_points([100.0, 100.0, 0.0])
    ctx = TrackContext(points)
    transition = advance(Moving(stage_start=0), 3, ctx, stage_params)
    assert transition.state == TentativeControl(stage_start=0, anchor=2, since=points[2].time)
    assert transition.closed == ()


def test_candidate_is_discarded_when_rider_moves_away(stage_params):
    points = make_points([100.0, 0.0, 100.0])
    ctx = TrackContext(points)
    candidate = TentativeControl(stage_start=0, anchor=1, since=points[1].time)
    transition = advance(candidate, 3, ctx, stage_params)
    assert transition.state == Moving(stage_start=0)
    assert transition.closed == ()


def test_candidate_commits_after_min_control_time(stage_params):
    points = make_points([100.0] * 3 + [0.0] * 12)
    ctx = TrackContext(points)
    candidate = TentativeControl(stage_start=0, anchor=3, since=points[3].time)
    # 11 points of 10s = 110s, not yet a control.
    assert advance(candidate, 14, ctx, stage_params).state == candidate
    transition = advance(candidate, 15, ctx, stage_params)
    assert transition.state == Control(stage_start=4, anchor=3)
    assert transition.closed == (Boundary(StageType.MOVING, 0, 3),)


def test_commit_at_track_start_closes_nothing(stage_params):
    points = make_points([0.0] * 13)
    ctx = TrackContext(points)
    candidate = TentativeControl(stage_start=0, anchor=0, since=points[0].time)
    transition = advance(candidate, 12, ctx, stage_params)
    assert transition.state == Control(stage_start=0, anchor=0)
    assert transition.closed == ()


def test_control_closes_on_resumption_point(stage_params):
    points = make_points([0.0, 0.0, 30.0, 30.0])
    ctx = TrackContext(points)
    control = Control(stage_start=0, anchor=0)
    # 30m from the anchor: still stopped.
    assert advance(control, 3, ctx, stage_params).state == control
    transition = advance(control, 4, ctx, stage_params)
    assert transition.state == Moving(stage_start=5)
    assert transition.closed == (Boundary(StageType.CONTROL, 0, 4),)


def test_finish_treats_pending_candidate_as_moving():
    candidate = TentativeControl(stage_start=4, anchor=8, since=BASE_TIME)
    assert finish(candidate, 10) == (Boundary(StageType.MOVING, 4, 10),)
    assert finish(Control(stage_start=4, anchor=4), 10) == (
        Boundary(StageType.CONTROL, 4, 10),
    )
    assert finish(Moving(stage_start=11), 10) == ()


def test_run_three_stages(stage_params):
    ctx = TrackContext(make_points(three_stage_steps()))
    assert run(ctx, stage_params) == [
        Boundary(StageType.MOVING, 0, 9),
        Boundary(StageType.CONTROL, 10, 30),
        Boundary(StageType.MOVING, 31, 39),
    ]


def test_advance_rejects_unknown_state(stage_params):
    ctx = TrackContext(make_points([1.0]))
    with pytest.raises(TypeError):
        advance(object(), 0, ctx, stage_params)
