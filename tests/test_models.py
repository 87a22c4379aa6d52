from datetime import datetime, timedelta, timezone

import pytest

from ride_stages.errors import EmptyTrackError, TrackOrderError
from ride_stages.models import Stage, StageList, StageType, Track, TrackPoint, speed_kmh

from conftest import BASE_TIME, make_points


def _stage(stage_type, start_idx, end_idx, start_time, end_time, distance_m, **kwargs):
    start = TrackPoint.create(51.0, 0.0, None, start_time)
    end = TrackPoint.create(51.0, 0.0, None, end_time)
    fields = dict(
        stage_type=stage_type,
        start_index=start_idx,
        end_index=end_idx,
        start=start,
        end=end,
        start_time=start_time,
        distance_m=distance_m,
        running_distance_m=distance_m,
        ascent_m=None,
        descent_m=None,
        min_ele=None,
        max_ele=None,
        max_speed_kmh=None,
        track_start_time=start_time,
        running_ascent_m=None,
        running_descent_m=None,
    )
    fields.update(kwargs)
    return Stage(**fields)


def test_trackpoint_create_rounds_and_converts_to_utc():
    local = datetime(2024, 6, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
    point = TrackPoint.create(51.123456789, -0.987654321, 12.345, local)
    assert point.lat == 51.123457
    assert point.lon == -0.987654
    assert point.ele == 12.3
    assert point.time == datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
    assert point.time.utcoffset() == timedelta(0)


def test_trackpoint_naive_time_is_treated_as_utc():
    point = TrackPoint.create(0.0, 0.0, None, datetime(2024, 1, 1, 12, 0))
    assert point.time.tzinfo is not None
    assert point.ele is None


def test_track_rejects_empty_points():
    with pytest.raises(EmptyTrackError):
        Track(name="empty", points=())


def test_track_rejects_time_going_backwards():
    points = make_points([10.0, 10.0])
    reordered = (points[0], points[2], points[1])
    with pytest.raises(TrackOrderError):
        Track(name="bad", points=reordered)


def test_track_allows_equal_timestamps():
    p = TrackPoint.create(51.0, 0.0, None, BASE_TIME)
    q = TrackPoint.create(51.001, 0.0, None, BASE_TIME)
    track = Track(name="dup", points=(p, q))
    assert len(track) == 2
    assert track.start_time == track.end_time


def test_stage_description_for_moving_and_control():
    t0 = BASE_TIME
    moving = _stage(
        StageType.MOVING, 0, 5, t0, t0 + timedelta(minutes=5), 1000.0,
        start_place="Ware", end_place="Hertford",
    )
    assert moving.description == "Ware to Hertford"
    same = _stage(
        StageType.MOVING, 0, 5, t0, t0 + timedelta(minutes=5), 1000.0,
        start_place="Ware", end_place="Ware",
    )
    assert same.description == "Ware"
    control = _stage(
        StageType.CONTROL, 6, 9, t0, t0 + timedelta(minutes=5), 10.0, start_place="Ware"
    )
    assert control.description == "Ware"
    unnamed = _stage(StageType.MOVING, 0, 5, t0, t0 + timedelta(minutes=5), 1000.0)
    assert unnamed.description is None


def test_stage_average_speed_handles_zero_duration():
    stage = _stage(StageType.MOVING, 0, 0, BASE_TIME, BASE_TIME, 0.0)
    assert stage.average_speed_kmh is None
    assert stage.point_count == 1


def test_stage_running_metrics_and_climb_rates():
    t0 = BASE_TIME
    stage = _stage(
        StageType.MOVING, 10, 19, t0 + timedelta(hours=1), t0 + timedelta(hours=2), 20_000.0,
        running_distance_m=50_000.0, track_start_time=t0, ascent_m=300.0, descent_m=None,
    )
    assert stage.running_duration == timedelta(hours=2)
    assert stage.running_average_speed_kmh == pytest.approx(25.0)
    assert stage.average_speed_kmh == pytest.approx(20.0)
    assert stage.ascent_per_km == pytest.approx(15.0)
    assert stage.descent_per_km is None

    standing = _stage(StageType.CONTROL, 0, 3, t0, t0 + timedelta(minutes=5), 0.0, ascent_m=0.0)
    assert standing.ascent_per_km is None


def test_stage_list_totals():
    t0 = BASE_TIME
    t1 = t0 + timedelta(hours=1)
    t2 = t1 + timedelta(minutes=30)
    t3 = t2 + timedelta(hours=1, minutes=30)
    stages = StageList(
        stages=(
            _stage(StageType.MOVING, 0, 9, t0, t1, 25_000.0, ascent_m=100.0, descent_m=50.0),
            _stage(StageType.CONTROL, 10, 19, t1, t2, 100.0, ascent_m=0.0, descent_m=0.0),
            _stage(StageType.MOVING, 20, 29, t2, t3, 34_900.0, ascent_m=20.0, descent_m=70.0),
        )
    )
    assert stages.types == [StageType.MOVING, StageType.CONTROL, StageType.MOVING]
    assert stages.duration == timedelta(hours=3)
    assert stages.total_control_time == timedelta(minutes=30)
    assert stages.total_moving_time == timedelta(hours=2, minutes=30)
    assert stages.distance_m == pytest.approx(60_000.0)
    assert stages.ascent_m == pytest.approx(120.0)
    assert stages.descent_m == pytest.approx(120.0)
    assert stages.control_percent == pytest.approx(100.0 / 6.0)
    assert stages.moving_percent + stages.control_percent == pytest.approx(100.0)
    assert stages.average_moving_speed_kmh == pytest.approx(24.0)
    assert stages.average_overall_speed_kmh == pytest.approx(20.0)


def test_stage_list_ascent_unknown_when_any_stage_lacks_elevation():
    t0 = BASE_TIME
    t1 = t0 + timedelta(minutes=10)
    stages = StageList(
        stages=(
            _stage(StageType.MOVING, 0, 1, t0, t1, 10.0, ascent_m=5.0, descent_m=1.0),
            _stage(StageType.MOVING, 2, 3, t1, t1, 10.0),
        )
    )
    assert stages.ascent_m is None
    assert stages.descent_m is None


def test_speed_kmh():
    assert speed_kmh(1000.0, 3600.0) == pytest.approx(1.0)
    assert speed_kmh(100.0, 10.0) == pytest.approx(36.0)
