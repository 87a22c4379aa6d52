import math
from datetime import timedelta

import numpy as np
import pytest

from ride_stages.errors import InvalidToleranceError
from ride_stages.geometry.distance import segment_distance_many_m
from ride_stages.geometry.simplify import simplify_indices, simplify_points, simplify_track
from ride_stages.models import Track, TrackPoint

from conftest import BASE_TIME, make_points, make_track


def _points(coords):
    return [
        TrackPoint.create(lat, lon, None, BASE_TIME + timedelta(seconds=i))
        for i, (lat, lon) in enumerate(coords)
    ]


def _wiggly_points(count=400):
    # A road heading east that weaves by up to ~30m either side.
    return _points(
        (51.5 + 0.00027 * math.sin(i / 7.0) + 0.00005 * math.sin(i / 1.3), -0.2 + i * 0.0002)
        for i in range(count)
    )


def test_straight_line_collapses_to_endpoints():
    points = make_points([50.0] * 20)
    assert simplify_indices(points, 1.0) == [0, 20]


def test_three_collinear_points_keep_the_ends():
    assert simplify_indices(make_points([100.0, 100.0]), 1.0) == [0, 2]


def test_simplifying_again_changes_nothing():
    simplified = simplify_points(_wiggly_points(), 5.0)
    assert len(simplified) < 400
    assert simplify_indices(simplified, 5.0) == list(range(len(simplified)))


@pytest.mark.parametrize("count", [0, 1, 2])
def test_short_inputs_are_returned_unchanged(count):
    points = make_points([10.0] * (count - 1)) if count else []
    assert simplify_indices(points, 5.0) == list(range(count))


@pytest.mark.parametrize("tolerance", [0.0, -1.0, float("nan"), "abc", None])
def test_invalid_tolerance_raises(tolerance):
    points = make_points([10.0, 10.0, 10.0])
    with pytest.raises(InvalidToleranceError):
        simplify_indices(points, tolerance)


def test_invalid_tolerance_is_a_value_error():
    with pytest.raises(ValueError):
        simplify_indices(make_points([10.0] * 3), 0)


def test_significant_corner_is_kept():
    # East 1km then north 1km: the corner is ~700m off the chord.
    coords = [(0.0, 0.0), (0.0, 0.005), (0.0, 0.009), (0.005, 0.009), (0.009, 0.009)]
    assert simplify_indices(_points(coords), 10.0) == [0, 2, 4]


def test_first_of_equally_distant_points_is_kept():
    coords = [(0.0, 0.0), (0.001, 0.001), (0.001, 0.001), (0.0, 0.002)]
    assert simplify_indices(_points(coords), 1.0) == [0, 1, 3]


def test_dropped_points_stay_within_tolerance():
    points = _wiggly_points()
    tolerance = 5.0
    kept = simplify_indices(points, tolerance)
    assert kept[0] == 0 and kept[-1] == len(points) - 1
    assert kept == sorted(set(kept))
    assert 2 < len(kept) < len(points)

    lats = np.array([p.lat for p in points])
    lons = np.array([p.lon for p in points])
    for a, b in zip(kept, kept[1:]):
        if b - a < 2:
            continue
        dists = segment_distance_many_m(
            (lats[a], lons[a]), (lats[b], lons[b]), lats[a + 1 : b], lons[a + 1 : b]
        )
        assert float(dists.max()) <= tolerance + 1e-9


def test_larger_tolerance_keeps_fewer_points():
    points = _wiggly_points()
    counts = [len(simplify_indices(points, tol)) for tol in (1.0, 5.0, 20.0, 100.0)]
    assert counts == sorted(counts, reverse=True)
    assert counts[0] > counts[-1]


def test_simplify_points_returns_the_input_objects():
    points = _wiggly_points(50)
    result = simplify_points(points, 5.0)
    assert all(p in points for p in result)
    assert result[0] is points[0]
    assert result[-1] is points[-1]


def test_simplify_track_keeps_metadata():
    track = make_track([100.0] * 10, name="commute")
    simplified = simplify_track(track, 5.0)
    assert isinstance(simplified, Track)
    assert simplified.name == "commute"
    assert len(simplified) == 2
    assert simplified.start_time == track.start_time
    assert simplified.end_time == track.end_time
