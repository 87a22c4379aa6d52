import numpy as np
import pytest

from ride_stages.geometry.distance import (
    EARTH_RADIUS_M,
    geodesic_m,
    geodesic_steps_m,
    haversine_m,
    haversine_many_m,
    segment_distance_many_m,
)
from ride_stages.models import TrackPoint

from conftest import BASE_TIME, make_points


def test_haversine_one_degree_of_latitude():
    expected = EARTH_RADIUS_M * np.pi / 180.0
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected, rel=1e-9)
    assert haversine_m(10.0, 20.0, 10.0, 20.0) == 0.0
    assert 111_000 < expected < 111_300


def test_haversine_many_matches_scalar():
    lats = np.array([51.5, 48.85, -33.9])
    lons = np.array([-0.12, 2.35, 151.2])
    many = haversine_many_m(40.0, -74.0, lats, lons)
    for i in range(3):
        assert many[i] == pytest.approx(haversine_m(40.0, -74.0, lats[i], lons[i]))


def test_segment_distance_cross_track_on_equator():
    # Chord along the equator; the point sits 0.01 degrees north of its middle.
    dist = segment_distance_many_m(
        (0.0, 0.0), (0.0, 1.0), np.array([0.01]), np.array([0.5])
    )
    assert dist[0] == pytest.approx(haversine_m(0.0, 0.5, 0.01, 0.5), rel=1e-4)


def test_segment_distance_clamps_to_endpoints():
    lats = np.array([0.0, 0.0])
    lons = np.array([-0.5, 1.5])
    dist = segment_distance_many_m((0.0, 0.0), (0.0, 1.0), lats, lons)
    assert dist[0] == pytest.approx(haversine_m(0.0, 0.0, 0.0, -0.5))
    assert dist[1] == pytest.approx(haversine_m(0.0, 1.0, 0.0, 1.5))


def test_segment_distance_degenerate_chord_uses_start():
    dist = segment_distance_many_m(
        (10.0, 10.0), (10.0, 10.0), np.array([10.1]), np.array([10.0])
    )
    assert dist[0] == pytest.approx(haversine_m(10.0, 10.0, 10.1, 10.0))


def test_geodesic_steps_start_at_zero_and_sum():
    points = make_points([100.0, 0.0, 100.0])
    steps = geodesic_steps_m(points)
    assert steps[0] == 0.0
    assert steps[2] == 0.0
    assert steps[1] == pytest.approx(100.0, rel=1e-3)
    assert steps.sum() == pytest.approx(geodesic_m(points[0], points[-1]), rel=1e-6)


def test_geodesic_steps_single_point():
    point = TrackPoint.create(1.0, 1.0, None, BASE_TIME)
    assert geodesic_steps_m([point]).tolist() == [0.0]
