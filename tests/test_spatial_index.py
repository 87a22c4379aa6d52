import numpy as np
import pytest

from ride_stages.geocoding.spatial_index import SpatialIndex
from ride_stages.geometry.distance import haversine_m
from ride_stages.models import PlaceRecord


def _place(name, lat, lon):
    return PlaceRecord(name=name, lat=lat, lon=lon, country_code="GB")


def test_empty_index_returns_none():
    index = SpatialIndex([])
    assert len(index) == 0
    assert index.nearest(51.5, -0.1) is None


def test_single_place_is_found_from_anywhere():
    index = SpatialIndex([_place("Only", 51.5, -0.1)])
    match = index.nearest(-33.9, 151.2)
    assert match is not None
    assert match.place.name == "Only"
    assert match.distance_m == pytest.approx(haversine_m(-33.9, 151.2, 51.5, -0.1))


def test_neighbouring_cell_can_hold_the_nearest_place():
    # Query sits just inside the top of its 0.1 degree cell. The place in the
    # same cell is 9km away; the one just over the boundary is 200m away.
    query = (51.599, -0.15)
    index = SpatialIndex(
        [_place("Same cell", 51.52, -0.15), _place("Over the line", 51.6008, -0.15)],
        cell_size_deg=0.1,
    )
    match = index.nearest(*query)
    assert match.place.name == "Over the line"
    assert match.distance_m == pytest.approx(haversine_m(*query, 51.6008, -0.15))


def test_exact_ties_go_to_the_first_loaded_place():
    places = [_place("First", 51.5, -0.1), _place("Second", 51.5, -0.1)]
    assert SpatialIndex(places).nearest(51.51, -0.1).place.name == "First"
    assert SpatialIndex(places[::-1]).nearest(51.51, -0.1).place.name == "Second"


def test_longitude_wraps_at_the_antimeridian():
    index = SpatialIndex(
        [_place("East", -17.0, 179.95), _place("Far", -17.0, 178.0)],
        cell_size_deg=0.1,
    )
    match = index.nearest(-17.0, -179.95)
    assert match.place.name == "East"
    assert match.distance_m < 11_000


def test_matches_brute_force_search():
    rng = np.random.default_rng(42)
    lats = rng.uniform(49.9, 58.7, size=2000)
    lons = rng.uniform(-8.0, 1.8, size=2000)
    places = [_place(f"P{i}", float(a), float(b)) for i, (a, b) in enumerate(zip(lats, lons))]
    index = SpatialIndex(places, cell_size_deg=0.1)

    for q_lat, q_lon in zip(rng.uniform(49.0, 59.5, size=200), rng.uniform(-9.0, 3.0, size=200)):
        match = index.nearest(float(q_lat), float(q_lon))
        expected = min(
            range(len(places)),
            key=lambda i: haversine_m(q_lat, q_lon, places[i].lat, places[i].lon),
        )
        assert match.distance_m == pytest.approx(
            haversine_m(q_lat, q_lon, places[expected].lat, places[expected].lon)
        )


def test_invalid_cell_size():
    with pytest.raises(ValueError):
        SpatialIndex([], cell_size_deg=0.0)


def test_query_on_a_place_returns_it_at_zero_distance():
    here = _place("Here", 51.5074, -0.1278)
    index = SpatialIndex([_place("Near", 51.5080, -0.1270), here])
    match = index.nearest(51.5074, -0.1278)
    assert match.place is here
    assert match.distance_m == 0.0


def test_query_far_from_every_place_visits_few_cells():
    rng = np.random.default_rng(3)
    places = [
        _place(f"P{i}", float(a), float(b))
        for i, (a, b) in enumerate(
            zip(rng.uniform(49.9, 58.7, size=1000), rng.uniform(-8.0, 1.8, size=1000))
        )
    ]
    index = SpatialIndex(places, cell_size_deg=0.1)
    visited = []
    ring_cells = index._ring_cells

    def counting_ring_cells(row, col, ring):
        for cell in ring_cells(row, col, ring):
            visited.append(cell)
            yield cell

    index._ring_cells = counting_ring_cells
    match = index.nearest(-33.87, 151.21)

    expected = min(places, key=lambda p: haversine_m(-33.87, 151.21, p.lat, p.lon))
    assert match.place is expected
    assert match.distance_m == pytest.approx(haversine_m(-33.87, 151.21, expected.lat, expected.lon))
    # Walking rings all the way to Britain would be millions of cells.
    assert len(visited) < 2 * index.cell_count
