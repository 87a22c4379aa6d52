"""Grid index for nearest-place lookups.

Places are bucketed into square lat/lon cells. A query looks at the cell it
falls in, then at successive square rings of cells around it. A match in the
home cell is not necessarily the nearest place (the query may sit on the edge
of its cell), so rings keep being searched until no cell in the next ring can
possibly hold anything closer than the best match so far. A query far from
every place gives up on rings and scans all places at once.

The index is immutable once built and safe to query from many threads.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterator, List, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from ..config import SPATIAL_INDEX_CELL_DEGREES
from ..geometry.distance import EARTH_RADIUS_M, haversine_many_m
from ..models import PlaceMatch, PlaceRecord

_LOGGER = logging.getLogger(__name__)

Cell = Tuple[int, int]


class SpatialIndex:
    def __init__(
        self,
        places: Sequence[PlaceRecord],
        cell_size_deg: float = SPATIAL_INDEX_CELL_DEGREES,
    ) -> None:
        if not cell_size_deg > 0:
            raise ValueError(f"cell_size_deg must be > 0, got {cell_size_deg}")
        self._records: Tuple[PlaceRecord, ...] = tuple(places)
        self._cell_size = float(cell_size_deg)
        self._lon_cells = max(1, math.ceil(360.0 / self._cell_size))
        self._lats: NDArray[np.float64] = np.fromiter(
            (p.lat for p in self._records), dtype=float, count=len(self._records)
        )
        self._lons: NDArray[np.float64] = np.fromiter(
            (p.lon for p in self._records), dtype=float, count=len(self._records)
        )

        buckets: Dict[Cell, List[int]] = {}
        for idx, (lat, lon) in enumerate(zip(self._lats, self._lons)):
            buckets.setdefault(self._cell_of(lat, lon), []).append(idx)
        # Indices stay in load order within each cell, ties resolve to the first.
        self._cells: Dict[Cell, NDArray[np.int64]] = {
            cell: np.asarray(indices, dtype=np.int64) for cell, indices in buckets.items()
        }

        if self._records:
            rows = [cell[0] for cell in self._cells]
            self._min_row = min(rows)
            self._max_row = max(rows)
            self._occupied_cols = np.unique(
                np.asarray([cell[1] for cell in self._cells], dtype=np.int64)
            )
            self._max_abs_lat = float(np.max(np.abs(self._lats)))
        else:
            self._min_row = self._max_row = 0
            self._occupied_cols = np.empty(0, dtype=np.int64)
            self._max_abs_lat = 0.0
        # Rings beyond this visit more cells than there are occupied ones.
        self._ring_budget = max(2, math.ceil(math.sqrt(len(self._cells)) / 2.0))

        _LOGGER.debug(
            "Built spatial index with %d places in %d cells of %.3f degrees",
            len(self._records),
            len(self._cells),
            self._cell_size,
        )

    def __len__(self) -> int:
        return len(self._records)

    @property
    def cell_size_deg(self) -> float:
        return self._cell_size

    @property
    def cell_count(self) -> int:
        return len(self._cells)

    def nearest(self, lat: float, lon: float) -> PlaceMatch | None:
        """Return the closest place and its distance, or None if empty."""

        if not self._records:
            return None
        row, col = self._cell_of(lat, lon)
        best_idx = -1
        best_dist = math.inf

        for ring in range(self._max_ring(row, col) + 1):
            if best_idx >= 0 and self._ring_lower_bound_m(ring, lat) > best_dist:
                break
            if ring > self._ring_budget:
                # Far from every place: one pass over all of them is cheaper
                # than walking rings of empty cells.
                return self._scan_all(lat, lon)
            for cell in self._ring_cells(row, col, ring):
                indices = self._cells.get(cell)
                if indices is None:
                    continue
                dists = haversine_many_m(
                    lat, lon, self._lats[indices], self._lons[indices]
                )
                k = int(np.argmin(dists))
                dist = float(dists[k])
                idx = int(indices[k])
                if dist < best_dist or (dist == best_dist and idx < best_idx):
                    best_dist = dist
                    best_idx = idx

        if best_idx < 0:
            return None
        return PlaceMatch(place=self._records[best_idx], distance_m=best_dist)

    def _scan_all(self, lat: float, lon: float) -> PlaceMatch:
        dists = haversine_many_m(lat, lon, self._lats, self._lons)
        # argmin returns the first minimum, i.e. the first-loaded place.
        idx = int(np.argmin(dists))
        return PlaceMatch(place=self._records[idx], distance_m=float(dists[idx]))

    def _cell_of(self, lat: float, lon: float) -> Cell:
        row = math.floor(lat / self._cell_size)
        col = math.floor(lon / self._cell_size) % self._lon_cells
        return row, col

    def _max_ring(self, row: int, col: int) -> int:
        """Rings needed to reach every occupied cell from ``(row, col)``."""

        row_reach = max(abs(row - self._min_row), abs(row - self._max_row))
        col_gap = np.abs(self._occupied_cols - col)
        col_reach = int(np.max(np.minimum(col_gap, self._lon_cells - col_gap)))
        return max(row_reach, col_reach)

    def _ring_cells(self, row: int, col: int, ring: int) -> Iterator[Cell]:
        if ring == 0:
            yield row, col
            return
        seen: set[Cell] = set()
        for d_row in range(-ring, ring + 1):
            if abs(d_row) == ring:
                d_cols = range(-ring, ring + 1)
            else:
                d_cols = (-ring, ring)
            for d_col in d_cols:
                cell = (row + d_row, (col + d_col) % self._lon_cells)
                # Wide rings wrap onto themselves in longitude.
                if cell in seen:
                    continue
                seen.add(cell)
                yield cell

    def _ring_lower_bound_m(self, ring: int, lat: float) -> float:
        """Smallest possible distance to any place in ring ``ring``.

        A cell in the ring is ``ring`` rows or ``ring`` columns away, so
        anything inside it is at least ``ring - 1`` cells of latitude or of
        longitude from the query, whose position within its own cell is
        unknown to the grid.
        """

        if ring <= 1:
            return 0.0
        gap_rad = math.radians(min((ring - 1) * self._cell_size, 180.0))
        lat_bound = gap_rad * EARTH_RADIUS_M
        # Haversine with the latitude term dropped; cos(lat) of any place is
        # at least cos of the highest latitude in the index.
        cos_product = math.cos(math.radians(lat)) * math.cos(
            math.radians(max(self._max_abs_lat, abs(lat)))
        )
        h = max(cos_product, 0.0) * math.sin(gap_rad / 2.0) ** 2
        lon_bound = 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))
        return min(lat_bound, lon_bound)


__all__ = ["SpatialIndex"]
