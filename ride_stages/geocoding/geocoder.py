"""Reverse geocoding: coordinates to the name of the nearest populated place."""

from __future__ import annotations

import logging
from threading import RLock
from typing import Iterable, Optional, Tuple

from cachetools import LRUCache

from ..config import (
    DEFAULT_COUNTRIES,
    GEOCODE_MEMO_PRECISION,
    GEOCODE_MEMO_SIZE,
    GEONAMES_FORCE_DOWNLOAD,
    SPATIAL_INDEX_CELL_DEGREES,
)
from ..models import PlaceMatch
from .loader import GazetteerLoader, GazetteerLoadResult
from .spatial_index import SpatialIndex

_LOGGER = logging.getLogger(__name__)

_MemoKey = Tuple[float, float]


class ReverseGeocoder:
    """Nearest-place lookups over a :class:`SpatialIndex`, memoised.

    Neighbouring track points usually resolve to the same place, so results
    are remembered per rounded coordinate.
    """

    def __init__(
        self,
        index: SpatialIndex,
        *,
        memo_size: int = GEOCODE_MEMO_SIZE,
        precision: int = GEOCODE_MEMO_PRECISION,
    ) -> None:
        self._index = index
        self._precision = precision
        self._memo: LRUCache[_MemoKey, Optional[PlaceMatch]] = LRUCache(
            maxsize=max(1, memo_size)
        )
        self._memo_lock = RLock()

    @property
    def index(self) -> SpatialIndex:
        return self._index

    def nearest(self, lat: float, lon: float) -> PlaceMatch | None:
        key = (round(lat, self._precision), round(lon, self._precision))
        with self._memo_lock:
            if key in self._memo:
                return self._memo[key]
        match = self._index.nearest(lat, lon)
        with self._memo_lock:
            self._memo[key] = match
        return match

    def place_name(self, lat: float, lon: float) -> Optional[str]:
        match = self.nearest(lat, lon)
        if match is None:
            return None
        return match.place.name


def build_reverse_geocoder(
    countries: Iterable[str] | None = None,
    *,
    force_refresh: bool | None = None,
    loader: GazetteerLoader | None = None,
    cell_size_deg: float = SPATIAL_INDEX_CELL_DEGREES,
) -> Tuple[ReverseGeocoder, GazetteerLoadResult]:
    """Load the gazetteers for ``countries`` and index them.

    Countries that fail to load are reported in the result and simply
    contribute no places. No countries gives a geocoder that never matches.
    """

    if countries is None:
        countries = DEFAULT_COUNTRIES
    if force_refresh is None:
        force_refresh = GEONAMES_FORCE_DOWNLOAD
    loader = loader or GazetteerLoader()
    result = loader.load(countries, force_refresh=force_refresh)
    index = SpatialIndex(result.places, cell_size_deg=cell_size_deg)
    _LOGGER.info(
        "Reverse geocoder ready: %d places in %d cells", len(index), index.cell_count
    )
    return ReverseGeocoder(index), result


__all__ = ["ReverseGeocoder", "build_reverse_geocoder"]
