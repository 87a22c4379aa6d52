"""GeoNames gazetteer download, caching and reverse geocoding."""

from .cache import GazetteerCache
from .geocoder import ReverseGeocoder, build_reverse_geocoder
from .loader import GazetteerLoader, GazetteerLoadResult, normalise_countries
from .parser import parse_places, read_country_dataset
from .spatial_index import SpatialIndex

__all__ = [
    "GazetteerCache",
    "GazetteerLoadResult",
    "GazetteerLoader",
    "ReverseGeocoder",
    "SpatialIndex",
    "build_reverse_geocoder",
    "normalise_countries",
    "parse_places",
    "read_country_dataset",
]
