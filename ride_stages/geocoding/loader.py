"""Load GeoNames country datasets, downloading each at most once.

A loader is meant to be created once per process and shared. Whoever asks for
a country first performs the cache check and any download; everyone asking
for the same country later, or at the same time, waits on that work and gets
the same result. Nothing is re-fetched for the lifetime of the loader.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
import logging
from pathlib import Path
import threading
from typing import Callable, Dict, Iterable, List, Tuple

import requests
from requests import Session

from ..config import GEONAMES_BASE_URL, GEONAMES_REQUEST_TIMEOUT, HTTP_POOL_MAXSIZE
from ..errors import GeocodeFetchFailedError
from ..models import GazetteerCacheEntry, PlaceRecord
from .cache import GazetteerCache
from .parser import read_country_dataset
from .session import get_default_session

_LOGGER = logging.getLogger(__name__)

# Downloads ``url`` into ``dest`` and returns the number of bytes written.
Fetcher = Callable[[str, Path], int]

_CHUNK_SIZE = 64 * 1024


@dataclass(slots=True)
class GazetteerLoadResult:
    """Places from every country that loaded, plus what went wrong."""

    places: List[PlaceRecord] = field(default_factory=list)
    failures: Dict[str, GeocodeFetchFailedError] = field(default_factory=dict)
    # Countries served from an old cache because a forced refresh failed.
    stale: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True, slots=True)
class _CountryDataset:
    entry: GazetteerCacheEntry
    places: Tuple[PlaceRecord, ...]
    stale: bool = False


def normalise_countries(countries: Iterable[str]) -> List[str]:
    """Upper-case, strip and de-duplicate country codes, keeping their order."""

    seen: Dict[str, None] = {}
    for code in countries:
        cleaned = code.strip().upper()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class GazetteerLoader:
    def __init__(
        self,
        cache: GazetteerCache | None = None,
        fetcher: Fetcher | None = None,
        session: Session | None = None,
        *,
        base_url: str = GEONAMES_BASE_URL,
        timeout: float = GEONAMES_REQUEST_TIMEOUT,
    ) -> None:
        self.cache = cache or GazetteerCache()
        self._session = session
        self._fetcher = fetcher or self._http_fetch
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._lock = threading.Lock()
        self._datasets: Dict[str, Future[_CountryDataset]] = {}

    def url_for(self, country_code: str) -> str:
        return f"{self._base_url}/{country_code.upper()}.zip"

    def load(
        self, countries: Iterable[str], force_refresh: bool = False
    ) -> GazetteerLoadResult:
        """Load every requested country, in parallel, isolating failures."""

        codes = normalise_countries(countries)
        result = GazetteerLoadResult()
        if not codes:
            _LOGGER.info("No gazetteer countries requested, place names disabled")
            return result

        datasets: Dict[str, _CountryDataset] = {}
        with ThreadPoolExecutor(max_workers=min(len(codes), HTTP_POOL_MAXSIZE)) as executor:
            future_map = {
                executor.submit(self.dataset, code, force_refresh): code
                for code in codes
            }
            for future in as_completed(future_map):
                code = future_map[future]
                try:
                    datasets[code] = future.result()
                except GeocodeFetchFailedError as exc:
                    _LOGGER.error("Gazetteer %s failed: %s", code, exc.reason)
                    result.failures[code] = exc

        # Keep the caller's country order so index ties are deterministic.
        for code in codes:
            dataset = datasets.get(code)
            if dataset is None:
                continue
            result.places.extend(dataset.places)
            if dataset.stale:
                result.stale.append(code)

        _LOGGER.info(
            "Loaded %d places from %d countries (%d failed, %d stale)",
            len(result.places),
            len(datasets),
            len(result.failures),
            len(result.stale),
        )
        return result

    def dataset(self, country_code: str, force_refresh: bool = False) -> _CountryDataset:
        """Return the places for one country, populating them on first use.

        Raises GeocodeFetchFailedError when the country has no usable data.
        """

        code = country_code.strip().upper()
        with self._lock:
            future = self._datasets.get(code)
            owner = future is None
            if owner:
                future = Future()
                self._datasets[code] = future
        if owner:
            try:
                future.set_result(self._populate(code, force_refresh))
            except GeocodeFetchFailedError as exc:
                future.set_exception(exc)
            except Exception as exc:
                future.set_exception(GeocodeFetchFailedError(code, str(exc)))
            finally:
                # Interrupted: release the waiters and let a later call retry.
                if not future.done():
                    future.set_exception(
                        GeocodeFetchFailedError(code, "loading was interrupted")
                    )
                    with self._lock:
                        if self._datasets.get(code) is future:
                            del self._datasets[code]
        return future.result()

    def _populate(self, code: str, force_refresh: bool) -> _CountryDataset:
        existing = self.cache.entry(code)
        stale = False
        if existing is not None and not force_refresh:
            _LOGGER.info("%s already exists, skipping download", existing.path)
            entry = existing
        else:
            url = self.url_for(code)
            _LOGGER.info("Downloading %s", url)
            try:
                entry = self.cache.store(
                    code, lambda dest: self._fetcher(url, dest), url=url
                )
            except Exception as exc:
                if existing is None:
                    raise GeocodeFetchFailedError(code, _describe(exc)) from exc
                _LOGGER.warning(
                    "Refreshing %s failed (%s), keeping cached copy from %s",
                    code,
                    _describe(exc),
                    existing.fetched_at,
                )
                entry = existing
                stale = True
        places = read_country_dataset(entry.path, code)
        return _CountryDataset(entry=entry, places=tuple(places), stale=stale)

    def _http_fetch(self, url: str, dest: Path) -> int:
        session = self._session or get_default_session()
        written = 0
        with session.get(url, stream=True, timeout=self._timeout) as response:
            response.raise_for_status()
            with dest.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
                        written += len(chunk)
        return written


def _describe(exc: Exception) -> str:
    if isinstance(exc, GeocodeFetchFailedError):
        return exc.reason
    if isinstance(exc, requests.Timeout):
        return f"download timed out: {exc}"
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return f"HTTP {exc.response.status_code}"
    return str(exc) or exc.__class__.__name__


__all__ = ["Fetcher", "GazetteerLoadResult", "GazetteerLoader", "normalise_countries"]
