"""On-disk cache of GeoNames per-country dump files.

Layout under the cache directory::

    <CC>.zip    the dataset exactly as downloaded
    <CC>.json   sidecar with the source url and download time

A dataset is only ever written by replacing the final path with a fully
downloaded and validated temporary file, so a crash mid-download can never
leave a truncated ``<CC>.zip`` behind. Readers either see the old file or the
new one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..config import GEONAMES_CACHE_DIR
from ..models import GazetteerCacheEntry
from .parser import validate_dataset

_LOGGER = logging.getLogger(__name__)

# Writes the download into the given path and returns the number of bytes.
Downloader = Callable[[Path], int]


class GazetteerCache:
    """Locate, describe and atomically replace cached country datasets."""

    def __init__(self, cache_dir: Path | str | None = None) -> None:
        base = Path(cache_dir if cache_dir is not None else GEONAMES_CACHE_DIR)
        self._base_dir = base.expanduser()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def dataset_path(self, country_code: str) -> Path:
        return self._base_dir / f"{country_code.upper()}.zip"

    def metadata_path(self, country_code: str) -> Path:
        return self._base_dir / f"{country_code.upper()}.json"

    def entry(self, country_code: str) -> Optional[GazetteerCacheEntry]:
        """Return the cached dataset for ``country_code`` or None when absent."""

        path = self.dataset_path(country_code)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        metadata = self._read_metadata(country_code)
        fetched_at = _parse_timestamp(metadata.get("fetched_at"))
        if fetched_at is None:
            fetched_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return GazetteerCacheEntry(
            country_code=country_code.upper(),
            path=path,
            fetched_at=fetched_at,
            url=metadata.get("url"),
            size_bytes=stat.st_size,
        )

    def store(
        self, country_code: str, download: Downloader, *, url: str | None = None
    ) -> GazetteerCacheEntry:
        """Download into a temporary file, validate it, then move it into place.

        Any failure removes the temporary file and leaves an existing dataset
        untouched. The exception propagates to the caller.
        """

        code = country_code.upper()
        self._base_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{code}.", suffix=".part", dir=self._base_dir
        )
        os.close(fd)
        temp_path = Path(temp_name)
        try:
            size = download(temp_path)
            validate_dataset(temp_path, code)
            final_path = self.dataset_path(code)
            os.replace(temp_path, final_path)
        finally:
            if temp_path.exists():
                temp_path.unlink()

        fetched_at = datetime.now(timezone.utc)
        self._write_metadata(
            code,
            {
                "country_code": code,
                "url": url,
                "fetched_at": fetched_at.isoformat(),
                "size_bytes": size,
            },
        )
        _LOGGER.info("Stored gazetteer %s (%d bytes) at %s", code, size, final_path)
        return GazetteerCacheEntry(
            country_code=code,
            path=final_path,
            fetched_at=fetched_at,
            url=url,
            size_bytes=size,
        )

    def _read_metadata(self, country_code: str) -> Dict[str, Any]:
        path = self.metadata_path(country_code)
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            _LOGGER.warning("Ignoring unreadable gazetteer metadata %s: %s", path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _write_metadata(self, country_code: str, payload: Dict[str, Any]) -> None:
        path = self.metadata_path(country_code)
        temp_path = path.with_suffix(".tmp")
        with temp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=True, indent=2)
        temp_path.replace(path)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = ["Downloader", "GazetteerCache"]
