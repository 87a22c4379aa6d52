"""Track decoders for GPX and FIT files."""

from __future__ import annotations

from pathlib import Path

from ..errors import TrackReadError
from ..models import Track
from .fit import read_fit
from .gpx import read_gpx
from .join import join_tracks

SUPPORTED_SUFFIXES = (".gpx", ".fit")


def read_track(path: Path | str) -> Track:
    """Read a GPX or FIT file, chosen by its extension."""

    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".gpx":
        return read_gpx(path)
    if suffix == ".fit":
        return read_fit(path)
    raise TrackReadError(f"{path}: unsupported file type {suffix or '(none)'}")


__all__ = ["SUPPORTED_SUFFIXES", "join_tracks", "read_fit", "read_gpx", "read_track"]
