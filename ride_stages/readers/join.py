"""Joining several recordings of one ride into a single track."""

from __future__ import annotations

import logging
from typing import List, Sequence

from ..errors import EmptyTrackError
from ..models import Track, TrackPoint

_LOGGER = logging.getLogger(__name__)


def join_tracks(tracks: Sequence[Track], name: str | None = None) -> Track:
    """Concatenate ``tracks`` ordered by their first timestamp.

    Nothing is interpolated across the gaps between files. A gap where the
    rider was stopped shows up later as a Control stage.
    """

    if not tracks:
        raise EmptyTrackError("No tracks to join")
    ordered = sorted(tracks, key=lambda t: t.start_time)
    points: List[TrackPoint] = []
    for track in ordered:
        points.extend(track.points)
    sources = tuple(src for track in ordered for src in track.source_files)
    _LOGGER.info(
        "Joined %d tracks into %d points (%s)",
        len(ordered),
        len(points),
        ", ".join(t.name for t in ordered),
    )
    # Raises TrackOrderError when the recordings overlap in time.
    return Track(name=name or ordered[0].name, points=tuple(points), source_files=sources)


__all__ = ["join_tracks"]
