"""Ride analysis service.

Reads GPX/FIT files and, for each one, writes any of: a simplified GPX, an
analysis workbook and (in join mode) a single GPX joined from every input.
Files are processed in parallel; a failure in one file is logged and does not
affect the others.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
import logging
from pathlib import Path
import threading
from typing import Callable, List, Optional, Sequence

from ..config import ANALYSIS_MAX_WORKERS
from ..excel_writer import write_analysis_xlsx
from ..geometry.simplify import simplify_track
from ..gpx_writer import write_gpx
from ..models import StageList, Track
from ..readers import join_tracks, read_track
from ..segmentation import PlaceNamer, StageDetectionParameters, detect_stages

TrackReader = Callable[[Path], Track]

SIMPLIFIED_SUFFIX = ".simplified.gpx"
ANALYSIS_SUFFIX = ".xlsx"
JOINED_SUFFIX = ".joined.gpx"


@dataclass(slots=True)
class AnalysisOptions:
    # Simplify to within this many metres; None disables simplification.
    simplify_metres: Optional[float] = None
    analyse: bool = False
    join: bool = False
    hyperlinks: bool = False
    force: bool = False
    # Outputs go next to each input when unset.
    output_dir: Optional[Path] = None
    params: StageDetectionParameters = field(default_factory=StageDetectionParameters)


@dataclass(slots=True)
class RequiredOutputs:
    simplified_file: Optional[Path] = None
    analysis_file: Optional[Path] = None
    joined_file: Optional[Path] = None

    def any(self) -> bool:
        return any(
            p is not None
            for p in (self.simplified_file, self.analysis_file, self.joined_file)
        )


@dataclass(slots=True)
class FileOutcome:
    source: Path
    written: List[Path] = field(default_factory=list)
    stages: Optional[StageList] = None
    points_in: int = 0
    points_out: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AnalysisService:
    def __init__(
        self,
        options: AnalysisOptions | None = None,
        namer: PlaceNamer | None = None,
        reader: TrackReader = read_track,
        max_workers: int = ANALYSIS_MAX_WORKERS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options or AnalysisOptions()
        self.namer = namer
        self._reader = reader
        self._max_workers = max(1, max_workers)
        self._log = logger or logging.getLogger(self.__class__.__name__)

    def required_outputs(self, source: Path, join: bool = False) -> RequiredOutputs:
        """Work out which outputs ``source`` still needs.

        Existing files are left alone unless ``force`` is set. In join mode the
        analysis and simplified outputs are named after the joined file.
        """

        opts = self.options
        directory = opts.output_dir or source.parent
        stem = source.stem
        rof = RequiredOutputs()
        if join:
            rof.joined_file = self._if_needed(directory / f"{stem}{JOINED_SUFFIX}")
            stem = f"{stem}.joined"
        if opts.analyse:
            rof.analysis_file = self._if_needed(directory / f"{stem}{ANALYSIS_SUFFIX}")
        if opts.simplify_metres is not None:
            rof.simplified_file = self._if_needed(
                directory / f"{stem}{SIMPLIFIED_SUFFIX}"
            )
        return rof

    def _if_needed(self, path: Path) -> Optional[Path]:
        if path.exists() and not self.options.force:
            self._log.info("%s already exists, skipping (use --force to overwrite)", path)
            return None
        return path

    def process(self, files: Sequence[Path]) -> List[FileOutcome]:
        if not files:
            self._log.warning("No .gpx or .fit files specified")
            return []
        if self.options.join:
            return [self.process_joined(files)]
        return self.process_each(files)

    def process_each(self, files: Sequence[Path]) -> List[FileOutcome]:
        outcomes: List[FileOutcome] = []
        failed: List[str] = []
        lock = threading.Lock()

        def _run(path: Path) -> FileOutcome:
            outcome = self.process_file(path)
            if not outcome.ok:
                with lock:
                    failed.append(path.name)
            return outcome

        workers = min(self._max_workers, len(files))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_map = {executor.submit(_run, path): path for path in files}
            for future in as_completed(future_map):
                outcomes.append(future.result())

        # Report in the order the files were given.
        order = {path: idx for idx, path in enumerate(files)}
        outcomes.sort(key=lambda o: order.get(o.source, len(order)))
        if failed:
            self._log.warning(
                "%d of %d files failed: %s", len(failed), len(files), ", ".join(sorted(failed))
            )
        return outcomes

    def process_file(self, path: Path) -> FileOutcome:
        outcome = FileOutcome(source=path)
        rof = self.required_outputs(path)
        if not rof.any():
            self._log.info("Nothing to do for %s", path)
            return outcome
        try:
            track = self._reader(path)
            self._produce(track, rof, outcome)
        except Exception as exc:
            outcome.error = str(exc)
            self._log.error("Error while processing file %s: %s", path, exc, exc_info=True)
        return outcome

    def process_joined(self, files: Sequence[Path]) -> FileOutcome:
        first = files[0]
        outcome = FileOutcome(source=first)
        rof = self.required_outputs(first, join=True)
        if rof.joined_file is None:
            return outcome
        try:
            tracks = [self._reader(path) for path in files]
            joined = join_tracks(tracks, name=rof.joined_file.stem)
            outcome.written.append(write_gpx(rof.joined_file, joined))
            self._produce(joined, rof, outcome)
        except Exception as exc:
            outcome.error = str(exc)
            self._log.error("Error while joining %d files: %s", len(files), exc, exc_info=True)
        return outcome

    def analyse(self, track: Track) -> StageList:
        return detect_stages(track, self.options.params, self.namer)

    def _produce(self, track: Track, rof: RequiredOutputs, outcome: FileOutcome) -> None:
        outcome.points_in = len(track)
        if rof.analysis_file is not None:
            stages = self.analyse(track)
            outcome.stages = stages
            outcome.written.append(
                write_analysis_xlsx(
                    rof.analysis_file, track, stages, hyperlinks=self.options.hyperlinks
                )
            )
        if rof.simplified_file is not None and self.options.simplify_metres is not None:
            simplified = simplify_track(track, self.options.simplify_metres)
            outcome.points_out = len(simplified)
            outcome.written.append(write_gpx(rof.simplified_file, simplified, minimal=True))


__all__ = [
    "AnalysisOptions",
    "AnalysisService",
    "FileOutcome",
    "RequiredOutputs",
    "TrackReader",
]
