import argparse
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .config import (
    DEFAULT_CONTROL_RESUMPTION_DISTANCE_M,
    DEFAULT_CONTROL_SPEED_KMH,
    DEFAULT_COUNTRIES,
    DEFAULT_MIN_CONTROL_TIME_MINUTES,
    DEFAULT_SIMPLIFY_METRES,
    GEONAMES_FORCE_DOWNLOAD,
)
from .errors import InvalidParametersError, InvalidToleranceError
from .geocoding import build_reverse_geocoder, normalise_countries
from .readers import SUPPORTED_SUFFIXES
from .segmentation import PlaceNamer, StageDetectionParameters
from .services import AnalysisOptions, AnalysisService
from .services.analysis_service import JOINED_SUFFIX, SIMPLIFIED_SUFFIX

PROGRAM_NAME = "ride-stages"


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )
    elif verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description=(
            "Simplify GPX/FIT rides and split them into Moving and Control "
            "stages, with place names from GeoNames."
        ),
    )
    parser.add_argument(
        "files",
        nargs="*",
        type=Path,
        help="GPX or FIT files, or directories containing them (default: current directory)",
    )
    parser.add_argument(
        "--metres",
        type=float,
        nargs="?",
        const=DEFAULT_SIMPLIFY_METRES,
        default=None,
        help=(
            "Write a simplified GPX keeping every point within this many metres "
            f"of the input track (default when given without a value: {DEFAULT_SIMPLIFY_METRES})"
        ),
    )
    parser.add_argument(
        "--analyse",
        action="store_true",
        help="Detect stages and write an analysis workbook (.xlsx)",
    )
    parser.add_argument(
        "--join",
        action="store_true",
        help="Join all input files into one track before processing",
    )
    parser.add_argument(
        "--countries",
        default=",".join(DEFAULT_COUNTRIES),
        help="Comma-separated ISO country codes to load place names for, e.g. GB,FR",
    )
    parser.add_argument(
        "--force-geonames-download",
        action="store_true",
        default=GEONAMES_FORCE_DOWNLOAD,
        help="Re-download the GeoNames files even when cached",
    )
    parser.add_argument(
        "--control-speed",
        type=float,
        default=DEFAULT_CONTROL_SPEED_KMH,
        help="Speed in km/h below which you are considered stopped",
    )
    parser.add_argument(
        "--min-control-time",
        type=float,
        default=DEFAULT_MIN_CONTROL_TIME_MINUTES,
        help="Minimum stop length in minutes for a Control stage",
    )
    parser.add_argument(
        "--control-resumption-distance",
        type=float,
        default=DEFAULT_CONTROL_RESUMPTION_DISTANCE_M,
        help="Distance in metres from the stop at which you are moving again",
    )
    parser.add_argument(
        "--trackpoint-hyperlinks",
        action="store_true",
        help=(
            "Add a map hyperlink to every row of the Track Points sheet, "
            "not just the highlighted points"
        ),
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for output files (default: next to each input)",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Overwrite existing output files",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _is_output_file(path: Path) -> bool:
    name = path.name.lower()
    return name.endswith(SIMPLIFIED_SUFFIX) or name.endswith(JOINED_SUFFIX)


def collect_input_files(paths: Sequence[Path]) -> List[Path]:
    """Expand directories and drop files this program wrote itself."""

    candidates: List[Path] = []
    for path in paths or [Path.cwd()]:
        if path.is_dir():
            candidates.extend(
                sorted(p for p in path.iterdir() if p.suffix.lower() in SUPPORTED_SUFFIXES)
            )
        else:
            candidates.append(path)
    files: List[Path] = []
    for path in candidates:
        if _is_output_file(path):
            logging.debug("Ignoring generated file %s", path)
            continue
        if path.suffix.lower() not in SUPPORTED_SUFFIXES:
            logging.warning("Ignoring %s: not a .gpx or .fit file", path)
            continue
        if not path.is_file():
            logging.warning("Ignoring %s: file not found", path)
            continue
        if path not in files:
            files.append(path)
    return files


def _build_namer(args: argparse.Namespace) -> Optional[PlaceNamer]:
    countries = normalise_countries(args.countries.split(","))
    if not countries:
        logging.info("No --countries given, stages will not have place names")
        return None
    geocoder, result = build_reverse_geocoder(
        countries, force_refresh=args.force_geonames_download
    )
    for code, exc in result.failures.items():
        logging.warning("Place names unavailable for %s: %s", code, exc.reason)
    return geocoder


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    logging.info("Starting %s", PROGRAM_NAME)

    if args.force:
        logging.info("'--force' specified, all existing output files will be overwritten")
    if args.metres is None and not args.analyse and not args.join:
        logging.warning("Nothing to do: specify at least one of --metres, --analyse, --join")
        return 0

    try:
        params = StageDetectionParameters(
            control_speed_kmh=args.control_speed,
            min_control_time_s=args.min_control_time * 60.0,
            control_resumption_distance_m=args.control_resumption_distance,
        )
        if args.metres is not None and not args.metres > 0:
            raise InvalidToleranceError(f"--metres must be > 0, got {args.metres}")
    except (InvalidParametersError, InvalidToleranceError) as exc:
        parser.error(str(exc))

    files = collect_input_files(args.files)
    if not files:
        logging.warning("No .gpx or .fit files specified, exiting")
        return 0

    namer = _build_namer(args) if args.analyse else None
    options = AnalysisOptions(
        simplify_metres=args.metres,
        analyse=args.analyse,
        join=args.join,
        hyperlinks=args.trackpoint_hyperlinks,
        force=args.force,
        output_dir=args.output_dir,
        params=params,
    )
    outcomes = AnalysisService(options, namer=namer).process(files)

    written = sum(len(o.written) for o in outcomes)
    failed = [o for o in outcomes if not o.ok]
    logging.info(
        "Finished: %d files processed, %d outputs written, %d failed",
        len(outcomes),
        written,
        len(failed),
    )
    return 1 if failed else 0


__all__ = ["build_parser", "collect_input_files", "main"]
