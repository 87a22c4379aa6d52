"""Central configuration for the ride stage analysis tool.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Every value can be overridden through environment
variables (optionally via a local `.env`).
"""

from __future__ import annotations

import importlib
import os
from pathlib import Path


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except ImportError:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# GeoNames gazetteer
# ---------------------------------------------------------------------------
# Per-country dumps live at <base>/<CC>.zip.
GEONAMES_BASE_URL = os.getenv(
    "GEONAMES_BASE_URL", "https://download.geonames.org/export/dump"
)

# Directory holding the downloaded country files and their metadata sidecars.
GEONAMES_CACHE_DIR = os.getenv(
    "GEONAMES_CACHE_DIR", str(Path.home() / ".cache" / "ride_stages" / "geonames")
)

# Request timeout in seconds. Large countries (US, FR) are tens of megabytes.
GEONAMES_REQUEST_TIMEOUT = _env_float("GEONAMES_REQUEST_TIMEOUT", 120.0)

# Retries for connection failures and 5xx responses.
GEONAMES_MAX_RETRIES = _env_int("GEONAMES_MAX_RETRIES", 3)

# HTTP session pool sizes for concurrent downloads.
HTTP_POOL_CONNECTIONS = 10
HTTP_POOL_MAXSIZE = 10

# Country codes loaded when none are given on the command line. Empty means
# geocoding is disabled.
DEFAULT_COUNTRIES = [
    code.strip().upper()
    for code in os.getenv("GEONAMES_COUNTRIES", "").split(",")
    if code.strip()
]

# Re-download country files even when a cached copy exists.
GEONAMES_FORCE_DOWNLOAD = _env_bool("GEONAMES_FORCE_DOWNLOAD", False)


# ---------------------------------------------------------------------------
# Spatial index / reverse geocoding
# ---------------------------------------------------------------------------
# Grid cell size (degrees) used to bucket places. 0.1 degree is roughly 11km
# of latitude, which keeps a few hundred villages per cell in dense countries.
SPATIAL_INDEX_CELL_DEGREES = _env_float("SPATIAL_INDEX_CELL_DEGREES", 0.1)

# Number of reverse geocode results kept in memory, keyed by rounded lat/lon.
GEOCODE_MEMO_SIZE = _env_int("GEOCODE_MEMO_SIZE", 4096)

# Decimal places used when rounding coordinates for the memo key (4 ~ 11m).
GEOCODE_MEMO_PRECISION = _env_int("GEOCODE_MEMO_PRECISION", 4)


# ---------------------------------------------------------------------------
# Stage detection defaults
# ---------------------------------------------------------------------------
# You are considered stopped when your speed drops below this.
DEFAULT_CONTROL_SPEED_KMH = _env_float("DEFAULT_CONTROL_SPEED_KMH", 2.0)

# A stop must last at least this long to become a Control stage.
DEFAULT_MIN_CONTROL_TIME_MINUTES = _env_float("DEFAULT_MIN_CONTROL_TIME_MINUTES", 2.0)

# You are moving again once you are this far (as the crow flies) from where
# you stopped.
DEFAULT_CONTROL_RESUMPTION_DISTANCE_M = _env_float(
    "DEFAULT_CONTROL_RESUMPTION_DISTANCE_M", 100.0
)


# ---------------------------------------------------------------------------
# Simplification
# ---------------------------------------------------------------------------
# Maximum deviation (metres) allowed when simplifying a track.
DEFAULT_SIMPLIFY_METRES = _env_float("DEFAULT_SIMPLIFY_METRES", 5.0)


# ---------------------------------------------------------------------------
# Performance tuning
# ---------------------------------------------------------------------------
# Files analysed in parallel.
ANALYSIS_MAX_WORKERS = _env_int("ANALYSIS_MAX_WORKERS", 4)


# ---------------------------------------------------------------------------
# Excel formatting
# ---------------------------------------------------------------------------
EXCEL_DATETIME_FORMAT = "yyyy-mm-dd hh:mm:ss"

# Automatically size columns after writing each sheet (openpyxl only).
EXCEL_AUTOSIZE_COLUMNS = True
EXCEL_AUTOSIZE_MAX_WIDTH = 50  # characters
EXCEL_AUTOSIZE_MIN_WIDTH = 6  # characters
EXCEL_AUTOSIZE_PADDING = 2  # extra characters added to the detected max
EXCEL_AUTOSIZE_MAX_ROWS = (
    5000  # skip autosize for very large sheets (performance guard)
)

STAGE_COLUMN_ORDER = [
    "Stage",
    "Type",
    "Location",
    "Start Time",
    "End Time",
    "Duration (h:mm:ss)",
    "Running Duration (h:mm:ss)",
    "Distance (km)",
    "Running Distance (km)",
    "Avg Speed (km/h)",
    "Running Avg Speed (km/h)",
    "Max Speed (km/h)",
    "Ascent (m)",
    "Ascent Rate (m/km)",
    "Running Ascent (m)",
    "Descent (m)",
    "Descent Rate (m/km)",
    "Running Descent (m)",
    "Min Elevation (m)",
    "Max Elevation (m)",
    "Start Index",
    "End Index",
]
