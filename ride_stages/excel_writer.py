"""Excel workbook for a ride analysis: summary, stages and track points."""

from __future__ import annotations

import logging
from datetime import timedelta
from os import PathLike
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import numpy as np
import pandas as pd
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from .config import EXCEL_DATETIME_FORMAT, STAGE_COLUMN_ORDER
from .geometry.distance import geodesic_steps_m
from .models import StageList, StageType, Track

SUMMARY_SHEET = "Summary"
STAGES_SHEET = "Stages"
TRACK_POINTS_SHEET = "Track Points"
MAP_COLUMN = "Map"
MAP_URL = "https://www.google.com/maps/search/?api=1&query={lat},{lon}"

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(patternType="solid", fgColor="FFFF40FF")
HEADER_BORDER = Border(
    left=Side(style="thin", color="000000"),
    right=Side(style="thin", color="000000"),
    top=Side(style="thin", color="000000"),
    bottom=Side(style="thin", color="000000"),
)
HYPERLINK_FONT = Font(color="0563C1", underline="single")

LOGGER = logging.getLogger(__name__)

PathInput = str | Path | PathLike[str]

__all__ = [
    "build_stage_rows",
    "build_summary_rows",
    "build_track_point_frame",
    "format_duration",
    "highlighted_indices",
    "write_analysis_xlsx",
]


def format_duration(value: Optional[timedelta]) -> str:
    """``h:mm:ss``; hours are not wrapped at 24."""

    if value is None:
        return ""
    total = int(round(value.total_seconds()))
    sign = "-" if total < 0 else ""
    hours, rem = divmod(abs(total), 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{sign}{hours}:{minutes:02d}:{seconds:02d}"


def _round(value: Optional[float], digits: int) -> Optional[float]:
    if value is None or not np.isfinite(value):
        return None
    return round(float(value), digits)


def _excel_time(value: Any) -> Any:
    # Excel cannot store timezone-aware datetimes; every time here is UTC.
    if value is None:
        return None
    return value.replace(tzinfo=None)


def build_summary_rows(track: Track, stages: StageList) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = [
        {"Metric": "Track", "Value": track.name},
        {"Metric": "Source Files", "Value": ", ".join(p.name for p in track.source_files)},
        {"Metric": "Points", "Value": len(track)},
        {"Metric": "Start Time (UTC)", "Value": _excel_time(stages.start_time)},
        {"Metric": "End Time (UTC)", "Value": _excel_time(stages.end_time)},
        {"Metric": "Duration", "Value": format_duration(stages.duration)},
        {"Metric": "Distance (km)", "Value": _round(stages.distance_m / 1000.0, 2)},
        {"Metric": "Moving Time", "Value": format_duration(stages.total_moving_time)},
        {"Metric": "Control Time", "Value": format_duration(stages.total_control_time)},
        {"Metric": "Moving (%)", "Value": _round(stages.moving_percent, 1)},
        {"Metric": "Control (%)", "Value": _round(stages.control_percent, 1)},
        {
            "Metric": "Avg Moving Speed (km/h)",
            "Value": _round(stages.average_moving_speed_kmh, 2),
        },
        {
            "Metric": "Avg Overall Speed (km/h)",
            "Value": _round(stages.average_overall_speed_kmh, 2),
        },
        {"Metric": "Ascent (m)", "Value": _round(stages.ascent_m, 1)},
        {"Metric": "Descent (m)", "Value": _round(stages.descent_m, 1)},
        {"Metric": "Stages", "Value": len(stages)},
        {
            "Metric": "Controls",
            "Value": sum(1 for s in stages if s.stage_type is StageType.CONTROL),
        },
    ]
    return rows


def build_stage_rows(stages: StageList) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for number, stage in enumerate(stages, start=1):
        rows.append(
            {
                "Stage": number,
                "Type": str(stage.stage_type),
                "Location": stage.description or "",
                "Start Time": _excel_time(stage.start_time),
                "End Time": _excel_time(stage.end_time),
                "Duration (h:mm:ss)": format_duration(stage.duration),
                "Running Duration (h:mm:ss)": format_duration(stage.running_duration),
                "Distance (km)": _round(stage.distance_km, 3),
                "Running Distance (km)": _round(stage.running_distance_m / 1000.0, 3),
                "Avg Speed (km/h)": _round(stage.average_speed_kmh, 2),
                "Running Avg Speed (km/h)": _round(stage.running_average_speed_kmh, 2),
                "Max Speed (km/h)": _round(stage.max_speed_kmh, 2),
                "Ascent (m)": stage.ascent_m,
                "Ascent Rate (m/km)": _round(stage.ascent_per_km, 1),
                "Running Ascent (m)": stage.running_ascent_m,
                "Descent (m)": stage.descent_m,
                "Descent Rate (m/km)": _round(stage.descent_per_km, 1),
                "Running Descent (m)": stage.running_descent_m,
                "Min Elevation (m)": stage.min_ele,
                "Max Elevation (m)": stage.max_ele,
                "Start Index": stage.start_index,
                "End Index": stage.end_index,
            }
        )
    return rows


def build_track_point_frame(
    track: Track, stages: StageList, hyperlinks: bool = False
) -> pd.DataFrame:
    """One row per point with its running distance, speed and stage number."""

    steps = geodesic_steps_m(track.points)
    running_km = np.cumsum(steps) / 1000.0
    times = [p.time for p in track.points]
    dt = np.array(
        [0.0] + [(b - a).total_seconds() for a, b in zip(times, times[1:])],
        dtype=float,
    )
    with np.errstate(divide="ignore", invalid="ignore"):
        speeds = np.where(dt > 0, steps / dt * 3.6, np.nan)

    stage_numbers = np.zeros(len(track), dtype=int)
    for number, stage in enumerate(stages, start=1):
        stage_numbers[stage.start_index : stage.end_index + 1] = number

    frame = pd.DataFrame(
        {
            "Index": np.arange(len(track)),
            "Time": [_excel_time(t) for t in times],
            "Lat": [p.lat for p in track.points],
            "Lon": [p.lon for p in track.points],
            "Elevation (m)": [p.ele for p in track.points],
            "Step (m)": np.round(steps, 1),
            "Running Distance (km)": np.round(running_km, 3),
            "Speed (km/h)": np.round(speeds, 2),
            "Stage": stage_numbers,
        }
    )
    # Highlighted points are linked even when hyperlinks are off.
    marked = highlighted_indices(track, stages, speeds)
    frame[MAP_COLUMN] = [
        MAP_URL.format(lat=f"{p.lat:.6f}", lon=f"{p.lon:.6f}")
        if hyperlinks or idx in marked
        else None
        for idx, p in enumerate(track.points)
    ]
    return frame


def highlighted_indices(track: Track, stages: StageList, speeds: np.ndarray) -> Set[int]:
    """Stage start and end points plus each stage's elevation and speed extremes."""

    marked: Set[int] = set()
    for stage in stages:
        first, last = stage.start_index, stage.end_index
        marked.update((first, last))
        eles = [track.points[i].ele for i in range(first, last + 1)]
        if all(e is not None for e in eles):
            values = np.asarray(eles, dtype=float)
            marked.add(first + int(np.argmin(values)))
            marked.add(first + int(np.argmax(values)))
        window = speeds[first : last + 1]
        finite = np.isfinite(window)
        if finite.any():
            marked.add(first + int(np.argmax(np.where(finite, window, -np.inf))))
    return marked


def _autosize(ws: Worksheet) -> None:
    from .config import (
        EXCEL_AUTOSIZE_COLUMNS,
        EXCEL_AUTOSIZE_MAX_WIDTH,
        EXCEL_AUTOSIZE_MIN_WIDTH,
        EXCEL_AUTOSIZE_PADDING,
        EXCEL_AUTOSIZE_MAX_ROWS,
    )

    if not EXCEL_AUTOSIZE_COLUMNS:
        return
    if ws.max_row > EXCEL_AUTOSIZE_MAX_ROWS:
        return
    for col_cells in ws.columns:
        max_len = 0
        col_letter = getattr(col_cells[0], "column_letter", None)
        for cell in col_cells:
            if cell.value is None:
                continue
            max_len = max(max_len, len(str(cell.value)))
        width = min(
            EXCEL_AUTOSIZE_MAX_WIDTH,
            max(EXCEL_AUTOSIZE_MIN_WIDTH, max_len + EXCEL_AUTOSIZE_PADDING),
        )
        if col_letter:
            ws.column_dimensions[col_letter].width = width


def _style_header_row(ws: Worksheet, row_idx: int, max_col: int | None = None) -> None:
    max_col = max_col or ws.max_column
    for col_idx in range(1, max_col + 1):
        cell = ws.cell(row=row_idx, column=col_idx)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = HEADER_BORDER


def _link_map_column(ws: Worksheet, frame: pd.DataFrame) -> None:
    col_idx = list(frame.columns).index(MAP_COLUMN) + 1
    for row_idx in range(2, len(frame) + 2):
        cell = ws.cell(row=row_idx, column=col_idx)
        url = cell.value
        if not url:
            continue
        cell.hyperlink = url
        cell.value = "map"
        cell.font = HYPERLINK_FONT


def _write_sheet(writer: pd.ExcelWriter, frame: pd.DataFrame, sheet_name: str) -> Worksheet:
    frame.to_excel(writer, sheet_name=sheet_name, index=False)
    ws = writer.sheets[sheet_name]
    _style_header_row(ws, 1, len(frame.columns))
    ws.freeze_panes = "A2"
    return ws


def write_analysis_xlsx(
    filepath: PathInput,
    track: Track,
    stages: StageList,
    hyperlinks: bool = False,
) -> Path:
    """Write the analysis workbook for ``track`` and its ``stages``."""

    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)

    summary_df = pd.DataFrame(build_summary_rows(track, stages))
    stages_df = pd.DataFrame(build_stage_rows(stages), columns=STAGE_COLUMN_ORDER)
    points_df = build_track_point_frame(track, stages, hyperlinks=hyperlinks)

    with pd.ExcelWriter(
        path, engine="openpyxl", datetime_format=EXCEL_DATETIME_FORMAT
    ) as writer:
        ws = _write_sheet(writer, summary_df, SUMMARY_SHEET)
        _autosize(ws)
        ws = _write_sheet(writer, stages_df, STAGES_SHEET)
        _autosize(ws)
        ws = _write_sheet(writer, points_df, TRACK_POINTS_SHEET)
        _link_map_column(ws, points_df)
        _autosize(ws)

    LOGGER.info(
        "Wrote analysis workbook %s (stages=%d, points=%d)", path, len(stages), len(track)
    )
    return path
