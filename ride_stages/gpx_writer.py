"""Write tracks back out as GPX 1.1."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import xml.etree.ElementTree as ET

from .models import Track, TrackPoint

_LOGGER = logging.getLogger(__name__)

GPX_NS = "http://www.topografix.com/GPX/1/1"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
CREATOR = "ride_stages"


def format_time(value: datetime) -> str:
    """UTC timestamp with a ``Z`` suffix, as most GPX consumers expect."""

    utc = value.astimezone(timezone.utc).replace(tzinfo=None)
    return utc.isoformat(timespec="seconds") + "Z"


def _trkpt(parent: ET.Element, point: TrackPoint, minimal: bool) -> None:
    trkpt = ET.SubElement(
        parent,
        "trkpt",
        {"lat": f"{point.lat:.6f}", "lon": f"{point.lon:.6f}"},
    )
    if point.ele is not None:
        ele = ET.SubElement(trkpt, "ele")
        ele.text = f"{point.ele:.1f}"
    if not minimal:
        time_el = ET.SubElement(trkpt, "time")
        time_el.text = format_time(point.time)


def build_gpx_tree(track: Track, minimal: bool = False) -> ET.ElementTree:
    """Build the GPX document for ``track``.

    ``minimal`` drops the metadata block and per-point timestamps, which is
    enough for route planners and roughly halves the file size.
    """

    attrs = {
        "version": "1.1",
        "creator": CREATOR,
        "xmlns": GPX_NS,
        "xmlns:xsi": XSI_NS,
        "xsi:schemaLocation": f"{GPX_NS} {GPX_NS}/gpx.xsd",
    }
    gpx = ET.Element("gpx", attrs)
    if not minimal:
        metadata = ET.SubElement(gpx, "metadata")
        meta_name = ET.SubElement(metadata, "name")
        meta_name.text = track.name
        meta_time = ET.SubElement(metadata, "time")
        meta_time.text = format_time(track.start_time)

    trk = ET.SubElement(gpx, "trk")
    trk_name = ET.SubElement(trk, "name")
    trk_name.text = track.name
    trkseg = ET.SubElement(trk, "trkseg")
    for point in track.points:
        _trkpt(trkseg, point, minimal)

    tree = ET.ElementTree(gpx)
    ET.indent(tree, space="  ")
    return tree


def write_gpx(path: Path | str, track: Track, minimal: bool = False) -> Path:
    """Write ``track`` to ``path``. The file is replaced only once complete."""

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.with_suffix(output_path.suffix + ".tmp")
    tree = build_gpx_tree(track, minimal=minimal)
    tree.write(temp_path, encoding="utf-8", xml_declaration=True)
    temp_path.replace(output_path)
    _LOGGER.info("Wrote %d points to %s", len(track), output_path)
    return output_path


__all__ = ["build_gpx_tree", "format_time", "write_gpx"]
