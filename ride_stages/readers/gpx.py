"""GPX track decoding."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import re
from pathlib import Path
from typing import List, Optional
from xml.etree.ElementTree import Element

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET

from ..errors import EmptyTrackError, TrackReadError
from ..models import Track, TrackPoint

_LOGGER = logging.getLogger(__name__)

GPX_NAMESPACES = (
    "http://www.topografix.com/GPX/1/1",
    "http://www.topografix.com/GPX/1/0",
)


def _tag(element: Element) -> str:
    """Local tag name without any namespace."""

    return element.tag.rsplit("}", 1)[-1]


def _child(element: Element, name: str) -> Optional[Element]:
    for child in element:
        if _tag(child) == name:
            return child
    return None


def _child_text(element: Element, name: str) -> Optional[str]:
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


_FRACTION = re.compile(r"\.(\d+)")


def parse_gpx_time(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits.
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_trkpt(element: Element) -> Optional[TrackPoint]:
    lat_text = element.get("lat")
    lon_text = element.get("lon")
    time_text = _child_text(element, "time")
    if lat_text is None or lon_text is None or time_text is None:
        return None
    try:
        lat = float(lat_text)
        lon = float(lon_text)
        when = parse_gpx_time(time_text)
    except ValueError:
        return None
    ele: Optional[float] = None
    ele_text = _child_text(element, "ele")
    if ele_text is not None:
        try:
            ele = float(ele_text)
        except ValueError:
            ele = None
    return TrackPoint.create(lat, lon, ele, when)


def read_gpx(path: Path | str) -> Track:
    """Read every track point of every track and segment, in document order.

    Points without a position or a timestamp are skipped.
    """

    path = Path(path)
    try:
        tree = ET.parse(str(path))
    except (ET.ParseError, DefusedXmlException) as exc:
        raise TrackReadError(f"{path}: malformed GPX ({exc})") from exc
    except OSError as exc:
        raise TrackReadError(f"{path}: cannot read file ({exc})") from exc

    root = tree.getroot()
    if _tag(root) != "gpx":
        raise TrackReadError(f"{path}: root element is <{_tag(root)}>, expected <gpx>")
    namespace = root.tag[1:].split("}", 1)[0] if root.tag.startswith("{") else ""
    if namespace and namespace not in GPX_NAMESPACES:
        _LOGGER.warning("%s uses unexpected GPX namespace %s", path, namespace)

    name: Optional[str] = None
    points: List[TrackPoint] = []
    skipped = 0
    for trk in (child for child in root if _tag(child) == "trk"):
        if name is None:
            name = _child_text(trk, "name")
        for trkseg in (child for child in trk if _tag(child) == "trkseg"):
            for trkpt in (child for child in trkseg if _tag(child) == "trkpt"):
                point = _parse_trkpt(trkpt)
                if point is None:
                    skipped += 1
                    continue
                points.append(point)

    if skipped:
        _LOGGER.warning("Skipped %d track points without position or time in %s", skipped, path)
    if not points:
        raise EmptyTrackError(f"{path}: no usable track points")
    _LOGGER.info("Read %d track points from %s", len(points), path)
    return Track(name=name or path.stem, points=tuple(points), source_files=(path,))


__all__ = ["GPX_NAMESPACES", "parse_gpx_time", "read_gpx"]
