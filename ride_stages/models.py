"""Dataclasses describing tracks, stages and gazetteer places."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from .errors import EmptyTrackError, TrackOrderError

LatLon = Tuple[float, float]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class TrackPoint:
    """A single GPS fix. Produced by a decoder and never modified."""

    lat: float
    lon: float
    ele: Optional[float]
    time: datetime

    @classmethod
    def create(
        cls,
        lat: float,
        lon: float,
        ele: Optional[float],
        time: datetime,
    ) -> "TrackPoint":
        """Build a point with the canonical precision (6dp lat/lon, 1dp ele, UTC)."""

        return cls(
            lat=round(float(lat), 6),
            lon=round(float(lon), 6),
            ele=None if ele is None else round(float(ele), 1),
            time=_as_utc(time),
        )

    @property
    def latlon(self) -> LatLon:
        return self.lat, self.lon


@dataclass(frozen=True, slots=True)
class Track:
    """An ordered, non-empty sequence of points from one or more recordings."""

    name: str
    points: Tuple[TrackPoint, ...]
    source_files: Tuple[Path, ...] = ()

    def __post_init__(self) -> None:
        if not self.points:
            raise EmptyTrackError(f"Track {self.name!r} has no points")
        previous = self.points[0].time
        for idx, point in enumerate(self.points[1:], start=1):
            if point.time < previous:
                raise TrackOrderError(
                    f"Track {self.name!r} goes back in time at point {idx}: "
                    f"{point.time.isoformat()} < {previous.isoformat()}"
                )
            previous = point.time

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[TrackPoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> TrackPoint:
        return self.points[index]

    @property
    def start_time(self) -> datetime:
        return self.points[0].time

    @property
    def end_time(self) -> datetime:
        return self.points[-1].time

    def with_points(self, points: Sequence[TrackPoint]) -> "Track":
        """Return a copy of this track holding a different point sequence."""

        return Track(name=self.name, points=tuple(points), source_files=self.source_files)


class StageType(str, Enum):
    MOVING = "Moving"
    CONTROL = "Control"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Stage:
    """A contiguous, inclusive index range of a track tagged Moving or Control.

    ``start_time`` is the time of the point *before* the stage's first point:
    a point recorded after a long pause carries the time at the end of that
    pause, so the pause belongs to the stage the point opens. Distance, ascent
    and descent are measured over the same span.
    """

    stage_type: StageType
    start_index: int
    end_index: int
    start: TrackPoint
    end: TrackPoint
    start_time: datetime
    distance_m: float
    running_distance_m: float
    ascent_m: Optional[float]
    descent_m: Optional[float]
    min_ele: Optional[float]
    max_ele: Optional[float]
    max_speed_kmh: Optional[float]
    # Time of the first point of the whole track.
    track_start_time: datetime
    running_ascent_m: Optional[float]
    running_descent_m: Optional[float]
    start_place: Optional[str] = None
    end_place: Optional[str] = None

    @property
    def end_time(self) -> datetime:
        return self.end.time

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def point_count(self) -> int:
        return self.end_index - self.start_index + 1

    @property
    def distance_km(self) -> float:
        return self.distance_m / 1000.0

    @property
    def average_speed_kmh(self) -> Optional[float]:
        seconds = self.duration.total_seconds()
        if seconds <= 0:
            return None
        return speed_kmh(self.distance_m, seconds)

    @property
    def running_duration(self) -> timedelta:
        """Time from the start of the track to the end of this stage."""

        return self.end_time - self.track_start_time

    @property
    def running_average_speed_kmh(self) -> Optional[float]:
        seconds = self.running_duration.total_seconds()
        if seconds <= 0:
            return None
        return speed_kmh(self.running_distance_m, seconds)

    @property
    def ascent_per_km(self) -> Optional[float]:
        return _per_km(self.ascent_m, self.distance_m)

    @property
    def descent_per_km(self) -> Optional[float]:
        return _per_km(self.descent_m, self.distance_m)

    @property
    def description(self) -> Optional[str]:
        """Place names for the stage: the stop location, or start to end when Moving."""

        if self.stage_type is StageType.CONTROL:
            return self.start_place
        if self.start_place and self.end_place:
            if self.start_place == self.end_place:
                return self.start_place
            return f"{self.start_place} to {self.end_place}"
        return self.start_place or self.end_place


@dataclass(frozen=True, slots=True)
class StageList:
    """Ordered, gap-free stages covering a whole track, plus ride totals."""

    stages: Tuple[Stage, ...]

    def __len__(self) -> int:
        return len(self.stages)

    def __iter__(self) -> Iterator[Stage]:
        return iter(self.stages)

    def __getitem__(self, index: int) -> Stage:
        return self.stages[index]

    @property
    def types(self) -> List[StageType]:
        return [s.stage_type for s in self.stages]

    @property
    def start_time(self) -> datetime:
        return self.stages[0].start_time

    @property
    def end_time(self) -> datetime:
        return self.stages[-1].end_time

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def total_control_time(self) -> timedelta:
        return sum(
            (s.duration for s in self.stages if s.stage_type is StageType.CONTROL),
            timedelta(0),
        )

    @property
    def total_moving_time(self) -> timedelta:
        return self.duration - self.total_control_time

    @property
    def distance_m(self) -> float:
        return sum(s.distance_m for s in self.stages)

    @property
    def ascent_m(self) -> Optional[float]:
        values = [s.ascent_m for s in self.stages]
        if any(v is None for v in values):
            return None
        return sum(v for v in values if v is not None)

    @property
    def descent_m(self) -> Optional[float]:
        values = [s.descent_m for s in self.stages]
        if any(v is None for v in values):
            return None
        return sum(v for v in values if v is not None)

    @property
    def moving_percent(self) -> Optional[float]:
        total = self.duration.total_seconds()
        if total <= 0:
            return None
        return 100.0 * self.total_moving_time.total_seconds() / total

    @property
    def control_percent(self) -> Optional[float]:
        moving = self.moving_percent
        return None if moving is None else 100.0 - moving

    @property
    def average_moving_speed_kmh(self) -> Optional[float]:
        seconds = self.total_moving_time.total_seconds()
        if seconds <= 0:
            return None
        return speed_kmh(self.distance_m, seconds)

    @property
    def average_overall_speed_kmh(self) -> Optional[float]:
        seconds = self.duration.total_seconds()
        if seconds <= 0:
            return None
        return speed_kmh(self.distance_m, seconds)


@dataclass(frozen=True, slots=True)
class PlaceRecord:
    """A populated place from the GeoNames gazetteer."""

    name: str
    lat: float
    lon: float
    country_code: str
    admin1: str = ""
    admin2: str = ""
    timezone: str = ""


@dataclass(frozen=True, slots=True)
class PlaceMatch:
    """Result of a nearest-place query."""

    place: PlaceRecord
    distance_m: float


@dataclass(slots=True)
class GazetteerCacheEntry:
    """On-disk dataset for one country and when it was fetched."""

    country_code: str
    path: Path
    fetched_at: Optional[datetime] = None
    url: Optional[str] = None
    size_bytes: int = 0


def speed_kmh(metres: float, seconds: float) -> float:
    """Calculate speed in km/h from metres and seconds."""

    return (metres / seconds) * 3.6


def _per_km(metres: Optional[float], distance_m: float) -> Optional[float]:
    """Climb in metres per km of distance, None when either is unknown or zero."""

    if metres is None or distance_m <= 0:
        return None
    return metres / (distance_m / 1000.0)
