from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from enum import Enum

Point = tuple[float, float]

MAX_PITCH_DEG = 85.0


def is_valid_point(point) -> bool:
    """True for a 2-sequence of finite numbers."""
    try:
        lng, lat = point[0], point[1]
    except (TypeError, IndexError, KeyError):
        return False
    try:
        return math.isfinite(float(lng)) and math.isfinite(float(lat))
    except (TypeError, ValueError):
        return False


def _coerce_point(value) -> Point:
    """Float pair from ``value``, or (nan, nan) when it cannot be read as one."""
    try:
        return (float(value[0]), float(value[1]))
    except (TypeError, ValueError, IndexError, KeyError):
        return (math.nan, math.nan)


class ShotType(str, Enum):
    ESTABLISHING = "establishing"
    JOURNEY = "journey"
    REVEAL = "reveal"
    LANDMARK_HIGHLIGHT = "landmark_highlight"
    CONTEXTUAL_ORBIT = "contextual_orbit"
    CUSTOM = "custom"


@dataclass(frozen=True)
class CameraState:
    center: Point = (0.0, 0.0)
    zoom: float = 14.0
    pitch: float = 0.0
    bearing: float = 0.0
    roll: float = 0.0

    def normalized(self) -> CameraState:
        return replace(
            self,
            center=(float(self.center[0]), float(self.center[1])),
            pitch=max(0.0, min(MAX_PITCH_DEG, self.pitch)),
            bearing=self.bearing % 360.0,
        )

    def with_offsets(self, offsets: BreathingState) -> CameraState:
        return replace(
            self,
            pitch=self.pitch + offsets.pitch,
            bearing=self.bearing + offsets.bearing,
            zoom=self.zoom + offsets.zoom,
        )

    def to_dict(self) -> dict:
        return {
            "center": [self.center[0], self.center[1]],
            "zoom": self.zoom,
            "pitch": self.pitch,
            "bearing": self.bearing,
            "roll": self.roll,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CameraState:
        center = data.get("center", (0.0, 0.0))
        return cls(
            center=(float(center[0]), float(center[1])),
            zoom=float(data.get("zoom", 14.0)),
            pitch=float(data.get("pitch", 0.0)),
            bearing=float(data.get("bearing", 0.0)),
            roll=float(data.get("roll", 0.0)),
        )


@dataclass(frozen=True)
class BreathingState:
    pitch: float = 0.0
    bearing: float = 0.0
    zoom: float = 0.0

    def scaled(self, pitch: float, bearing: float, zoom: float) -> BreathingState:
        return BreathingState(self.pitch * pitch, self.bearing * bearing, self.zoom * zoom)


@dataclass(frozen=True)
class PathSegment:
    p0: Point
    p1: Point
    p2: Point
    p3: Point


@dataclass(frozen=True)
class ArcLengthSample:
    t: float
    arc_length: float
    normalized_arc_length: float


@dataclass(frozen=True)
class CameraKeyframe:
    t: float
    state: CameraState

    def to_dict(self) -> dict:
        return {"t": self.t, **self.state.to_dict()}


@dataclass(frozen=True)
class Landmark:
    coordinates: Point
    title: str = ""
    landmark_id: str | None = None

    @property
    def is_valid(self) -> bool:
        return is_valid_point(self.coordinates)

    @classmethod
    def from_dict(cls, data: dict) -> Landmark:
        """Build from ``{"coordinates": [lng, lat]}`` or ``{"lng", "lat"}``.

        Missing or non-numeric coordinates give an invalid landmark instead of
        raising.
        """
        coords = data.get("coordinates")
        if coords is None:
            coords = (data.get("lng"), data.get("lat"))
        ident = data.get("id")
        return cls(
            coordinates=_coerce_point(coords),
            title=str(data.get("title") or ""),
            landmark_id=None if ident is None else str(ident),
        )

    @classmethod
    def from_value(cls, item) -> Landmark:
        """Accept a Landmark, a dict or a ``[lng, lat]`` pair; anything else is invalid."""
        if isinstance(item, Landmark):
            return item
        if isinstance(item, dict):
            return cls.from_dict(item)
        return cls(coordinates=_coerce_point(item))


@dataclass
class ShotResult:
    shot: ShotType
    cancelled: bool = False
    skipped: bool = False
    distance_m: float | None = None
    phases: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["shot"] = self.shot.value
        return data
