"""Per-shot configuration with explicit defaults. Durations are in seconds."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import TypeVar

T = TypeVar("T")


def with_overrides(config: T, **overrides) -> T:
    """``dataclasses.replace`` that names unknown keys instead of a TypeError."""
    known = {f.name for f in fields(config)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown {type(config).__name__} option(s): {', '.join(unknown)}")
    updated = replace(config, **overrides)
    validate = getattr(updated, "validate", None)
    if validate is not None:
        validate()
    return updated


def _require_non_negative(config, *names: str) -> None:
    for name in names:
        value = getattr(config, name)
        if value is not None and value < 0:
            raise ValueError(f"{type(config).__name__}.{name} must be >= 0, got: {value}")


@dataclass(frozen=True)
class EstablishingConfig:
    duration: float = 7.0
    start_zoom: float = 10.0
    end_zoom: float = 14.0
    start_pitch: float = 25.0
    end_pitch: float = 50.0
    orbit_angle: float = 45.0
    setup_delay: float = 0.3

    def validate(self) -> None:
        _require_non_negative(self, "duration", "setup_delay")


@dataclass(frozen=True)
class JourneyConfig:
    duration: float | None = None
    zoom: float = 16.5
    pitch: float = 58.0
    camera_offset: float = 0.0003
    offset_side: str = "left"
    max_banking: float = 3.0
    route_draw_ahead: float = 0.0
    simplify_tolerance: float = 0.0001
    seconds_per_degree: float = 500.0
    min_duration: float = 5.0
    max_duration: float = 15.0

    def validate(self) -> None:
        _require_non_negative(self, "duration", "max_banking", "route_draw_ahead", "min_duration", "max_duration")
        if self.offset_side not in ("left", "right"):
            raise ValueError(f"JourneyConfig.offset_side must be 'left' or 'right', got: {self.offset_side!r}")
        if self.min_duration > self.max_duration:
            raise ValueError("JourneyConfig.min_duration cannot exceed max_duration")


@dataclass(frozen=True)
class RevealConfig:
    approach_duration: float = 3.5
    settle_duration: float = 2.5
    zoom: float = 17.0
    start_pitch: float = 65.0
    end_pitch: float = 52.0
    orbit_angle: float = 30.0
    settle_orbit_angle: float = 8.0
    settle_zoom_pulse: float = 0.05

    def validate(self) -> None:
        _require_non_negative(self, "approach_duration", "settle_duration")


@dataclass(frozen=True)
class HighlightConfig:
    duration: float = 3.5
    zoom: float = 17.0
    pitch: float = 55.0
    bearing: float | None = None
    curve_intensity: float = 0.15
    parallax_zoom_out: float = 1.2
    # Orbit phase after arrival; 0 keeps the highlight to a single flight.
    orbit_angle: float = 0.0
    orbit_duration: float = 5.0
    orbit_radius: float = 0.001
    orbit_zoom: float = 17.5
    orbit_pitch: float = 60.0
    orbit_approach_duration: float = 0.8

    def validate(self) -> None:
        _require_non_negative(self, "duration", "orbit_duration", "orbit_radius", "orbit_approach_duration")


@dataclass(frozen=True)
class OrbitConfig:
    duration: float = 10.0
    radius: float = 0.003
    radius_growth: float = 1.0
    rotation: float = 360.0
    pitch: float = 55.0
    zoom: float = 16.0
    zoom_pulse: float = 0.2
    segments: int = 72
    label_thresholds: tuple[float, ...] = (90.0, 180.0, 270.0, 360.0)

    def validate(self) -> None:
        _require_non_negative(self, "duration", "radius", "radius_growth")
        if self.segments < 1:
            raise ValueError(f"OrbitConfig.segments must be >= 1, got: {self.segments}")


@dataclass(frozen=True)
class FlyToConfig:
    duration: float = 5.0
    # Flights longer than this sweep along a curve with a zoom/pitch arc.
    arc_threshold: float = 4.0
    curve_magnitude: float = 0.2
    arc_pitch_dip: float = 15.0
    arc_zoom_out: float = 1.5

    def validate(self) -> None:
        _require_non_negative(self, "duration", "arc_threshold")


@dataclass(frozen=True)
class BreathingConfig:
    pitch_amplitude: float = 0.5
    bearing_amplitude: float = 0.3
    zoom_amplitude: float = 0.001
    time_scale: float = 1.0


@dataclass(frozen=True)
class TourTimings:
    initial_delay: float = 0.8
    establishing: float = 7.0
    intro: float = 6.0
    flight: float = 8.0
    landmark_pause: float = 2.5
    outro: float = 6.0

    def validate(self) -> None:
        _require_non_negative(self, *(f.name for f in fields(self)))


@dataclass(frozen=True)
class TourOptions:
    skip_establishing: bool = False
    zoom: float | None = None
    pitch: float | None = None
    orbit_angle: float | None = None


@dataclass(frozen=True)
class TourConfig:
    timings: TourTimings = field(default_factory=TourTimings)
    establishing: EstablishingConfig = field(default_factory=EstablishingConfig)
    reveal: RevealConfig = field(default_factory=RevealConfig)
    highlight: HighlightConfig = field(default_factory=HighlightConfig)
    journey: JourneyConfig = field(default_factory=JourneyConfig)
    orbit: OrbitConfig = field(default_factory=OrbitConfig)
    fly_to: FlyToConfig = field(default_factory=FlyToConfig)
    breathing: BreathingConfig = field(default_factory=BreathingConfig)
    overview_zoom: float = 14.0
    overview_pitch: float = 0.0
    overview_bearing: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> TourConfig:
        config = cls()
        sections = {f.name for f in fields(config) if is_dataclass(getattr(config, f.name))}
        overrides: dict = {}
        for key, value in (data or {}).items():
            if key not in sections:
                overrides[key] = value
                continue
            if not isinstance(value, dict):
                raise ValueError(f"Tour config section '{key}' must be an object")
            # JSON has no tuples
            value = {k: tuple(v) if isinstance(v, list) else v for k, v in value.items()}
            overrides[key] = with_overrides(getattr(config, key), **value)
        return with_overrides(config, **overrides)


def load_tour_config(path: Path) -> TourConfig:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid tour config JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Tour config must be a JSON object: {path}")
    return TourConfig.from_dict(data)
