"""Timing curves for cinematic camera motion.

Every function maps a normalized progress value to an eased value. Functions
used as progress mappings satisfy ``f(0) == 0`` and ``f(1) == 1``; the
oscillators (``gentle_pulse``, ``breathing_motion``) and the arc shapes take
unbounded time or return to zero and are exempt.
"""
from __future__ import annotations

import math
from typing import Callable

from models import BreathingState

Easing = Callable[[float], float]


# ─── Core curves ──────────────────────────────────────────────────────


def clamp01(t: float) -> float:
    return max(0.0, min(1.0, t))


def smootherstep(t: float) -> float:
    """Perlin's 6t^5 - 15t^4 + 10t^3: zero first and second derivative at both ends."""
    t = clamp01(t)
    return t * t * t * (t * (t * 6 - 15) + 10)


def ease_in_out_sine(t: float) -> float:
    return -(math.cos(math.pi * t) - 1) / 2


def ease_in_out_quad(t: float) -> float:
    return 2 * t * t if t < 0.5 else 1 - (-2 * t + 2) ** 2 / 2


def ease_in_out_cubic(t: float) -> float:
    return 4 * t**3 if t < 0.5 else 1 - (-2 * t + 2) ** 3 / 2


def ease_in_out_quart(t: float) -> float:
    return 8 * t**4 if t < 0.5 else 1 - (-2 * t + 2) ** 4 / 2


def ease_in_out_quint(t: float) -> float:
    return 16 * t**5 if t < 0.5 else 1 - (-2 * t + 2) ** 5 / 2


# ─── Cinematic compounds ──────────────────────────────────────────────


def cinematic_ease_in_out(t: float) -> float:
    """General-purpose camera curve: blend of smootherstep, sine and quad."""
    return smootherstep(t) * 0.5 + ease_in_out_sine(t) * 0.3 + ease_in_out_quad(t) * 0.2


def dramatic_reveal(t: float) -> float:
    return ease_in_out_quint(t)


def drone_takeoff(t: float) -> float:
    """Slow lift (15% of time, 5% of motion), long ascent, gentle settle."""
    if t < 0.15:
        return 0.05 * ease_in_out_quad(t / 0.15)
    if t < 0.85:
        return 0.05 + 0.85 * ease_in_out_sine((t - 0.15) / 0.7)
    return 0.9 + 0.1 * smootherstep((t - 0.85) / 0.15)


def drone_landing(t: float) -> float:
    """Fast approach (20% of time, 40% of motion), deceleration, hover-settle."""
    if t < 0.2:
        return 0.4 * ease_in_out_quad(t / 0.2)
    if t < 0.7:
        return 0.4 + 0.45 * ease_in_out_sine((t - 0.2) / 0.5)
    return 0.85 + 0.15 * smootherstep((t - 0.7) / 0.3)


def orbit_cruise(t: float, ease_region: float = 0.15) -> float:
    """Accelerates over the first ``ease_region``, cruises at constant speed,
    decelerates over the last ``ease_region``. Velocity is continuous at both joins.
    """
    if ease_region <= 0:
        return t
    cruise = 1 / (1 - ease_region)
    if t < ease_region:
        return cruise * t * t / (2 * ease_region)
    if t > 1 - ease_region:
        return 1 - cruise * (1 - t) ** 2 / (2 * ease_region)
    return cruise * (t - ease_region / 2)


# ─── Physics-based ────────────────────────────────────────────────────


def spring_damped(
    t: float,
    stiffness: float = 100.0,
    damping: float = 10.0,
    mass: float = 1.0,
) -> float:
    """Spring settle toward 1. The damping ratio picks the branch."""
    omega = math.sqrt(stiffness / mass)
    zeta = damping / (2 * math.sqrt(stiffness * mass))
    x = t * 3
    if math.isclose(zeta, 1.0):
        return 1 - (1 + omega * x) * math.exp(-omega * x)
    if zeta < 1:
        omega_d = omega * math.sqrt(1 - zeta * zeta)
        envelope = math.exp(-zeta * omega * x)
        return 1 - envelope * (math.cos(omega_d * x) + zeta * omega / omega_d * math.sin(omega_d * x))
    root = math.sqrt(zeta * zeta - 1)
    r1 = -omega * (zeta - root)
    r2 = -omega * (zeta + root)
    return 1 - (r2 * math.exp(r1 * x) - r1 * math.exp(r2 * x)) / (r2 - r1)


def exponential_decay(t: float, rate: float = 5.0) -> float:
    """Momentum slowdown, rescaled so the curve reaches exactly 1 at t=1."""
    if rate == 0:
        return t
    return (1 - math.exp(-rate * t)) / (1 - math.exp(-rate))


def elastic_settle(t: float) -> float:
    if t <= 0:
        return 0.0
    if t >= 1:
        return 1.0
    c4 = (2 * math.pi) / 3
    return 2 ** (-10 * t) * math.sin((t * 10 - 0.75) * c4) + 1


# ─── Compound timing ──────────────────────────────────────────────────


def hold_then_move(t: float, hold_ratio: float = 0.3) -> float:
    if t < hold_ratio:
        return 0.0
    if hold_ratio >= 1:
        return 1.0
    return cinematic_ease_in_out((t - hold_ratio) / (1 - hold_ratio))


def move_and_settle(t: float, settle_ratio: float = 0.2) -> float:
    """Animate to 98% over the move phase, then micro-settle the last 2%."""
    move_ratio = 1 - settle_ratio
    if t < move_ratio:
        return cinematic_ease_in_out(t / move_ratio) * 0.98
    if settle_ratio <= 0:
        return 1.0
    return 0.98 + smootherstep((t - move_ratio) / settle_ratio) * 0.02


# ─── Continuous oscillators ───────────────────────────────────────────


def gentle_pulse(t: float, amplitude: float = 0.02, frequency: float = 0.5) -> float:
    return amplitude * math.sin(t * frequency * math.pi * 2)


def breathing_motion(t: float) -> BreathingState:
    """Slow breath + micro tremor + drift, as independent offsets."""
    slow_breath = math.sin(t * 0.3) * 0.5
    micro_tremor = math.sin(t * 1.7) * 0.1
    drift = math.sin(t * 0.1) * 0.3
    return BreathingState(
        pitch=slow_breath + micro_tremor * 0.5,
        bearing=drift + micro_tremor * 0.3,
        zoom=(slow_breath + drift) * 0.002,
    )


# ─── Interpolation ────────────────────────────────────────────────────


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def lerp_bearing(start: float, end: float, t: float) -> float:
    """Interpolate along the shorter arc of the compass; result in [0, 360)."""
    delta = ((end - start + 180.0) % 360.0) - 180.0
    return (start + delta * t) % 360.0


def cubic_bezier(t: float, p0: float, p1: float, p2: float, p3: float) -> float:
    inv = 1 - t
    return inv * inv * inv * p0 + 3 * inv * inv * t * p1 + 3 * inv * t * t * p2 + t * t * t * p3


def quadratic_bezier(t: float, p0: float, p1: float, p2: float) -> float:
    inv = 1 - t
    return inv * inv * p0 + 2 * inv * t * p1 + t * t * p2


# ─── Arcs ─────────────────────────────────────────────────────────────


def parabolic_arc(t: float, depth: float = 1.0) -> float:
    """0 → depth → 0 over t in [0, 1]; used for mid-flight zoom-out."""
    return math.sin(t * math.pi) * depth


def asymmetric_arc(t: float, peak: float = 0.4, depth: float = 1.0) -> float:
    if t < peak:
        return ease_in_out_sine(t / peak) * depth
    return ease_in_out_sine(1 - (t - peak) / (1 - peak)) * depth


EASING_FUNCTIONS: dict[str, Easing] = {
    "linear": lambda t: t,
    "smootherstep": smootherstep,
    "ease_in_out_sine": ease_in_out_sine,
    "ease_in_out_quad": ease_in_out_quad,
    "ease_in_out_cubic": ease_in_out_cubic,
    "ease_in_out_quart": ease_in_out_quart,
    "ease_in_out_quint": ease_in_out_quint,
    "cinematic_ease_in_out": cinematic_ease_in_out,
    "dramatic_reveal": dramatic_reveal,
    "drone_takeoff": drone_takeoff,
    "drone_landing": drone_landing,
    "orbit_cruise": orbit_cruise,
    "spring_damped": spring_damped,
    "exponential_decay": exponential_decay,
    "elastic_settle": elastic_settle,
    "hold_then_move": hold_then_move,
    "move_and_settle": move_and_settle,
}

# Spring curves approach 1 asymptotically, so they are usable but not exact.
PROGRESS_EASINGS: tuple[str, ...] = tuple(name for name in EASING_FUNCTIONS if name != "spring_damped")


def get_easing(name: str) -> Easing:
    try:
        return EASING_FUNCTIONS[name]
    except KeyError:
        raise KeyError(f"Unknown easing: {name!r}. Available: {', '.join(EASING_FUNCTIONS)}") from None
