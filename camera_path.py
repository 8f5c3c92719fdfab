"""Bezier spline paths over [lng, lat] space.

Paths are lists of cubic ``PathSegment`` pieces; the parameter ``t`` in
[0, 1] is divided evenly across segments. Degenerate input never raises:
fewer than two valid waypoints produce an empty path, which evaluates to the
origin with an eastward tangent.
"""
from __future__ import annotations

import math
from bisect import bisect_right
from typing import Sequence

from easing import clamp01, cubic_bezier, lerp
from models import ArcLengthSample, PathSegment, Point, is_valid_point

Path = list[PathSegment]
ArcLengthTable = list[ArcLengthSample]

EARTH_RADIUS_M = 6_378_137.0
METERS_PER_DEGREE = 111_139.0

_TANGENT_EPSILON = 0.001
_CURVATURE_EPSILON = 0.005
_BANKING_EPSILON = 0.01
_STRAIGHT_CURVATURE = 1e-6


def _valid_points(points: Sequence[Sequence[float]] | None) -> list[Point]:
    if not points:
        return []
    return [(float(p[0]), float(p[1])) for p in points if is_valid_point(p)]


def _lerp_point(a: Point, b: Point, t: float) -> Point:
    return (lerp(a[0], b[0], t), lerp(a[1], b[1], t))


# ─── Path creation ────────────────────────────────────────────────────


def create_bezier_path(points: Sequence[Sequence[float]] | None, tension: float = 0.5) -> Path:
    """Catmull-Rom spline through every point, expressed as cubic beziers."""
    pts = _valid_points(points)
    if len(pts) < 2:
        return []

    if len(pts) == 2:
        a, b = pts
        return [PathSegment(a, _lerp_point(a, b, 1 / 3), _lerp_point(a, b, 2 / 3), b)]

    segments: Path = []
    last = len(pts) - 1
    for i in range(last):
        p0 = pts[max(0, i - 1)]
        p1 = pts[i]
        p2 = pts[i + 1]
        p3 = pts[min(last, i + 2)]

        cp1 = (
            p1[0] + (p2[0] - p0[0]) * tension / 6,
            p1[1] + (p2[1] - p0[1]) * tension / 6,
        )
        cp2 = (
            p2[0] - (p3[0] - p1[0]) * tension / 6,
            p2[1] - (p3[1] - p1[1]) * tension / 6,
        )
        segments.append(PathSegment(p1, cp1, cp2, p2))
    return segments


def offset_points(
    points: Sequence[Sequence[float]],
    distance: float = 0.0003,
    side: str = "left",
) -> list[Point]:
    """Shift each point perpendicular to the local direction of travel."""
    pts = _valid_points(points)
    if len(pts) < 2:
        return pts
    if side not in ("left", "right"):
        raise ValueError(f"side must be 'left' or 'right', got: {side!r}")

    sign = 1.0 if side == "left" else -1.0
    shifted: list[Point] = []
    for i, cur in enumerate(pts):
        prev = pts[max(0, i - 1)]
        nxt = pts[min(len(pts) - 1, i + 1)]
        dx = nxt[0] - prev[0]
        dy = nxt[1] - prev[1]
        length = math.hypot(dx, dy)
        if length == 0:
            shifted.append(cur)
            continue
        nx = -dy / length * sign
        ny = dx / length * sign
        shifted.append((cur[0] + nx * distance, cur[1] + ny * distance))
    return shifted


def create_offset_path(
    points: Sequence[Sequence[float]],
    distance: float = 0.0003,
    side: str = "left",
    tension: float = 0.5,
) -> Path:
    return create_bezier_path(offset_points(points, distance, side), tension)


def _ring_points(
    center: Point,
    start_radius: float,
    end_radius: float,
    start_angle: float,
    end_angle: float,
    segments: int,
) -> list[Point]:
    points: list[Point] = []
    for i in range(segments + 1):
        p = i / segments
        angle = math.radians(lerp(start_angle, end_angle, p))
        radius = lerp(start_radius, end_radius, p)
        points.append((center[0] + math.sin(angle) * radius, center[1] + math.cos(angle) * radius))
    return points


def create_orbit_path(
    center: Point,
    radius: float,
    start_angle: float = 0.0,
    end_angle: float = 360.0,
    segments: int = 36,
) -> Path:
    """Circle (or arc) around ``center``; angles are compass degrees."""
    if not is_valid_point(center) or segments < 1:
        return []
    return create_bezier_path(_ring_points(center, radius, radius, start_angle, end_angle, segments), 0.3)


def create_spiral_path(
    center: Point,
    start_radius: float,
    end_radius: float,
    rotations: float = 1.0,
    segments: int = 72,
    start_angle: float = 0.0,
) -> Path:
    if not is_valid_point(center) or segments < 1:
        return []
    points = _ring_points(center, start_radius, end_radius, start_angle, start_angle + rotations * 360.0, segments)
    return create_bezier_path(points, 0.4)


# ─── Evaluation ───────────────────────────────────────────────────────


def evaluate_at(path: Path, t: float) -> Point:
    if not path:
        return (0.0, 0.0)

    t = clamp01(t)
    count = len(path)
    scaled = t * count
    index = min(int(math.floor(scaled)), count - 1)
    local = scaled - index

    seg = path[index]
    return (
        cubic_bezier(local, seg.p0[0], seg.p1[0], seg.p2[0], seg.p3[0]),
        cubic_bezier(local, seg.p0[1], seg.p1[1], seg.p2[1], seg.p3[1]),
    )


def get_tangent_at(path: Path, t: float) -> Point:
    """Unit direction at ``t`` by central difference."""
    if not path:
        return (1.0, 0.0)

    a = evaluate_at(path, clamp01(t - _TANGENT_EPSILON))
    b = evaluate_at(path, clamp01(t + _TANGENT_EPSILON))
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length = math.hypot(dx, dy)
    if length == 0:
        return (1.0, 0.0)
    return (dx / length, dy / length)


def get_bearing_at(path: Path, t: float) -> float:
    """Compass bearing of the tangent (north = 0, clockwise), in [0, 360)."""
    dx, dy = get_tangent_at(path, t)
    return math.degrees(math.atan2(dx, dy)) % 360.0


def _bearing_delta(a: float, b: float) -> float:
    return ((b - a + 180.0) % 360.0) - 180.0


def get_curvature_at(path: Path, t: float) -> float:
    """Rate of bearing change per unit ``t``, in radians."""
    b1 = get_bearing_at(path, clamp01(t - _CURVATURE_EPSILON))
    b2 = get_bearing_at(path, clamp01(t + _CURVATURE_EPSILON))
    diff = abs(_bearing_delta(b1, b2))
    return math.radians(diff) / (_CURVATURE_EPSILON * 2)


# ─── Arc length ───────────────────────────────────────────────────────


def get_arc_length(path: Path, samples: int = 100) -> float:
    if not path:
        return 0.0
    length = 0.0
    prev = evaluate_at(path, 0.0)
    for i in range(1, samples + 1):
        point = evaluate_at(path, i / samples)
        length += math.hypot(point[0] - prev[0], point[1] - prev[1])
        prev = point
    return length


def create_arc_length_table(path: Path, samples: int = 200) -> ArcLengthTable:
    """Cumulative chord length at evenly spaced ``t``."""
    samples = max(1, samples)
    ts = [i / samples for i in range(samples + 1)]
    lengths = [0.0]
    prev = evaluate_at(path, 0.0)
    for t in ts[1:]:
        point = evaluate_at(path, t)
        lengths.append(lengths[-1] + math.hypot(point[0] - prev[0], point[1] - prev[1]))
        prev = point

    total = lengths[-1]
    if total <= 0:
        # Zero-length path: fall back to the t grid so lookups stay monotonic.
        return [ArcLengthSample(t, 0.0, t) for t in ts]
    return [ArcLengthSample(t, length, length / total) for t, length in zip(ts, lengths)]


def reparameterize(table: ArcLengthTable, s: float) -> float:
    """Map a fraction of distance traveled to the curve parameter ``t``."""
    if not table:
        return clamp01(s)
    s = clamp01(s)

    low = 0
    high = len(table) - 1
    while low < high - 1:
        mid = (low + high) // 2
        if table[mid].normalized_arc_length < s:
            low = mid
        else:
            high = mid

    a = table[low]
    b = table[high]
    span = b.normalized_arc_length - a.normalized_arc_length
    if span <= 0:
        return a.t if s <= a.normalized_arc_length else b.t
    return lerp(a.t, b.t, clamp01((s - a.normalized_arc_length) / span))


# ─── Banking ──────────────────────────────────────────────────────────


def calculate_banking(path: Path, t: float, max_roll: float = 4.0) -> float:
    """Signed roll in degrees: positive on right turns, capped at ``max_roll``."""
    curvature = get_curvature_at(path, t)
    if curvature < _STRAIGHT_CURVATURE:
        return 0.0

    b1 = get_bearing_at(path, clamp01(t))
    b2 = get_bearing_at(path, clamp01(t + _BANKING_EPSILON))
    delta = _bearing_delta(b1, b2)
    if delta == 0:
        # At the end of the path look backwards for the turn direction.
        delta = _bearing_delta(get_bearing_at(path, clamp01(t - _BANKING_EPSILON)), b1)
    direction = math.copysign(1.0, delta) if delta else 0.0

    return min(curvature * 100, 1.0) * max_roll * direction


# ─── Utilities ────────────────────────────────────────────────────────


def calculate_bearing(start: Point, end: Point) -> float:
    """Forward azimuth from ``start`` to ``end`` in degrees [0, 360)."""
    lng1, lat1 = start
    lng2, lat2 = end
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlng = math.radians(lng2 - lng1)
    y = math.sin(dlng) * math.cos(lat2_r)
    x = math.cos(lat1_r) * math.sin(lat2_r) - math.sin(lat1_r) * math.cos(lat2_r) * math.cos(dlng)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def calculate_distance(start: Point, end: Point) -> float:
    """Planar distance in degrees; adequate at map zoom scales."""
    return math.hypot(end[0] - start[0], end[1] - start[1])


def distance_m(start: Point, end: Point) -> float:
    lng1, lat1 = start
    lng2, lat2 = end
    lat1_r, lng1_r = math.radians(lat1), math.radians(lng1)
    lat2_r, lng2_r = math.radians(lat2), math.radians(lng2)
    dlat = lat2_r - lat1_r
    dlng = lng2_r - lng1_r
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def simplify_path(points: Sequence[Sequence[float]], tolerance: float = 0.0001) -> list[Point]:
    """Drop interior points closer than ``tolerance`` to the last kept point."""
    pts = _valid_points(points)
    if len(pts) < 3:
        return pts

    result = [pts[0]]
    last = pts[0]
    for point in pts[1:-1]:
        if calculate_distance(last, point) >= tolerance:
            result.append(point)
            last = point
    result.append(pts[-1])
    return result


def route_prefix(points: Sequence[Sequence[float]], fraction: float) -> list[Point]:
    """The part of a polyline covered after ``fraction`` of its length."""
    pts = _valid_points(points)
    if len(pts) < 2:
        return pts
    fraction = clamp01(fraction)

    cumulative = [0.0]
    for a, b in zip(pts, pts[1:]):
        cumulative.append(cumulative[-1] + calculate_distance(a, b))
    total = cumulative[-1]
    if total <= 0 or fraction >= 1:
        return pts

    target = fraction * total
    idx = bisect_right(cumulative, target)
    if idx >= len(pts):
        return pts
    a, b = pts[idx - 1], pts[idx]
    span = cumulative[idx] - cumulative[idx - 1]
    head = _lerp_point(a, b, (target - cumulative[idx - 1]) / span if span > 0 else 0.0)
    prefix = pts[:idx]
    if head != prefix[-1]:
        prefix.append(head)
    return prefix
