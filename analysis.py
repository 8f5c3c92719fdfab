from __future__ import annotations

from statistics import mean, pstdev

from camera_path import distance_m
from models import CameraKeyframe, ShotResult

# Frames recorded at the same clock tick carry no speed information.
_MIN_DT = 1e-6


def segment_metrics(keyframes: list[CameraKeyframe]) -> list[dict]:
    segments: list[dict] = []
    for i in range(len(keyframes) - 1):
        a = keyframes[i]
        b = keyframes[i + 1]
        dt = b.t - a.t
        if dt <= _MIN_DT:
            continue
        ground_dist = distance_m(a.state.center, b.state.center)
        segments.append(
            {
                "segment_index": i,
                "t_start": a.t,
                "t_end": b.t,
                "ground_distance_m": ground_dist,
                "zoom_delta": b.state.zoom - a.state.zoom,
                "speed_mps": ground_dist / dt,
            }
        )
    return segments


def summarize_motion(keyframes: list[CameraKeyframe]) -> dict:
    segments = segment_metrics(keyframes)
    speeds = [s["speed_mps"] for s in segments] or [0.0]
    zooms = [k.state.zoom for k in keyframes] or [0.0]
    pitches = [k.state.pitch for k in keyframes] or [0.0]
    rolls = [abs(k.state.roll) for k in keyframes] or [0.0]

    return {
        "duration_sec": keyframes[-1].t - keyframes[0].t if keyframes else 0.0,
        "keyframe_count": len(keyframes),
        "segment_count": len(segments),
        "distance_m": sum(s["ground_distance_m"] for s in segments),
        "avg_speed_mps": mean(speeds),
        "min_speed_mps": min(speeds),
        "max_speed_mps": max(speeds),
        "min_zoom": min(zooms),
        "max_zoom": max(zooms),
        "max_pitch_deg": max(pitches),
        "max_roll_deg": max(rolls),
    }


def speed_uniformity(keyframes: list[CameraKeyframe], trim: float = 0.2) -> float:
    """Coefficient of variation of ground speed; 0 is perfectly even.

    ``trim`` drops that fraction of segments from each end so ease-in and
    ease-out do not count against a cruise.
    """
    speeds = [s["speed_mps"] for s in segment_metrics(keyframes)]
    cut = int(len(speeds) * trim)
    if cut:
        speeds = speeds[cut:-cut]
    if len(speeds) < 2:
        return 0.0
    avg = mean(speeds)
    if avg <= 0:
        return 0.0
    return pstdev(speeds) / avg


def build_tour_analysis(keyframes: list[CameraKeyframe], results: list[ShotResult]) -> dict:
    return {
        "motion": summarize_motion(keyframes),
        "shots": [r.to_dict() for r in results],
        "cancelled": any(r.cancelled for r in results),
        "skipped_shots": sum(1 for r in results if r.skipped),
    }
