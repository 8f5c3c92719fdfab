from __future__ import annotations

import asyncio

import pytest

from analysis import build_tour_analysis, segment_metrics, speed_uniformity, summarize_motion
from config import JourneyConfig
from engine import CinematicCameraEngine
from models import CameraKeyframe, CameraState, ShotResult, ShotType
from surface import RecordingSurface


def _line(speeds):
    frames = [CameraKeyframe(0.0, CameraState(center=(0.0, 0.0)))]
    lng = 0.0
    for i, step in enumerate(speeds, start=1):
        lng += step
        frames.append(CameraKeyframe(float(i), CameraState(center=(lng, 0.0), roll=-i)))
    return frames


def test_segments_skip_frames_on_the_same_tick():
    frames = _line([0.001, 0.001])
    frames.insert(1, CameraKeyframe(0.0, CameraState(center=(0.0, 0.0))))
    assert len(segment_metrics(frames)) == 2


def test_summary_reports_speed_and_roll():
    motion = summarize_motion(_line([0.001, 0.001, 0.001]))
    assert motion["segment_count"] == 3
    assert motion["duration_sec"] == 3.0
    assert motion["avg_speed_mps"] == pytest.approx(111.3, rel=1e-2)
    assert motion["max_roll_deg"] == 3


def test_summary_of_nothing():
    motion = summarize_motion([])
    assert motion["keyframe_count"] == 0
    assert motion["avg_speed_mps"] == 0.0


def test_uniformity_separates_even_and_uneven_motion():
    even = speed_uniformity(_line([0.001] * 10), trim=0.0)
    uneven = speed_uniformity(_line([0.001, 0.004] * 5), trim=0.0)
    assert even == pytest.approx(0.0, abs=1e-9)
    assert uneven > 0.5


def test_journey_cruises_at_constant_speed():
    surface = RecordingSurface(realtime=False, fps=60)
    engine = CinematicCameraEngine(surface)
    route = [(0.0, 0.0), (0.005, 0.0), (0.01, 0.0), (0.025, 0.0), (0.04, 0.0)]

    asyncio.run(engine.journey_shot(route, JourneyConfig(duration=2.0, camera_offset=0.0)))

    # Drop the level-out write and keep the cruise section of the ease.
    cruise = surface.keyframes[-100:-30]
    assert speed_uniformity(cruise, trim=0.0) < 0.05


def test_tour_analysis_counts_outcomes():
    results = [ShotResult(ShotType.REVEAL), ShotResult(ShotType.JOURNEY, skipped=True)]
    report = build_tour_analysis(_line([0.001]), results)
    assert report["skipped_shots"] == 1
    assert report["cancelled"] is False
    assert report["shots"][0]["shot"] == "reveal"
