from __future__ import annotations

import asyncio

import pytest

from config import (
    EstablishingConfig,
    FlyToConfig,
    HighlightConfig,
    JourneyConfig,
    OrbitConfig,
    RevealConfig,
)
from engine import CinematicCameraEngine
from models import CameraState, Landmark, ShotType
from surface import RecordingSurface

ORIGIN = (2.2945, 48.8584)


@pytest.fixture
def surface():
    return RecordingSurface(realtime=False, fps=60, initial=CameraState(center=ORIGIN, zoom=14))


def test_reveal_lands_on_destination(surface):
    engine = CinematicCameraEngine(surface)
    progress = []
    engine.set_on_progress(lambda p, shot: progress.append((p, shot)))
    cfg = RevealConfig(approach_duration=0.3, settle_duration=0.2)
    target = (2.2950, 48.8600)

    result = asyncio.run(engine.reveal_shot(target, cfg))

    assert not result.cancelled
    assert result.phases == ["approach", "settle"]
    final = surface.keyframes[-1].state
    assert final.center == pytest.approx(target)
    assert final.zoom == pytest.approx(cfg.zoom, abs=1e-9)
    assert final.pitch == pytest.approx(cfg.end_pitch)
    assert final.bearing == pytest.approx(cfg.orbit_angle + cfg.settle_orbit_angle)
    assert engine.state == final
    assert progress[-1] == (1.0, ShotType.REVEAL)
    assert engine.current_shot is None
    assert not engine.is_animating


def test_establishing_descends_and_sweeps(surface):
    engine = CinematicCameraEngine(surface)
    cfg = EstablishingConfig(duration=0.3, setup_delay=0.05)

    result = asyncio.run(engine.establishing_shot(ORIGIN, cfg))

    assert not result.cancelled
    first, last = surface.keyframes[0].state, surface.keyframes[-1].state
    assert first.zoom == cfg.start_zoom
    assert first.pitch == cfg.start_pitch
    assert last.zoom == pytest.approx(cfg.end_zoom)
    assert last.pitch == pytest.approx(cfg.end_pitch)
    assert last.bearing == pytest.approx(cfg.orbit_angle)


def test_shots_wait_for_a_ready_surface():
    surface = RecordingSurface(realtime=False, fps=60, ready_after_frames=5)
    engine = CinematicCameraEngine(surface)

    asyncio.run(engine.fly_to(ORIGIN, zoom=15, config=FlyToConfig(duration=0.1)))

    assert surface.keyframes
    assert surface.keyframes[0].t >= 5 / 60 - 1e-9


def test_stop_keeps_last_committed_state(surface):
    engine = CinematicCameraEngine(surface)
    seen = {}

    def on_progress(progress, shot):
        if progress > 0.3 and not seen:
            seen["writes"] = len(surface.keyframes)
            seen["state"] = engine.state
            engine.stop()

    engine.set_on_progress(on_progress)
    result = asyncio.run(engine.fly_to((2.4, 48.9), zoom=12, config=FlyToConfig(duration=2.0)))

    assert result.cancelled
    assert len(surface.keyframes) == seen["writes"]
    assert engine.state == seen["state"]
    assert not engine.is_animating


def test_destroy_is_idempotent_and_disables_shots(surface):
    engine = CinematicCameraEngine(surface)
    engine.destroy()
    engine.destroy()

    result = asyncio.run(engine.reveal_shot(ORIGIN))

    assert engine.destroyed
    assert result.cancelled
    assert surface.keyframes == []


def test_destroy_during_active_shot(surface):
    engine = CinematicCameraEngine(surface)
    engine.set_on_progress(lambda p, shot: engine.destroy() if p > 0.5 else None)

    result = asyncio.run(engine.fly_to((2.3, 48.87), config=FlyToConfig(duration=1.0)))
    writes = len(surface.keyframes)
    engine.destroy()

    assert result.cancelled
    assert len(surface.keyframes) == writes


def test_invalid_target_is_skipped(surface):
    engine = CinematicCameraEngine(surface)
    result = asyncio.run(engine.landmark_highlight((float("nan"), 1.0)))
    assert result.skipped
    assert surface.keyframes == []


def test_journey_draws_route_and_banks(surface):
    engine = CinematicCameraEngine(surface)
    route = [(2.290, 48.850), (2.290, 48.855), (2.295, 48.855), (2.295, 48.860)]
    drawn = []
    cfg = JourneyConfig(duration=0.5, max_banking=3.0)

    result = asyncio.run(engine.journey_shot(route, cfg, drawn.append))

    assert not result.cancelled
    assert result.distance_m > 0
    assert drawn[-1] == route
    assert len(drawn[0]) <= len(drawn[-1])
    assert any(abs(k.state.roll) > 0 for k in surface.keyframes)
    assert all(abs(k.state.roll) <= cfg.max_banking for k in surface.keyframes)
    assert engine.state.roll == 0.0


def test_journey_needs_two_points(surface):
    engine = CinematicCameraEngine(surface)
    assert asyncio.run(engine.journey_shot([ORIGIN])).skipped


def test_orbit_reveals_each_label_once(surface):
    engine = CinematicCameraEngine(surface)
    labels = []
    cfg = OrbitConfig(duration=0.5)

    result = asyncio.run(engine.contextual_orbit(ORIGIN, cfg, labels.append))

    assert not result.cancelled
    assert labels == [0, 1, 2, 3]
    first, last = surface.keyframes[0].state, surface.keyframes[-1].state
    assert last.center == pytest.approx(first.center, abs=1e-9)


def test_highlight_with_orbit_phase(surface):
    engine = CinematicCameraEngine(surface)
    ticks = []
    cfg = HighlightConfig(duration=0.3, orbit_angle=90, orbit_duration=0.3, orbit_approach_duration=0.1)
    landmark = Landmark(coordinates=(2.2960, 48.8610), title="Tower")

    result = asyncio.run(engine.landmark_highlight(landmark, cfg, lambda p, s: ticks.append(p)))

    assert not result.cancelled
    assert result.phases == ["approach", "settling", "orbit"]
    assert ticks[-1] == 1.0
    assert result.distance_m > 0


def test_breathing_never_changes_committed_state(surface):
    async def scenario():
        engine = CinematicCameraEngine(surface)
        await engine.fly_to(ORIGIN, zoom=16, config=FlyToConfig(duration=0.05))
        committed = engine.state
        writes = len(surface.keyframes)
        assert engine.start_breathing()
        assert not engine.start_breathing()
        for _ in range(20):
            await asyncio.sleep(0)
        engine.stop_breathing()
        return engine, committed, writes

    engine, committed, writes = asyncio.run(scenario())
    assert len(surface.keyframes) > writes
    assert engine.state == committed
    assert not engine.is_breathing


def test_shot_stops_breathing(surface):
    async def scenario():
        engine = CinematicCameraEngine(surface)
        engine.start_breathing()
        await asyncio.sleep(0)
        result = await engine.reveal_shot(ORIGIN, RevealConfig(approach_duration=0.05, settle_duration=0.05))
        return engine, result

    engine, result = asyncio.run(scenario())
    assert not result.cancelled
    assert not engine.is_breathing


def test_shot_after_breathing_starts_from_committed_state(surface):
    async def scenario():
        engine = CinematicCameraEngine(surface)
        await engine.fly_to(ORIGIN, zoom=16, pitch=40, config=FlyToConfig(duration=0.05))
        committed = engine.state
        engine.start_breathing()
        for _ in range(30):
            await asyncio.sleep(0)
        engine.stop_breathing()
        breathed = surface.keyframes[-1].state
        first = len(surface.keyframes)
        await engine.fly_to((2.2950, 48.8600), zoom=15, pitch=20, config=FlyToConfig(duration=0.05))
        return committed, breathed, surface.keyframes[first].state

    committed, breathed, start = asyncio.run(scenario())
    assert breathed.pitch != pytest.approx(committed.pitch, abs=1e-9)
    assert start.pitch == pytest.approx(committed.pitch, abs=1e-9)
    assert start.bearing == pytest.approx(committed.bearing, abs=1e-9)
    assert start.zoom == pytest.approx(committed.zoom, abs=1e-9)


def test_surface_write_failure_ends_shot():
    class Broken(RecordingSurface):
        async def jump_to(self, state):
            raise RuntimeError("gone")

    engine = CinematicCameraEngine(Broken(realtime=False))
    result = asyncio.run(engine.fly_to(ORIGIN, config=FlyToConfig(duration=0.5)))
    assert result.cancelled


def test_pause_freezes_the_shot_clock(surface):
    async def scenario():
        engine = CinematicCameraEngine(surface)
        engine.set_on_progress(lambda p, shot: engine.pause() if p > 0.2 and not seen else None)
        seen = []
        task = asyncio.ensure_future(engine.fly_to((2.30, 48.86), config=FlyToConfig(duration=0.5)))
        while not engine.is_paused:
            await asyncio.sleep(0)
        seen.append(len(surface.keyframes))
        for _ in range(30):
            await asyncio.sleep(0)
        seen.append(len(surface.keyframes))
        engine.resume()
        return await task, seen

    result, (at_pause, after_wait) = asyncio.run(scenario())
    assert not result.cancelled
    assert after_wait == at_pause
    assert surface.keyframes[-1].state.center == pytest.approx((2.30, 48.86))
