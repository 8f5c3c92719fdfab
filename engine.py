"""Cinematic camera engine.

The engine owns the single live ``CameraState`` and is the only writer to
the map surface. Each shot is a coroutine that drives a per-frame loop off
the surface's frame clock and resolves with a ``ShotResult`` when progress
reaches 1 or the shot's ``CancelToken`` is cancelled. Progress is computed
from absolute elapsed time since the shot's first frame, so irregular frame
intervals never accumulate drift; the final frame is always committed at
progress 1.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import replace
from typing import Callable, Sequence

import camera_path as cp
from cancellation import CancelToken
from config import (
    BreathingConfig,
    EstablishingConfig,
    FlyToConfig,
    HighlightConfig,
    JourneyConfig,
    OrbitConfig,
    RevealConfig,
)
from easing import (
    Easing,
    breathing_motion,
    cinematic_ease_in_out,
    dramatic_reveal,
    drone_landing,
    ease_in_out_sine,
    gentle_pulse,
    lerp,
    lerp_bearing,
    move_and_settle,
    orbit_cruise,
    parabolic_arc,
    quadratic_bezier,
)
from models import BreathingState, CameraState, Landmark, Point, ShotResult, ShotType, is_valid_point
from surface import MapSurface

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, ShotType], None]
DrawRouteCallback = Callable[[list[Point]], None]
TravelProgressCallback = Callable[[float, CameraState], None]
LabelRevealCallback = Callable[[int], None]
Update = Callable[[float, float], CameraState]

MAX_FRAME_DELTA = 0.1


def _sweep_control(start: Point, end: Point, magnitude: float) -> Point:
    """Control point offset perpendicular to start→end, for curved flights."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    return ((start[0] + end[0]) / 2 - dy * magnitude, (start[1] + end[1]) / 2 + dx * magnitude)


def _sweep(start: Point, control: Point, end: Point, t: float) -> Point:
    return (
        quadratic_bezier(t, start[0], control[0], end[0]),
        quadratic_bezier(t, start[1], control[1], end[1]),
    )


def _lerp_point(a: Point, b: Point, t: float) -> Point:
    return (lerp(a[0], b[0], t), lerp(a[1], b[1], t))


class CinematicCameraEngine:
    def __init__(self, surface: MapSurface, breathing: BreathingConfig | None = None):
        self._surface = surface
        self._breathing_config = breathing or BreathingConfig()
        self._state = CameraState()
        self._has_state = False
        self._offset_on_surface = False
        self._current_shot: ShotType | None = None
        self._token: CancelToken | None = None
        self._animating = False
        self._paused = False
        self._on_progress: ProgressCallback | None = None
        self._breathing_task: asyncio.Task | None = None
        self._breathing_time = 0.0
        self._destroyed = False

    # ── state ──

    @property
    def surface(self) -> MapSurface:
        return self._surface

    @property
    def state(self) -> CameraState:
        """The last committed camera state."""
        return self._state

    @property
    def current_shot(self) -> ShotType | None:
        return self._current_shot

    @property
    def is_animating(self) -> bool:
        return self._animating

    @property
    def is_breathing(self) -> bool:
        return self._breathing_task is not None and not self._breathing_task.done()

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def set_on_progress(self, callback: ProgressCallback | None) -> None:
        self._on_progress = callback

    # ── control ──

    def pause(self) -> None:
        """Freeze the running shot in place; its clock stops until ``resume``."""
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def stop(self) -> None:
        """Halt the in-flight shot and breathing. The last committed state stays."""
        self.stop_breathing()
        if self._token is not None:
            self._token.cancel()
        self._animating = False
        self._paused = False
        self._current_shot = None

    def destroy(self) -> None:
        if self._destroyed:
            return
        self.stop()
        self._on_progress = None
        self._token = None
        self._destroyed = True
        logger.debug("Camera engine destroyed")

    # ── frame loop ──

    async def _sync_from_surface(self) -> None:
        try:
            self._state = (await self._surface.get_camera()).normalized()
            self._has_state = True
        except Exception as exc:
            logger.warning("Failed to read camera from surface: %s", exc)

    async def _commit(self, state: CameraState) -> bool:
        state = state.normalized()
        try:
            await self._surface.jump_to(state)
        except Exception as exc:
            logger.warning("Failed to apply camera state: %s", exc)
            return False
        self._state = state
        self._has_state = True
        self._offset_on_surface = False
        return True

    def _halted(self, token: CancelToken) -> bool:
        return token.cancelled or self._destroyed

    async def _wait_until_ready(self, token: CancelToken) -> bool:
        while not self._halted(token):
            try:
                if await self._surface.is_ready():
                    return True
                await self._surface.next_frame()
            except Exception as exc:
                logger.warning("Map surface unavailable: %s", exc)
                return False
        return False

    @contextlib.asynccontextmanager
    async def _claim(self, shot: ShotType, token: CancelToken | None):
        """Take ownership of the camera for one shot.

        Yields the shot's token, or None when the engine is destroyed or the
        shot was cancelled before the surface became ready.
        """
        if self._destroyed:
            yield None
            return

        self.stop_breathing()
        if self._token is not None and self._token is not token and self._animating:
            # A new shot interrupts whatever was still running.
            self._token.cancel()
        token = token or CancelToken()
        self._token = token
        self._current_shot = shot
        logger.debug("Shot %s started", shot.value)
        try:
            if not await self._wait_until_ready(token):
                yield None
                return
            if not (self._offset_on_surface and self._has_state):
                # Breathing offsets left on the surface are not part of the shot.
                await self._sync_from_surface()
            yield token
        finally:
            if self._token is token:
                self._current_shot = None
            logger.debug("Shot %s finished (cancelled=%s)", shot.value, token.cancelled)

    async def hold(self, seconds: float, token: CancelToken) -> bool:
        """Wait ``seconds`` of surface time. False when halted."""
        start = now = await self._surface.next_frame()
        while now - start < seconds:
            if self._halted(token):
                return False
            now = await self._surface.next_frame()
        return not self._halted(token)

    async def _animate(
        self,
        update: Update,
        duration: float,
        token: CancelToken,
        easing: Easing = cinematic_ease_in_out,
        on_frame: Callable[[float, float, CameraState], None] | None = None,
    ) -> bool:
        """Run one phase. True when it reached progress 1."""
        if self._halted(token):
            return False

        self._animating = True
        try:
            now = start = last = await self._surface.next_frame()
            paused_for = 0.0
            while True:
                if self._halted(token):
                    return False
                if self._paused:
                    paused_for += now - last
                    last = now
                    now = await self._surface.next_frame()
                    continue
                last = now

                elapsed = now - start - paused_for
                raw = 1.0 if duration <= 0 else min(max(elapsed / duration, 0.0), 1.0)
                eased = easing(raw)
                if not await self._commit(update(eased, raw)):
                    return False
                if self._halted(token):
                    return False

                if on_frame is not None:
                    on_frame(eased, raw, self._state)
                if self._on_progress is not None and self._current_shot is not None:
                    self._on_progress(raw, self._current_shot)

                if raw >= 1.0:
                    return True
                now = await self._surface.next_frame()
        finally:
            if self._token is token or self._token is None:
                self._animating = False

    # ── shots ──

    async def establishing_shot(
        self,
        target: Point,
        config: EstablishingConfig | None = None,
        *,
        token: CancelToken | None = None,
    ) -> ShotResult:
        """High, wide descent onto ``target`` while sweeping the bearing."""
        cfg = config or EstablishingConfig()
        shot = ShotType.ESTABLISHING
        if not is_valid_point(target):
            logger.warning("Establishing shot skipped: invalid target %r", target)
            return ShotResult(shot, skipped=True)

        async with self._claim(shot, token) as token:
            if token is None:
                return ShotResult(shot, cancelled=True)

            start_bearing = self._state.bearing
            opening = CameraState(
                center=(target[0], target[1]),
                zoom=cfg.start_zoom,
                pitch=cfg.start_pitch,
                bearing=start_bearing,
            )
            if not await self._commit(opening):
                return ShotResult(shot, cancelled=True)
            if cfg.setup_delay > 0 and not await self.hold(cfg.setup_delay, token):
                return ShotResult(shot, cancelled=True)

            def update(eased: float, raw: float) -> CameraState:
                return CameraState(
                    center=opening.center,
                    zoom=lerp(cfg.start_zoom, cfg.end_zoom, drone_landing(eased)),
                    pitch=lerp(cfg.start_pitch, cfg.end_pitch, cinematic_ease_in_out(raw)),
                    bearing=start_bearing + cfg.orbit_angle * ease_in_out_sine(raw),
                )

            done = await self._animate(update, cfg.duration, token)
            return ShotResult(shot, cancelled=not done, phases=["descent"])

    async def journey_shot(
        self,
        route: Sequence[Point],
        config: JourneyConfig | None = None,
        on_draw_route: DrawRouteCallback | None = None,
        *,
        token: CancelToken | None = None,
    ) -> ShotResult:
        """Follow ``route`` at constant apparent speed, banking into turns.

        ``on_draw_route`` receives the traveled-so-far polyline every frame;
        drawing it is the caller's job.
        """
        cfg = config or JourneyConfig()
        shot = ShotType.JOURNEY
        points = cp.simplify_path(route or [], cfg.simplify_tolerance)
        if len(points) < 2:
            logger.warning("Journey shot skipped: needs at least 2 valid coordinates")
            return ShotResult(shot, skipped=True)

        path = cp.create_offset_path(points, cfg.camera_offset, cfg.offset_side)
        table = cp.create_arc_length_table(path)
        duration = cfg.duration
        if duration is None:
            by_length = cp.get_arc_length(path) * cfg.seconds_per_degree
            duration = min(max(by_length, cfg.min_duration), cfg.max_duration)
        route_points = [(float(p[0]), float(p[1])) for p in route if is_valid_point(p)]
        travelled_m = sum(cp.distance_m(a, b) for a, b in zip(route_points, route_points[1:]))

        async with self._claim(shot, token) as token:
            if token is None:
                return ShotResult(shot, cancelled=True)

            def update(eased: float, raw: float) -> CameraState:
                t = cp.reparameterize(table, eased)
                roll = cp.calculate_banking(path, t, cfg.max_banking)
                return CameraState(
                    center=cp.evaluate_at(path, t),
                    zoom=cfg.zoom,
                    pitch=cfg.pitch - abs(roll) * 0.5,
                    bearing=cp.get_bearing_at(path, t),
                    roll=roll,
                )

            on_frame = None
            if on_draw_route is not None:
                def on_frame(eased: float, raw: float, state: CameraState) -> None:
                    on_draw_route(cp.route_prefix(route_points, min(eased + cfg.route_draw_ahead, 1.0)))

            done = await self._animate(update, duration, token, orbit_cruise, on_frame)
            if done:
                # Level the horizon once the route is finished.
                await self._commit(replace(self._state, roll=0.0))
            return ShotResult(shot, cancelled=not done, distance_m=travelled_m, phases=["follow"])

    async def reveal_shot(
        self,
        destination: Point,
        config: RevealConfig | None = None,
        *,
        token: CancelToken | None = None,
    ) -> ShotResult:
        """Dramatic approach to ``destination`` followed by a slow orbital settle."""
        cfg = config or RevealConfig()
        shot = ShotType.REVEAL
        if not is_valid_point(destination):
            logger.warning("Reveal shot skipped: invalid destination %r", destination)
            return ShotResult(shot, skipped=True)
        target = (float(destination[0]), float(destination[1]))

        async with self._claim(shot, token) as token:
            if token is None:
                return ShotResult(shot, cancelled=True)

            start = self._state
            end_bearing = start.bearing + cfg.orbit_angle
            distance = cp.distance_m(start.center, target)

            def approach(eased: float, raw: float) -> CameraState:
                sway = ease_in_out_sine(raw)
                return CameraState(
                    center=_lerp_point(start.center, target, eased),
                    zoom=lerp(start.zoom, cfg.zoom, eased),
                    pitch=lerp(cfg.start_pitch, cfg.end_pitch, sway),
                    bearing=start.bearing + cfg.orbit_angle * sway,
                )

            if not await self._animate(approach, cfg.approach_duration, token, dramatic_reveal):
                return ShotResult(shot, cancelled=True, distance_m=distance, phases=["approach"])

            def settle(eased: float, raw: float) -> CameraState:
                return CameraState(
                    center=target,
                    zoom=cfg.zoom + gentle_pulse(raw * 2, cfg.settle_zoom_pulse),
                    pitch=cfg.end_pitch,
                    bearing=end_bearing + cfg.settle_orbit_angle * eased,
                )

            done = await self._animate(settle, cfg.settle_duration, token, lambda t: move_and_settle(t, 0.3))
            return ShotResult(shot, cancelled=not done, distance_m=distance, phases=["approach", "settle"])

    async def landmark_highlight(
        self,
        landmark: Landmark | Point,
        config: HighlightConfig | None = None,
        on_travel_progress: TravelProgressCallback | None = None,
        *,
        token: CancelToken | None = None,
    ) -> ShotResult:
        """One sweeping flight to a point of interest.

        The camera curves toward the landmark and pulls back mid-flight for
        parallax. With ``orbit_angle`` set it then swings around the landmark.
        ``on_travel_progress`` gets (progress, camera state) every frame.
        """
        cfg = config or HighlightConfig()
        shot = ShotType.LANDMARK_HIGHLIGHT
        point = landmark.coordinates if isinstance(landmark, Landmark) else landmark
        if not is_valid_point(point):
            logger.warning("Landmark highlight skipped: invalid coordinates %r", point)
            return ShotResult(shot, skipped=True)
        target = (float(point[0]), float(point[1]))

        async with self._claim(shot, token) as token:
            if token is None:
                return ShotResult(shot, cancelled=True)

            start = self._state
            distance = cp.distance_m(start.center, target)
            control = _sweep_control(start.center, target, cfg.curve_intensity)
            if cfg.bearing is not None:
                arrival_bearing = cfg.bearing
            elif distance > 0:
                arrival_bearing = cp.calculate_bearing(start.center, target)
            else:
                arrival_bearing = start.bearing

            def approach(eased: float, raw: float) -> CameraState:
                return CameraState(
                    center=_sweep(start.center, control, target, eased),
                    zoom=lerp(start.zoom, cfg.zoom, eased) - parabolic_arc(raw, cfg.parallax_zoom_out),
                    pitch=lerp(start.pitch, cfg.pitch, ease_in_out_sine(raw)),
                    bearing=lerp_bearing(start.bearing, arrival_bearing, ease_in_out_sine(raw)),
                )

            def report(eased: float, raw: float, state: CameraState) -> None:
                if on_travel_progress is not None:
                    on_travel_progress(raw, state)

            phases = ["approach"]
            if not await self._animate(approach, cfg.duration, token, on_frame=report):
                return ShotResult(shot, cancelled=True, distance_m=distance, phases=phases)

            if cfg.orbit_angle > 0:
                done = await self._highlight_orbit(target, cfg, token, on_travel_progress)
                phases += ["settling", "orbit"]
                return ShotResult(shot, cancelled=not done, distance_m=distance, phases=phases)

            return ShotResult(shot, distance_m=distance, phases=phases)

    async def _highlight_orbit(
        self,
        target: Point,
        cfg: HighlightConfig,
        token: CancelToken,
        on_travel_progress: TravelProgressCallback | None,
    ) -> bool:
        # Keep the landmark ahead of the map center while circling it.
        start_angle = (self._state.bearing + 180.0) % 360.0
        ring = cp.create_orbit_path(target, cfg.orbit_radius, start_angle, start_angle + cfg.orbit_angle)
        table = cp.create_arc_length_table(ring)
        entry = cp.evaluate_at(ring, 0.0)
        settle_from = self._state

        def report(eased: float, raw: float, state: CameraState) -> None:
            if on_travel_progress is not None:
                on_travel_progress(1.0, state)

        def settle(eased: float, raw: float) -> CameraState:
            position = _lerp_point(settle_from.center, entry, eased)
            return CameraState(
                center=position,
                zoom=lerp(settle_from.zoom, cfg.orbit_zoom, eased),
                pitch=lerp(settle_from.pitch, cfg.orbit_pitch, eased),
                bearing=lerp_bearing(settle_from.bearing, cp.calculate_bearing(entry, target), eased),
            )

        if not await self._animate(settle, cfg.orbit_approach_duration, token, ease_in_out_sine, report):
            return False

        def orbit(eased: float, raw: float) -> CameraState:
            position = cp.evaluate_at(ring, cp.reparameterize(table, eased))
            return CameraState(
                center=position,
                zoom=cfg.orbit_zoom + gentle_pulse(raw * 3, 0.2),
                pitch=cfg.orbit_pitch + gentle_pulse(raw * 2, 3.0),
                bearing=cp.calculate_bearing(position, target),
            )

        return await self._animate(orbit, cfg.orbit_duration, token, orbit_cruise, report)

    async def contextual_orbit(
        self,
        center: Point,
        config: OrbitConfig | None = None,
        on_label_reveal: LabelRevealCallback | None = None,
        *,
        token: CancelToken | None = None,
    ) -> ShotResult:
        """Circle ``center`` looking inward.

        ``on_label_reveal`` fires once per entry of ``label_thresholds`` (by
        index) when the swept angle crosses it.
        """
        cfg = config or OrbitConfig()
        shot = ShotType.CONTEXTUAL_ORBIT
        if not is_valid_point(center):
            logger.warning("Contextual orbit skipped: invalid center %r", center)
            return ShotResult(shot, skipped=True)
        pivot = (float(center[0]), float(center[1]))

        async with self._claim(shot, token) as token:
            if token is None:
                return ShotResult(shot, cancelled=True)

            start_angle = (self._state.bearing + 180.0) % 360.0
            if cfg.radius_growth == 1.0:
                ring = cp.create_orbit_path(pivot, cfg.radius, start_angle, start_angle + cfg.rotation, cfg.segments)
            else:
                ring = cp.create_spiral_path(
                    pivot,
                    cfg.radius,
                    cfg.radius * cfg.radius_growth,
                    cfg.rotation / 360.0,
                    cfg.segments,
                    start_angle,
                )
            table = cp.create_arc_length_table(ring)
            pending = sorted(range(len(cfg.label_thresholds)), key=lambda i: cfg.label_thresholds[i])

            def update(eased: float, raw: float) -> CameraState:
                position = cp.evaluate_at(ring, cp.reparameterize(table, eased))
                return CameraState(
                    center=position,
                    zoom=cfg.zoom + gentle_pulse(raw * 4, cfg.zoom_pulse),
                    pitch=cfg.pitch,
                    bearing=cp.calculate_bearing(position, pivot),
                )

            def reveal(eased: float, raw: float, state: CameraState) -> None:
                swept = eased * cfg.rotation
                while pending and cfg.label_thresholds[pending[0]] <= swept + 1e-9:
                    index = pending.pop(0)
                    if on_label_reveal is not None:
                        on_label_reveal(index)

            done = await self._animate(update, cfg.duration, token, orbit_cruise, reveal)
            return ShotResult(shot, cancelled=not done, phases=["orbit"])

    async def fly_to(
        self,
        center: Point,
        *,
        zoom: float | None = None,
        pitch: float | None = None,
        bearing: float | None = None,
        config: FlyToConfig | None = None,
        token: CancelToken | None = None,
    ) -> ShotResult:
        """Free camera move. Long flights curve and pull back mid-air."""
        cfg = config or FlyToConfig()
        shot = ShotType.CUSTOM
        if not is_valid_point(center):
            logger.warning("Fly-to skipped: invalid center %r", center)
            return ShotResult(shot, skipped=True)
        target = (float(center[0]), float(center[1]))

        async with self._claim(shot, token) as token:
            if token is None:
                return ShotResult(shot, cancelled=True)

            start = self._state
            end_zoom = start.zoom if zoom is None else zoom
            end_pitch = start.pitch if pitch is None else pitch
            distance = cp.distance_m(start.center, target)
            if bearing is not None:
                end_bearing = bearing
            elif distance > 0:
                end_bearing = cp.calculate_bearing(start.center, target)
            else:
                end_bearing = start.bearing

            is_flight = cfg.duration > cfg.arc_threshold
            control = _sweep_control(start.center, target, cfg.curve_magnitude)

            def update(eased: float, raw: float) -> CameraState:
                arc = parabolic_arc(eased) if is_flight else 0.0
                position = _sweep(start.center, control, target, eased) if is_flight else _lerp_point(start.center, target, eased)
                return CameraState(
                    center=position,
                    zoom=lerp(start.zoom, end_zoom, eased) - arc * cfg.arc_zoom_out,
                    pitch=lerp(start.pitch, end_pitch, eased) - arc * cfg.arc_pitch_dip,
                    bearing=lerp_bearing(start.bearing, end_bearing, eased),
                )

            easing = cinematic_ease_in_out if is_flight else dramatic_reveal
            done = await self._animate(update, cfg.duration, token, easing)
            return ShotResult(shot, cancelled=not done, distance_m=distance, phases=["flight"])

    # ── breathing ──

    def start_breathing(self) -> bool:
        """Start idle breathing on top of the last committed state.

        Does nothing while a shot is animating. Must be called from a running
        event loop.
        """
        if self._destroyed or self._animating or self.is_breathing:
            return False
        loop = asyncio.get_running_loop()
        self._breathing_task = loop.create_task(self._breathe())
        return True

    def stop_breathing(self) -> None:
        task, self._breathing_task = self._breathing_task, None
        if task is not None and not task.done():
            task.cancel()

    def _breath_offsets(self, dt: float) -> BreathingState:
        cfg = self._breathing_config
        self._breathing_time += min(max(dt, 0.0), MAX_FRAME_DELTA) * cfg.time_scale
        return breathing_motion(self._breathing_time).scaled(
            cfg.pitch_amplitude, cfg.bearing_amplitude, cfg.zoom_amplitude
        )

    async def _breathe(self) -> None:
        me = asyncio.current_task()
        try:
            if not self._has_state:
                await self._sync_from_surface()
            base = self._state
            last = await self._surface.next_frame()
            while self._breathing_task is me and not self._animating and not self._destroyed:
                now = await self._surface.next_frame()
                if self._breathing_task is not me or self._animating or self._destroyed:
                    break
                offsets = self._breath_offsets(now - last)
                last = now
                # Breathing frames are drawn but never become the committed state.
                await self._surface.jump_to(base.with_offsets(offsets).normalized())
                self._offset_on_surface = True
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Breathing stopped after surface error: %s", exc)

    async def breathe_for(self, seconds: float, token: CancelToken) -> bool:
        """Breathe in place for ``seconds`` of surface time on the calling task.

        Pauses on a virtual frame clock use this instead of a timer, since
        only frames advance that clock. False when halted.
        """
        if self._halted(token) or self._animating:
            return False
        self.stop_breathing()
        if not self._has_state:
            await self._sync_from_surface()
        base = self._state
        start = last = await self._surface.next_frame()
        while last - start < seconds:
            now = await self._surface.next_frame()
            if self._halted(token):
                return False
            offsets = self._breath_offsets(now - last)
            last = now
            try:
                await self._surface.jump_to(base.with_offsets(offsets).normalized())
            except Exception as exc:
                logger.warning("Breathing stopped after surface error: %s", exc)
                return await self.hold(seconds - (last - start), token)
            self._offset_on_surface = True
        return not self._halted(token)
