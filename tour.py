"""Scripted cinematic tour over a map surface.

A tour runs one shot at a time: initial delay, optional establishing shot,
reveal of the origin, then a highlight flight and a breathing pause per
landmark, and a final pull-back to an overview framing. Every suspension
point checks the tour's cancel token before moving on.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Sequence

from cancellation import CancelToken, TimerSet
from config import HighlightConfig, RevealConfig, TourConfig, TourOptions, with_overrides
from engine import CinematicCameraEngine, DrawRouteCallback, LabelRevealCallback, TravelProgressCallback
from models import Landmark, Point, ShotResult, ShotType, is_valid_point
from surface import MapSurface

logger = logging.getLogger(__name__)

StateListener = Callable[["CinematicTour"], None]


class CinematicTour:
    def __init__(self, config: TourConfig | None = None, on_state_change: StateListener | None = None):
        self.config = config or TourConfig()
        self.on_state_change = on_state_change
        self._engine: CinematicCameraEngine | None = None
        self._token: CancelToken | None = None
        self._timers = TimerSet()
        self.is_tour_active = False
        self.current_step = 0
        self.total_steps = 0
        self.current_shot: ShotType | None = None
        self.shot_progress = 0.0
        self.results: list[ShotResult] = []

    @property
    def engine(self) -> CinematicCameraEngine | None:
        return self._engine

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def _notify(self) -> None:
        if self.on_state_change is not None:
            self.on_state_change(self)

    def _set_step(self, step: int) -> None:
        self.current_step = step
        logger.info("Tour step %d/%d", step, self.total_steps)
        self._notify()

    def _on_progress(self, progress: float, shot: ShotType) -> None:
        self.current_shot = shot
        self.shot_progress = progress

    def _bind(self, surface: MapSurface) -> CinematicCameraEngine:
        """Engine for ``surface``; a new surface gets a fresh engine."""
        if self._engine is not None and self._engine.surface is surface and not self._engine.destroyed:
            return self._engine
        if self._engine is not None:
            self._engine.destroy()
        self._engine = CinematicCameraEngine(surface, self.config.breathing)
        self._engine.set_on_progress(self._on_progress)
        return self._engine

    def _on_virtual_clock(self) -> bool:
        return getattr(self._engine.surface, "realtime", True) is False

    async def _wait(self, seconds: float, token: CancelToken) -> bool:
        if self._on_virtual_clock():
            return await self._engine.hold(seconds, token)
        return await self._timers.sleep(seconds, token)

    async def _pause(self, seconds: float, token: CancelToken) -> bool:
        """Breathing pause between shots. False when the tour was stopped."""
        engine = self._engine
        if self._on_virtual_clock():
            return await engine.breathe_for(seconds, token)
        engine.start_breathing()
        try:
            return await self._timers.sleep(seconds, token) and not token.cancelled
        finally:
            engine.stop_breathing()

    def _shot_configs(self, options: TourOptions) -> tuple[HighlightConfig, RevealConfig]:
        cfg = self.config
        timings = cfg.timings
        highlight = cfg.highlight
        if options.zoom is not None:
            highlight = replace(highlight, zoom=options.zoom)
        if options.pitch is not None:
            highlight = replace(highlight, pitch=options.pitch)
        if options.orbit_angle is not None:
            highlight = with_overrides(highlight, orbit_angle=options.orbit_angle)
        highlight = replace(highlight, duration=timings.flight)

        # Split the intro between approach and settle the way the reveal defaults do.
        reveal = cfg.reveal
        reveal_total = reveal.approach_duration + reveal.settle_duration
        share = reveal.approach_duration / reveal_total if reveal_total > 0 else 0.5
        reveal = replace(
            reveal,
            approach_duration=timings.intro * share,
            settle_duration=timings.intro * (1 - share),
        )
        return highlight, reveal

    # ── full tour ──

    @staticmethod
    def count_steps(landmarks: Sequence, options: TourOptions | None = None) -> int:
        options = options or TourOptions()
        valid = sum(1 for item in landmarks if Landmark.from_value(item).is_valid)
        return (0 if options.skip_establishing else 1) + 1 + valid + 1

    async def start_tour(
        self,
        surface: MapSurface,
        origin: Point,
        landmarks: Sequence[Landmark | Point | dict] = (),
        options: TourOptions | None = None,
    ) -> bool:
        """Run the whole tour. True when it ran to the end.

        A tour already in progress is stopped first. Landmarks with invalid
        coordinates are left out of the sequence and of ``total_steps``.
        """
        options = options or TourOptions()
        if self.is_tour_active:
            self.stop_tour()
        if not is_valid_point(origin):
            logger.warning("Tour not started: invalid origin %r", origin)
            return False

        origin = (float(origin[0]), float(origin[1]))
        stops = []
        for index, item in enumerate(landmarks):
            landmark = Landmark.from_value(item)
            if landmark.is_valid:
                stops.append(landmark)
            else:
                logger.warning("Skipping landmark %d without valid coordinates: %r", index, item)

        cfg = self.config
        timings = cfg.timings
        highlight, reveal = self._shot_configs(options)
        engine = self._bind(surface)
        token = CancelToken()
        self._token = token
        self.results = []
        self.total_steps = self.count_steps(stops, options)
        self.current_step = 0
        self.current_shot = None
        self.shot_progress = 0.0
        self.is_tour_active = True

        completed = False
        step = 0
        try:
            self._notify()
            if not await self._wait(timings.initial_delay, token):
                return False

            if not options.skip_establishing:
                step += 1
                self._set_step(step)
                establishing = replace(cfg.establishing, duration=timings.establishing)
                self.results.append(await engine.establishing_shot(origin, establishing, token=token))
                if token.cancelled:
                    return False

            step += 1
            self._set_step(step)
            self.results.append(await engine.reveal_shot(origin, reveal, token=token))
            if token.cancelled or not await self._pause(timings.landmark_pause, token):
                return False

            for landmark in stops:
                step += 1
                self._set_step(step)
                logger.info("Highlighting %s", landmark.title or landmark.coordinates)
                self.results.append(await engine.landmark_highlight(landmark, highlight, token=token))
                if token.cancelled or not await self._pause(timings.landmark_pause, token):
                    return False

            step += 1
            self._set_step(step)
            fly = replace(cfg.fly_to, duration=timings.outro)
            self.results.append(
                await engine.fly_to(
                    origin,
                    zoom=cfg.overview_zoom,
                    pitch=cfg.overview_pitch,
                    bearing=cfg.overview_bearing,
                    config=fly,
                    token=token,
                )
            )
            completed = not token.cancelled
            return completed
        except Exception:
            logger.exception("Cinematic tour failed")
            return False
        finally:
            if self._token is token:
                self._timers.clear()
                engine.stop_breathing()
                self.is_tour_active = False
                self.current_shot = None
                try:
                    self._notify()
                except Exception:
                    logger.exception("Tour state listener failed")
            logger.info("Tour %s after %d step(s)", "finished" if completed else "ended", step)

    def stop_tour(self) -> None:
        if self._token is not None:
            self._token.cancel()
        cleared = self._timers.clear()
        if cleared:
            logger.debug("Cleared %d pending tour timer(s)", cleared)
        if self._engine is not None:
            self._engine.stop()
        was_active = self.is_tour_active
        self.is_tour_active = False
        self.current_shot = None
        if was_active:
            self._notify()

    def destroy(self) -> None:
        self.stop_tour()
        if self._engine is not None:
            self._engine.destroy()
            self._engine = None
        self.on_state_change = None

    # ── standalone shots ──

    async def establishing(self, surface: MapSurface, target: Point, **overrides) -> ShotResult:
        config = with_overrides(self.config.establishing, **overrides)
        return await self._bind(surface).establishing_shot(target, config)

    async def journey(
        self,
        surface: MapSurface,
        route: Sequence[Point],
        on_draw_route: DrawRouteCallback | None = None,
        **overrides,
    ) -> ShotResult:
        config = with_overrides(self.config.journey, **overrides)
        return await self._bind(surface).journey_shot(route, config, on_draw_route)

    async def reveal(self, surface: MapSurface, destination: Point, **overrides) -> ShotResult:
        config = with_overrides(self.config.reveal, **overrides)
        return await self._bind(surface).reveal_shot(destination, config)

    async def highlight(
        self,
        surface: MapSurface,
        landmark: Landmark | Point,
        on_travel_progress: TravelProgressCallback | None = None,
        **overrides,
    ) -> ShotResult:
        config = with_overrides(self.config.highlight, **overrides)
        return await self._bind(surface).landmark_highlight(landmark, config, on_travel_progress)

    async def orbit(
        self,
        surface: MapSurface,
        center: Point,
        on_label_reveal: LabelRevealCallback | None = None,
        **overrides,
    ) -> ShotResult:
        config = with_overrides(self.config.orbit, **overrides)
        return await self._bind(surface).contextual_orbit(center, config, on_label_reveal)

    async def fly_to(
        self,
        surface: MapSurface,
        center: Point,
        *,
        zoom: float | None = None,
        pitch: float | None = None,
        bearing: float | None = None,
        **overrides,
    ) -> ShotResult:
        config = with_overrides(self.config.fly_to, **overrides)
        return await self._bind(surface).fly_to(center, zoom=zoom, pitch=pitch, bearing=bearing, config=config)
