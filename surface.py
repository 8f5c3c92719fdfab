"""The map surface the camera engine writes to.

A surface owns the rendered camera and the frame clock. ``next_frame``
suspends until the host's next frame callback and returns its timestamp in
seconds; the engine never writes before ``is_ready`` reports True.
"""
from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from models import CameraKeyframe, CameraState


@runtime_checkable
class MapSurface(Protocol):
    async def is_ready(self) -> bool: ...

    async def get_camera(self) -> CameraState: ...

    async def jump_to(self, state: CameraState) -> None: ...

    async def next_frame(self) -> float: ...


class RecordingSurface:
    """Headless surface that records every camera write as a keyframe.

    With ``inner`` it wraps another surface and records what passes through;
    without it, it keeps its own camera and frame clock. ``realtime=False``
    advances a virtual clock by one frame interval per frame and only yields
    to the event loop, which keeps shots deterministic under test.
    """

    def __init__(
        self,
        inner: MapSurface | None = None,
        *,
        fps: float = 60.0,
        realtime: bool = True,
        initial: CameraState | None = None,
        ready_after_frames: int = 0,
    ):
        if fps <= 0:
            raise ValueError(f"fps must be positive, got: {fps}")
        self._inner = inner
        self._interval = 1.0 / fps
        self._realtime = realtime
        self._camera = initial or CameraState()
        self._ready_after_frames = ready_after_frames
        self._frames = 0
        self._clock = 0.0
        self._origin: float | None = None
        self.keyframes: list[CameraKeyframe] = []

    @property
    def camera(self) -> CameraState:
        return self._camera

    @property
    def frame_count(self) -> int:
        return self._frames

    @property
    def clock(self) -> float:
        return self._clock

    @property
    def realtime(self) -> bool:
        """False when frames come from the virtual clock instead of the wall clock."""
        return self._inner is not None or self._realtime

    def clear(self) -> None:
        self.keyframes.clear()

    async def is_ready(self) -> bool:
        if self._inner is not None:
            return await self._inner.is_ready()
        return self._frames >= self._ready_after_frames

    async def get_camera(self) -> CameraState:
        if self._inner is not None:
            self._camera = await self._inner.get_camera()
        return self._camera

    async def jump_to(self, state: CameraState) -> None:
        if self._inner is not None:
            await self._inner.jump_to(state)
        self._camera = state
        self.keyframes.append(CameraKeyframe(t=self._clock, state=state))

    async def next_frame(self) -> float:
        if self._inner is not None:
            stamp = await self._inner.next_frame()
            if self._origin is None:
                self._origin = stamp
            self._clock = stamp - self._origin
        elif self._realtime:
            await asyncio.sleep(self._interval)
            loop = asyncio.get_running_loop()
            if self._origin is None:
                self._origin = loop.time() - self._interval
            self._clock = loop.time() - self._origin
        else:
            await asyncio.sleep(0)
            self._clock += self._interval
        self._frames += 1
        return self._clock
