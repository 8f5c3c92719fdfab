from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation shared by every step of one shot or tour."""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` once on cancel. Returns a function that unregisters it."""
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove


def _resolve(future: asyncio.Future, value: bool) -> None:
    if not future.done():
        future.set_result(value)


class TimerSet:
    """Pause timers that can all be cleared at once.

    Clearing cancels the pending ``call_later`` handles and wakes every
    sleeper, so nothing scheduled here fires after teardown.
    """

    def __init__(self) -> None:
        self._pending: dict[asyncio.TimerHandle, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._pending)

    async def sleep(self, delay: float, token: CancelToken | None = None) -> bool:
        """Wait ``delay`` seconds. False when woken early by cancellation or ``clear()``."""
        if token is not None and token.cancelled:
            return False

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        handle = loop.call_later(max(0.0, delay), _resolve, future, True)
        self._pending[handle] = future
        unregister = token.add_callback(lambda: self._wake(handle)) if token is not None else None
        try:
            return await future
        finally:
            self._pending.pop(handle, None)
            handle.cancel()
            if unregister is not None:
                unregister()

    def _wake(self, handle: asyncio.TimerHandle) -> None:
        future = self._pending.pop(handle, None)
        handle.cancel()
        if future is not None:
            _resolve(future, False)

    def clear(self) -> int:
        pending = list(self._pending.items())
        self._pending.clear()
        for handle, future in pending:
            handle.cancel()
            _resolve(future, False)
        return len(pending)
