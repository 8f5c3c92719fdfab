from __future__ import annotations

import asyncio

from cancellation import CancelToken, TimerSet


def test_token_runs_callbacks_once():
    token = CancelToken()
    calls = []
    token.add_callback(lambda: calls.append("a"))
    remove = token.add_callback(lambda: calls.append("b"))
    remove()
    token.cancel()
    token.cancel()
    assert token.cancelled
    assert calls == ["a"]


def test_callback_added_after_cancel_runs_immediately():
    token = CancelToken()
    token.cancel()
    calls = []
    token.add_callback(lambda: calls.append(1))
    assert calls == [1]


def test_failing_callback_does_not_block_others():
    token = CancelToken()
    calls = []

    def boom():
        raise RuntimeError("boom")

    token.add_callback(boom)
    token.add_callback(lambda: calls.append(1))
    token.cancel()
    assert calls == [1]


def test_sleep_completes_and_leaves_nothing_pending():
    async def scenario():
        timers = TimerSet()
        finished = await timers.sleep(0.01)
        return finished, len(timers)

    assert asyncio.run(scenario()) == (True, 0)


def test_cancel_wakes_sleeper_early():
    async def scenario():
        timers = TimerSet()
        token = CancelToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)
        started = loop.time()
        finished = await timers.sleep(5.0, token)
        return finished, loop.time() - started, len(timers)

    finished, waited, pending = asyncio.run(scenario())
    assert finished is False
    assert waited < 1.0
    assert pending == 0


def test_clear_wakes_every_sleeper():
    async def scenario():
        timers = TimerSet()
        sleepers = [asyncio.ensure_future(timers.sleep(5.0)) for _ in range(3)]
        await asyncio.sleep(0)
        cleared = timers.clear()
        return cleared, await asyncio.gather(*sleepers), len(timers)

    cleared, results, pending = asyncio.run(scenario())
    assert cleared == 3
    assert results == [False, False, False]
    assert pending == 0


def test_sleep_with_cancelled_token_returns_immediately():
    async def scenario():
        token = CancelToken()
        token.cancel()
        timers = TimerSet()
        return await timers.sleep(5.0, token), len(timers)

    assert asyncio.run(scenario()) == (False, 0)
