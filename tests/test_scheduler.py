"""Tests for the coalescing debounce scheduler."""

from __future__ import annotations

import asyncio

import pytest

from twelveweeks.state.scheduler import CoalescingScheduler, VirtualScheduler


def _recorder(log: list, value):
    async def callback() -> None:
        log.append(value)
    return callback


@pytest.mark.asyncio
class TestVirtualScheduler:
    async def test_fires_after_window(self) -> None:
        sched = VirtualScheduler()
        log: list = []
        sched.schedule("k", 500, _recorder(log, 1))
        await sched.advance(499)
        assert log == []
        await sched.advance(1)
        assert log == [1]
        assert not sched.is_pending("k")

    async def test_reschedule_replaces_and_restarts(self) -> None:
        sched = VirtualScheduler()
        log: list = []
        sched.schedule("k", 1000, _recorder(log, "first"))
        await sched.advance(600)
        sched.schedule("k", 1000, _recorder(log, "second"))
        await sched.advance(600)
        assert log == []
        await sched.advance(400)
        assert log == ["second"]

    async def test_keys_are_independent(self) -> None:
        sched = VirtualScheduler()
        log: list = []
        sched.schedule("b", 200, _recorder(log, "b"))
        sched.schedule("a", 100, _recorder(log, "a"))
        await sched.advance(1000)
        assert log == ["a", "b"]

    async def test_cancel(self) -> None:
        sched = VirtualScheduler()
        log: list = []
        sched.schedule("a", 100, _recorder(log, "a"))
        sched.schedule("b", 100, _recorder(log, "b"))
        assert sched.cancel("a") is True
        assert sched.cancel("a") is False
        assert sched.pending_keys() == ["b"]
        assert sched.cancel_all() == 1
        await sched.advance(1000)
        assert log == []

    async def test_flush_runs_now(self) -> None:
        sched = VirtualScheduler()
        log: list = []
        sched.schedule("a", 10_000, _recorder(log, "a"))
        await sched.flush("a")
        assert log == ["a"]
        assert sched.pending_keys() == []

    async def test_errors_go_to_hook(self) -> None:
        seen: list = []
        sched = VirtualScheduler(on_error=lambda key, exc: seen.append((key, str(exc))))

        async def boom() -> None:
            raise RuntimeError("nope")

        sched.schedule("k", 10, boom)
        await sched.advance(10)
        assert seen == [("k", "nope")]


@pytest.mark.asyncio
class TestCoalescingScheduler:
    async def test_real_timer_fires_once(self) -> None:
        sched = CoalescingScheduler()
        log: list = []
        for value in range(3):
            sched.schedule("k", 20, _recorder(log, value))
        await asyncio.sleep(0.08)
        await sched.drain()
        assert log == [2]

    async def test_cancel_all_stops_timers(self) -> None:
        sched = CoalescingScheduler()
        log: list = []
        sched.schedule("k", 20, _recorder(log, "x"))
        sched.cancel_all()
        await asyncio.sleep(0.05)
        assert log == []
