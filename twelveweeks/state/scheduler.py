"""Keyed, cancellable debounce timers ("coalescing scheduler").

Scheduling a callback under a key that already has one pending replaces it
and restarts the window, so a burst of edits to the same (entity, field)
produces a single call with the last value once the window has been quiet.

``CoalescingScheduler`` arms real timers on the running asyncio loop.
``VirtualScheduler`` keeps its own clock that tests move with ``advance()``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable

logger = logging.getLogger("twelveweeks.scheduler")

Callback = Callable[[], Awaitable[Any]]
ErrorHook = Callable[[Hashable, BaseException], None]


@dataclass
class _Pending:
    callback: Callback
    due_ms: float
    handle: asyncio.TimerHandle | None = None


class CoalescingScheduler:
    def __init__(self, on_error: ErrorHook | None = None) -> None:
        self._pending: dict[Hashable, _Pending] = {}
        self._inflight: set[asyncio.Task] = set()
        self._on_error = on_error

    # ------------------------------------------------------------------
    # Clock / timer backend
    # ------------------------------------------------------------------

    def now_ms(self) -> float:
        return asyncio.get_running_loop().time() * 1000.0

    def _arm(self, key: Hashable, entry: _Pending, delay_ms: float) -> None:
        loop = asyncio.get_running_loop()
        entry.handle = loop.call_later(delay_ms / 1000.0, self._fire, key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def schedule(self, key: Hashable, delay_ms: float, callback: Callback) -> None:
        """Run ``callback`` after ``delay_ms`` unless rescheduled or cancelled."""
        replaced = self.cancel(key)
        entry = _Pending(callback=callback, due_ms=self.now_ms() + delay_ms)
        self._pending[key] = entry
        self._arm(key, entry, delay_ms)
        if replaced:
            logger.debug("Rescheduled %r (+%d ms)", key, delay_ms)

    def cancel(self, key: Hashable) -> bool:
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        if entry.handle is not None:
            entry.handle.cancel()
        return True

    def cancel_all(self) -> int:
        keys = list(self._pending)
        for key in keys:
            self.cancel(key)
        if keys:
            logger.debug("Cancelled %d pending timer(s)", len(keys))
        return len(keys)

    def is_pending(self, key: Hashable) -> bool:
        return key in self._pending

    def pending_keys(self) -> list[Hashable]:
        return list(self._pending)

    async def flush(self, key: Hashable | None = None) -> None:
        """Run pending callbacks now (one key, or all of them in due order)."""
        if key is not None:
            keys = [key] if key in self._pending else []
        else:
            keys = sorted(self._pending, key=lambda k: self._pending[k].due_ms)
        for k in keys:
            entry = self._pending.pop(k, None)
            if entry is None:
                continue
            if entry.handle is not None:
                entry.handle.cancel()
            await self._run(k, entry.callback)

    async def drain(self) -> None:
        """Wait for callbacks that already fired and are still running."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fire(self, key: Hashable) -> None:
        entry = self._pending.pop(key, None)
        if entry is None:
            return
        task = asyncio.get_running_loop().create_task(self._run(key, entry.callback))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run(self, key: Hashable, callback: Callback) -> None:
        try:
            await callback()
        except Exception as exc:
            logger.warning("Debounced call %r failed: %s", key, exc)
            if self._on_error is not None:
                self._on_error(key, exc)


class VirtualScheduler(CoalescingScheduler):
    """Deterministic scheduler for tests: time only moves on ``advance()``."""

    def __init__(self, on_error: ErrorHook | None = None) -> None:
        super().__init__(on_error)
        self._now = 0.0

    def now_ms(self) -> float:
        return self._now

    def _arm(self, key: Hashable, entry: _Pending, delay_ms: float) -> None:
        entry.handle = None

    async def advance(self, ms: float) -> None:
        """Move the clock forward, awaiting every callback that comes due."""
        target = self._now + ms
        while True:
            due = [k for k, e in self._pending.items() if e.due_ms <= target]
            if not due:
                break
            key = min(due, key=lambda k: self._pending[k].due_ms)
            entry = self._pending.pop(key)
            self._now = max(self._now, entry.due_ms)
            await self._run(key, entry.callback)
        self._now = target
