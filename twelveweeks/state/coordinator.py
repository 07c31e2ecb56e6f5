"""Optimistic mutation protocol shared by every view.

Each mutation runs the same five steps:

1. snapshot the store (deep copy);
2. dispatch the optimistic actions so the change shows immediately;
3. await the network call(s);
4. on success dispatch the commit actions built from the server's answer;
5. on any failure restore the snapshot in full and re-raise.

A mutation that applied nothing optimistically (e.g. a create that waits for
the server) has nothing to roll back, so a failure leaves the store alone.

Batches run their requests concurrently.  If any of them fails the whole
batch is rolled back, even though other requests may already have been
applied server side; the client does not try to reconcile a partial batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, Iterable, Sequence, TypeVar

from twelveweeks.common.errors import BatchError
from twelveweeks.state.actions import MutationRolledBack
from twelveweeks.state.scheduler import CoalescingScheduler
from twelveweeks.state.store import Store

logger = logging.getLogger("twelveweeks.coordinator")

T = TypeVar("T")
Request = Callable[[], Awaitable[T]]
Commit = Callable[[T], Any]


def _as_list(actions: Any) -> list[Any]:
    if actions is None:
        return []
    if isinstance(actions, (list, tuple)):
        return [a for a in actions if a is not None]
    return [actions]


class OptimisticMutationCoordinator:
    def __init__(self, store: Store, name: str | None = None) -> None:
        self._store = store
        self.name = name or store.name
        self.in_flight = 0

    @property
    def is_saving(self) -> bool:
        return self.in_flight > 0

    async def run(
        self,
        mutation: str,
        request: Request[T],
        *,
        optimistic: Any = None,
        commit: Commit[T] | None = None,
    ) -> T:
        """Apply ``optimistic`` now, await ``request``, then commit or roll back."""
        snapshot = self._store.snapshot()
        applied = self._apply(optimistic)

        self.in_flight += 1
        try:
            result = await request()
        except Exception as exc:
            if applied:
                self._store.dispatch(MutationRolledBack(snapshot, mutation, str(exc)))
            else:
                logger.info("%s: %s failed before any local change: %s", self.name, mutation, exc)
            raise
        finally:
            self.in_flight -= 1

        if commit is not None:
            self._apply(commit(result))
        logger.debug("%s: %s committed", self.name, mutation)
        return result

    async def run_batch(
        self,
        mutation: str,
        requests: Sequence[Request[Any]],
        *,
        optimistic: Any = None,
        commit: Callable[[list[Any]], Any] | None = None,
    ) -> list[Any]:
        """Like :meth:`run` for a set of parallel requests; all-or-nothing locally."""
        snapshot = self._store.snapshot()
        applied = self._apply(optimistic)

        self.in_flight += 1
        try:
            results = await asyncio.gather(*(r() for r in requests), return_exceptions=True)
        finally:
            self.in_flight -= 1

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            error = BatchError(failures, succeeded=len(results) - len(failures), total=len(results))
            if applied:
                self._store.dispatch(MutationRolledBack(snapshot, mutation, str(error)))
            raise error from failures[0]

        if commit is not None:
            self._apply(commit(list(results)))
        logger.debug("%s: %s committed (%d requests)", self.name, mutation, len(results))
        return list(results)

    def _apply(self, actions: Any) -> bool:
        items = _as_list(actions)
        for action in items:
            self._store.dispatch(action)
        return bool(items)


class DebouncedEditor:
    """Per-field edit debouncing on top of a :class:`CoalescingScheduler`.

    Edits are keyed by (kind, entity id, field).  Each new edit for a key
    cancels the pending send and restarts the window; only the last value is
    sent.
    """

    def __init__(self, scheduler: CoalescingScheduler, windows: dict[str, int]) -> None:
        self._scheduler = scheduler
        self._windows = windows
        self._values: dict[Hashable, Any] = {}

    def edit(
        self,
        kind: str,
        entity_id: str,
        field: str,
        value: Any,
        send: Callable[[Any], Awaitable[Any]],
        window: str = "text",
    ) -> None:
        key = (kind, entity_id, field)
        self._values[key] = value

        async def fire() -> None:
            final = self._values.pop(key)
            await send(final)

        self._scheduler.schedule(key, self._windows[window], fire)

    def pending_value(self, kind: str, entity_id: str, field: str, default: Any = None) -> Any:
        return self._values.get((kind, entity_id, field), default)

    def is_pending(self, kind: str, entity_id: str, field: str) -> bool:
        return self._scheduler.is_pending((kind, entity_id, field))

    def cancel_all(self, keys: Iterable[Hashable] | None = None) -> int:
        keys = list(self._values) if keys is None else list(keys)
        cancelled = 0
        for key in keys:
            self._values.pop(key, None)
            if self._scheduler.cancel(key):
                cancelled += 1
        return cancelled
