"""Plumbing shared by the view states: store, coordinator, debounced edits."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar

from twelveweeks.api.client import PlannerClient
from twelveweeks.common.config import DEFAULTS
from twelveweeks.common.errors import PlannerError
from twelveweeks.state.actions import Loaded, LoadFailed, LoadStarted
from twelveweeks.state.coordinator import DebouncedEditor, OptimisticMutationCoordinator
from twelveweeks.state.scheduler import CoalescingScheduler
from twelveweeks.state.store import Reducer, Store

logger = logging.getLogger("twelveweeks.views")

S = TypeVar("S")

DEFAULT_WINDOWS = {
    "text": DEFAULTS["debounce"]["text_ms"],
    "slider": DEFAULTS["debounce"]["slider_ms"],
    "priority": DEFAULTS["debounce"]["priority_ms"],
}


class ViewState(Generic[S]):
    def __init__(
        self,
        client: PlannerClient,
        initial: S,
        reducer: Reducer[S],
        *,
        name: str,
        scheduler: CoalescingScheduler | None = None,
        windows: dict[str, int] | None = None,
        overflow_threshold: int = DEFAULTS["positions"]["overflow_threshold"],
    ) -> None:
        self.client = client
        self.store: Store[S] = Store(initial, reducer, name=name)
        self.coordinator = OptimisticMutationCoordinator(self.store)
        self.scheduler = scheduler or CoalescingScheduler()
        self.editor = DebouncedEditor(self.scheduler, {**DEFAULT_WINDOWS, **(windows or {})})
        self.overflow_threshold = overflow_threshold

    @property
    def state(self) -> S:
        return self.store.state

    @property
    def is_saving(self) -> bool:
        return self.coordinator.is_saving

    async def _load(self, fetch: Callable[[], Awaitable[S]]) -> S:
        self.store.dispatch(LoadStarted())
        try:
            state = await fetch()
        except PlannerError as exc:
            logger.error("%s: load failed: %s", self.store.name, exc)
            self.store.dispatch(LoadFailed(str(exc)))
            raise
        self.store.dispatch(Loaded(state))
        return state

    def close(self) -> int:
        """Tear down: cancel every pending debounced write of this view."""
        cancelled = self.editor.cancel_all()
        if cancelled:
            logger.debug("%s: dropped %d pending edit(s) on close", self.store.name, cancelled)
        return cancelled

    def _debounce(
        self,
        kind: str,
        entity_id: str,
        field: str,
        value: Any,
        send: Callable[[Any], Awaitable[Any]],
        window: str,
    ) -> None:
        self.editor.edit(kind, entity_id, field, value, send, window=window)
