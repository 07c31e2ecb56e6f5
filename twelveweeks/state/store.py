"""Explicit state container with a single dispatch path.

Every view keeps its data in a ``Store``.  State objects are dataclasses that
carry ``status`` and ``error`` fields; reducers return new state objects and
never mutate the one they receive.  ``snapshot()`` is a deep copy, so a
snapshot taken before a mutation cannot be altered by anything that happens
afterwards.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from typing import Any, Callable, Generic, TypeVar

from twelveweeks.state.actions import Loaded, LoadFailed, LoadStarted, MutationRolledBack

logger = logging.getLogger("twelveweeks.store")

S = TypeVar("S")
Reducer = Callable[[S, Any], S]
Listener = Callable[[S, Any], None]


class Store(Generic[S]):
    def __init__(self, initial: S, reducer: Reducer[S], name: str = "store") -> None:
        self._state = initial
        self._reducer = reducer
        self._listeners: list[Listener[S]] = []
        self.name = name

    @property
    def state(self) -> S:
        return self._state

    def snapshot(self) -> S:
        return copy.deepcopy(self._state)

    def dispatch(self, action: Any) -> S:
        if isinstance(action, LoadStarted):
            new = dataclasses.replace(self._state, status="loading", error=None)
        elif isinstance(action, Loaded):
            new = action.state
        elif isinstance(action, LoadFailed):
            new = dataclasses.replace(self._state, status="error", error=action.error)
        elif isinstance(action, MutationRolledBack):
            logger.warning("%s: rolled back %s (%s)", self.name, action.mutation, action.error)
            new = copy.deepcopy(action.snapshot)
        else:
            new = self._reducer(self._state, action)

        self._state = new
        for listener in list(self._listeners):
            listener(new, action)
        return new

    def subscribe(self, listener: Listener[S]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
