"""Single-field task ordering shared by the week view and the day view.

A position packs two orderings into one integer::

    position = week_order * 100 + day_rank

``week_order`` is the block order in the week view and ``day_rank`` the rank
inside a day lane.  The week view only ever rewrites ``week_order`` and the
day view only ``day_rank``, so each view can reorder without disturbing the
other, and one ``ORDER BY position`` serves both.

``day_rank`` must stay within 1..99.  Nothing here checks it: a rank of 100
or more silently bleeds into ``week_order``.  Callers that assign day ranks
bound them first (see ``DAY_RANK_MAX``).
"""

from __future__ import annotations

import dataclasses
import logging
from itertools import groupby
from typing import Any, Iterable, Mapping, NamedTuple, TypeVar

logger = logging.getLogger("twelveweeks.position")

SCALE = 100
DAY_RANK_MAX = SCALE - 1
DEFAULT_OVERFLOW_THRESHOLD = 1_000_000

T = TypeVar("T")


class Position(NamedTuple):
    week_order: int
    day_rank: int


def encode(week_order: int, day_rank: int) -> int:
    return week_order * SCALE + day_rank


def decode(position: int) -> Position:
    return Position(position // SCALE, position % SCALE)


def week_order(position: int) -> int:
    return position // SCALE


def day_rank(position: int) -> int:
    return position % SCALE


def update_day_rank(position: int, new_day_rank: int) -> int:
    """Replace the day rank, keep the week order (day-view reordering)."""
    return encode(week_order(position), new_day_rank)


def update_week_order(position: int, new_week_order: int, default_day_rank: int = 1) -> int:
    """Replace the week order; the old day rank is dropped for ``default_day_rank``."""
    return encode(new_week_order, default_day_rank)


# ---------------------------------------------------------------------------
# List operations
# ---------------------------------------------------------------------------

def position_of(item: Any) -> int:
    if isinstance(item, Mapping):
        return int(item["position"])
    return int(item.position)


def with_position(item: T, position: int) -> T:
    """Copy of ``item`` (mapping or dataclass) carrying ``position``."""
    if isinstance(item, Mapping):
        return {**item, "position": position}  # type: ignore[return-value]
    return dataclasses.replace(item, position=position)


def regenerate_for_week_view(items: Iterable[T]) -> list[T]:
    """Week orders become 1..N in list order; day ranks are kept (0 -> 1)."""
    return [
        with_position(item, encode(index, day_rank(position_of(item)) or 1))
        for index, item in enumerate(items, start=1)
    ]


def regenerate_for_day_view(items: Iterable[T]) -> list[T]:
    """Day ranks become 1..N; every item takes the first item's week order.

    All items are assumed to share one day/lane context.
    """
    items = list(items)
    if not items:
        return []
    order = week_order(position_of(items[0]))
    return [with_position(item, encode(order, index)) for index, item in enumerate(items, start=1)]


def normalize(items: Iterable[T], preserve_week_blocks: bool = True) -> list[T]:
    """Reindex positions densely while keeping relative order.

    With ``preserve_week_blocks`` items sharing a week order stay together:
    blocks are renumbered 1.. and ranks inside each block 1..; otherwise the
    whole list becomes one sequence ``encode(i, 1)``.
    """
    ordered = sort_by_position(items)
    if not ordered:
        return []

    if not preserve_week_blocks:
        return [with_position(item, encode(index, 1)) for index, item in enumerate(ordered, start=1)]

    result: list[T] = []
    blocks = groupby(ordered, key=lambda item: week_order(position_of(item)))
    for block_index, (_, block) in enumerate(blocks, start=1):
        for rank, item in enumerate(block, start=1):
            result.append(with_position(item, encode(block_index, rank)))
    return result


def should_normalize(positions: Iterable[int], threshold: int = DEFAULT_OVERFLOW_THRESHOLD) -> bool:
    positions = list(positions)
    return bool(positions) and max(positions) > threshold


def normalize_if_needed(
    items: Iterable[T],
    threshold: int = DEFAULT_OVERFLOW_THRESHOLD,
    preserve_week_blocks: bool = True,
) -> list[T]:
    """Return ``items`` normalised when any position exceeds ``threshold``."""
    items = list(items)
    if not should_normalize((position_of(i) for i in items), threshold):
        return items
    logger.info("Normalising %d positions (threshold %d exceeded)", len(items), threshold)
    return normalize(items, preserve_week_blocks)


def sort_by_position(items: Iterable[T]) -> list[T]:
    return sorted(items, key=position_of)
