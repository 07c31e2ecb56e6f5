"""Priority <-> day-lane allocation.

A day has three lanes of fixed capacity.  Priority picks the preferred lane
and falls down a greedy chain when it is full::

    A: most_important -> secondary -> additional
    B: secondary -> additional
    C: additional

Moving a task into a lane directly sets its priority to the lane's own
priority, so the two never disagree.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from twelveweeks.common.errors import CapacityError
from twelveweeks.core.models import Task

MOST_IMPORTANT = "most_important"
SECONDARY = "secondary"
ADDITIONAL = "additional"

SLOTS = (MOST_IMPORTANT, SECONDARY, ADDITIONAL)

SLOT_LIMITS: dict[str, int] = {
    MOST_IMPORTANT: 1,
    SECONDARY: 2,
    ADDITIONAL: 7,
}

_SLOT_PRIORITY = {MOST_IMPORTANT: "A", SECONDARY: "B", ADDITIONAL: "C"}
_PRIORITY_CYCLE = {"A": "B", "B": "C", "C": "A"}

Lanes = dict[str, list[Task]]


def empty_lanes() -> Lanes:
    return {slot: [] for slot in SLOTS}


def lane_counts(lanes: Mapping[str, list]) -> dict[str, int]:
    return {slot: len(lanes.get(slot, [])) for slot in SLOTS}


def has_room(slot: str, counts: Mapping[str, int]) -> bool:
    return counts.get(slot, 0) < SLOT_LIMITS[slot]


def check_capacity(slot: str, counts: Mapping[str, int]) -> None:
    if slot not in SLOT_LIMITS:
        raise ValueError(f"Unknown slot: {slot}")
    if not has_room(slot, counts):
        raise CapacityError(
            f"{slot} slot",
            SLOT_LIMITS[slot],
            f"Cannot add task: {slot} slot is full (max {SLOT_LIMITS[slot]})",
        )


def priority_to_slot(priority: str, counts: Mapping[str, int]) -> str:
    if priority == "A":
        if has_room(MOST_IMPORTANT, counts):
            return MOST_IMPORTANT
        if has_room(SECONDARY, counts):
            return SECONDARY
        return ADDITIONAL
    if priority == "B":
        if has_room(SECONDARY, counts):
            return SECONDARY
        return ADDITIONAL
    return ADDITIONAL


def slot_to_priority(slot: str) -> str:
    return _SLOT_PRIORITY[slot]


def next_priority(priority: str) -> str:
    """A -> B -> C -> A."""
    return _PRIORITY_CYCLE.get(priority, "A")


def allocate(tasks: Iterable[Task]) -> Lanes:
    """Distribute a day's tasks over the lanes, best priority first.

    Overflow past the additional lane's ceiling still lands in additional:
    the server already holds those tasks and hiding them would be worse.
    """
    lanes = empty_lanes()
    counts = {slot: 0 for slot in SLOTS}
    for task in sorted(tasks, key=lambda t: (t.priority, t.position)):
        slot = priority_to_slot(task.priority, counts)
        lanes[slot].append(task)
        counts[slot] += 1
    return lanes


def find_task(lanes: Mapping[str, list[Task]], task_id: str) -> tuple[str, Task] | None:
    for slot in SLOTS:
        for task in lanes.get(slot, []):
            if task.id == task_id:
                return slot, task
    return None


def without_task(lanes: Mapping[str, list[Task]], task_id: str) -> Lanes:
    return {slot: [t for t in lanes.get(slot, []) if t.id != task_id] for slot in SLOTS}


def change_slot(lanes: Mapping[str, list[Task]], task_id: str, target_slot: str) -> Lanes:
    """Move a task to ``target_slot`` and give it that lane's priority.

    Raises CapacityError when the destination is full and KeyError when the
    task is not in any lane.  Moving a task to the lane it is already in is a
    no-op.
    """
    found = find_task(lanes, task_id)
    if found is None:
        raise KeyError(task_id)
    source_slot, task = found
    if source_slot == target_slot:
        return {slot: list(lanes.get(slot, [])) for slot in SLOTS}

    check_capacity(target_slot, lane_counts(lanes))
    moved = without_task(lanes, task_id)
    moved[target_slot].append(task.with_changes({"priority": slot_to_priority(target_slot)}))
    return moved


def reassign_priority(lanes: Mapping[str, list[Task]], task_id: str, priority: str) -> Lanes:
    """Give a task a new priority and re-place it with :func:`priority_to_slot`.

    The task's own lane seat is freed before the lane is chosen.  A task whose
    lane does not change keeps its place in that lane.  Raises CapacityError
    when the chosen lane has no seat left (only additional can run out).
    """
    found = find_task(lanes, task_id)
    if found is None:
        raise KeyError(task_id)
    source_slot, task = found
    rest = without_task(lanes, task_id)
    target_slot = priority_to_slot(priority, lane_counts(rest))
    if target_slot != source_slot:
        check_capacity(target_slot, lane_counts(rest))
    updated = task.with_changes({"priority": priority})

    if target_slot == source_slot:
        return {
            slot: [updated if t.id == task_id else t for t in lanes.get(slot, [])]
            for slot in SLOTS
        }
    rest[target_slot].append(updated)
    return rest
