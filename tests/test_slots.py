"""Tests for priority <-> lane allocation."""

from __future__ import annotations

import pytest

from twelveweeks.common.errors import CapacityError
from twelveweeks.core import slots
from twelveweeks.core.models import Task

ZEROS = {slots.MOST_IMPORTANT: 0, slots.SECONDARY: 0, slots.ADDITIONAL: 0}


def _task(task_id: str, priority: str, position: int = 101) -> Task:
    return Task(
        id=task_id, plan_id="plan-1", title=task_id, week_number=1,
        due_day=1, priority=priority, position=position,
    )


class TestPriorityToSlot:
    def test_a_prefers_most_important(self) -> None:
        assert slots.priority_to_slot("A", ZEROS) == slots.MOST_IMPORTANT

    def test_a_falls_to_secondary(self) -> None:
        counts = {**ZEROS, slots.MOST_IMPORTANT: 1}
        assert slots.priority_to_slot("A", counts) == slots.SECONDARY

    def test_a_falls_to_additional(self) -> None:
        counts = {**ZEROS, slots.MOST_IMPORTANT: 1, slots.SECONDARY: 2}
        assert slots.priority_to_slot("A", counts) == slots.ADDITIONAL

    def test_b_never_takes_most_important(self) -> None:
        assert slots.priority_to_slot("B", ZEROS) == slots.SECONDARY
        assert slots.priority_to_slot("B", {**ZEROS, slots.SECONDARY: 2}) == slots.ADDITIONAL

    def test_c_always_additional(self) -> None:
        assert slots.priority_to_slot("C", ZEROS) == slots.ADDITIONAL

    def test_slot_to_priority(self) -> None:
        assert [slots.slot_to_priority(s) for s in slots.SLOTS] == ["A", "B", "C"]

    def test_next_priority_cycles(self) -> None:
        assert slots.next_priority("A") == "B"
        assert slots.next_priority("B") == "C"
        assert slots.next_priority("C") == "A"


class TestCapacity:
    def test_full_lane_raises(self) -> None:
        with pytest.raises(CapacityError) as exc:
            slots.check_capacity(slots.MOST_IMPORTANT, {**ZEROS, slots.MOST_IMPORTANT: 1})
        assert exc.value.limit == 1
        assert "most_important slot is full" in str(exc.value)

    def test_room_left(self) -> None:
        slots.check_capacity(slots.ADDITIONAL, {**ZEROS, slots.ADDITIONAL: 6})

    def test_unknown_slot(self) -> None:
        with pytest.raises(ValueError):
            slots.check_capacity("urgent", ZEROS)


class TestAllocate:
    def test_sorted_by_priority_then_position(self) -> None:
        tasks = [
            _task("c1", "C", 101),
            _task("a2", "A", 102),
            _task("a1", "A", 101),
            _task("b1", "B", 101),
        ]
        lanes = slots.allocate(tasks)
        assert [t.id for t in lanes[slots.MOST_IMPORTANT]] == ["a1"]
        assert [t.id for t in lanes[slots.SECONDARY]] == ["a2", "b1"]
        assert [t.id for t in lanes[slots.ADDITIONAL]] == ["c1"]

    def test_overflow_stays_in_additional(self) -> None:
        tasks = [_task(f"c{i}", "C", 100 + i) for i in range(1, 10)]
        lanes = slots.allocate(tasks)
        assert len(lanes[slots.ADDITIONAL]) == 9


class TestChangeSlot:
    def test_moves_and_sets_priority(self) -> None:
        lanes = slots.allocate([_task("t", "C")])
        moved = slots.change_slot(lanes, "t", slots.SECONDARY)
        assert moved[slots.ADDITIONAL] == []
        assert moved[slots.SECONDARY][0].priority == "B"

    def test_full_destination(self) -> None:
        lanes = slots.allocate([_task("a", "A"), _task("c", "C")])
        with pytest.raises(CapacityError):
            slots.change_slot(lanes, "c", slots.MOST_IMPORTANT)

    def test_same_slot_is_noop(self) -> None:
        lanes = slots.allocate([_task("c", "C")])
        assert slots.change_slot(lanes, "c", slots.ADDITIONAL) == lanes

    def test_missing_task(self) -> None:
        with pytest.raises(KeyError):
            slots.change_slot(slots.empty_lanes(), "nope", slots.SECONDARY)


class TestReassignPriority:
    def test_frees_own_seat_first(self) -> None:
        lanes = slots.allocate([_task("a", "A")])
        out = slots.reassign_priority(lanes, "a", "A")
        assert [t.id for t in out[slots.MOST_IMPORTANT]] == ["a"]

    def test_demotion(self) -> None:
        lanes = slots.allocate([_task("a", "A")])
        out = slots.reassign_priority(lanes, "a", "C")
        assert out[slots.MOST_IMPORTANT] == []
        assert out[slots.ADDITIONAL][0].priority == "C"

    def test_promotion_falls_down_when_taken(self) -> None:
        lanes = slots.allocate([_task("a", "A"), _task("c", "C")])
        out = slots.reassign_priority(lanes, "c", "A")
        assert [t.id for t in out[slots.SECONDARY]] == ["c"]
        assert out[slots.SECONDARY][0].priority == "A"

    def test_full_additional_lane_rejects_demotion(self) -> None:
        lanes = slots.allocate([_task("a", "A")] + [_task(f"c{i}", "C", 101 + i) for i in range(7)])
        with pytest.raises(CapacityError, match="additional slot is full"):
            slots.reassign_priority(lanes, "a", "C")

    def test_staying_in_overfull_additional_is_allowed(self) -> None:
        lanes = slots.allocate([_task(f"c{i}", "C", 101 + i) for i in range(8)])
        out = slots.reassign_priority(lanes, "c0", "B")
        assert [t.id for t in out[slots.SECONDARY]] == ["c0"]
        out = slots.reassign_priority(lanes, "c1", "C")
        assert len(out[slots.ADDITIONAL]) == 8
