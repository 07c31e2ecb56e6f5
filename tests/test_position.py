"""Tests for the dual-context position encoding."""

from __future__ import annotations

import logging

import pytest

from twelveweeks.core import position as pos
from twelveweeks.core.models import Task


def _task(task_id: str, position: int) -> Task:
    return Task(id=task_id, plan_id="plan-1", title=task_id, week_number=1, position=position)


class TestEncodeDecode:
    def test_known_value(self) -> None:
        assert pos.encode(3, 5) == 305
        assert pos.decode(305) == (3, 5)
        assert pos.decode(305).week_order == 3
        assert pos.decode(305).day_rank == 5

    def test_decode_inverts_encode(self) -> None:
        for week_order in range(1, 10_000):
            for day_rank in range(1, pos.DAY_RANK_MAX + 1):
                assert pos.decode(pos.encode(week_order, day_rank)) == (week_order, day_rank)

    def test_accessors(self) -> None:
        assert pos.week_order(1207) == 12
        assert pos.day_rank(1207) == 7

    def test_day_rank_overflow_bleeds_into_week_order(self) -> None:
        # Unchecked precondition: callers must keep day ranks below 100.
        assert pos.decode(pos.encode(1, 100)) == (2, 0)


class TestUpdates:
    def test_update_day_rank_keeps_week_order(self) -> None:
        assert pos.update_day_rank(305, 9) == 309

    def test_update_week_order_resets_day_rank(self) -> None:
        assert pos.update_week_order(305, 7) == 701
        assert pos.update_week_order(305, 7, default_day_rank=4) == 704


class TestRegenerate:
    def test_week_view_renumbers_blocks_and_keeps_ranks(self) -> None:
        items = [_task("a", 705), _task("b", 300), _task("c", 102)]
        out = pos.regenerate_for_week_view(items)
        assert [t.position for t in out] == [105, 201, 302]
        assert [t.id for t in out] == ["a", "b", "c"]

    def test_day_view_keeps_first_week_order(self) -> None:
        items = [_task("a", 401), _task("b", 902), _task("c", 203)]
        out = pos.regenerate_for_day_view(items)
        assert [pos.week_order(t.position) for t in out] == [4, 4, 4]
        assert [pos.day_rank(t.position) for t in out] == [1, 2, 3]

    def test_day_view_empty(self) -> None:
        assert pos.regenerate_for_day_view([]) == []

    def test_works_on_mappings(self) -> None:
        out = pos.regenerate_for_week_view([{"id": "x", "position": 503}])
        assert out == [{"id": "x", "position": 103}]

    def test_inputs_are_not_mutated(self) -> None:
        items = [_task("a", 705)]
        pos.regenerate_for_week_view(items)
        assert items[0].position == 705


class TestNormalize:
    def test_preserves_week_blocks(self) -> None:
        items = [_task("c", 5_000_002), _task("a", 300), _task("b", 301), _task("d", 5_000_010)]
        out = pos.normalize(items)
        assert [(t.id, t.position) for t in out] == [("a", 101), ("b", 102), ("c", 201), ("d", 202)]

    def test_flat_sequence(self) -> None:
        items = [_task("a", 300), _task("b", 301), _task("c", 999)]
        out = pos.normalize(items, preserve_week_blocks=False)
        assert [t.position for t in out] == [101, 201, 301]

    def test_threshold(self) -> None:
        assert not pos.should_normalize([100, 200], threshold=1_000)
        assert pos.should_normalize([100, 2_000], threshold=1_000)
        assert not pos.should_normalize([])

    def test_normalize_if_needed_logs(self, caplog: pytest.LogCaptureFixture) -> None:
        items = [_task("a", 2_000_101)]
        with caplog.at_level(logging.INFO, logger="twelveweeks.position"):
            out = pos.normalize_if_needed(items)
        assert out[0].position == 101
        assert "Normalising" in caplog.text

    def test_normalize_if_needed_leaves_small_positions(self) -> None:
        items = [_task("b", 301), _task("a", 300)]
        assert pos.normalize_if_needed(items) == items
