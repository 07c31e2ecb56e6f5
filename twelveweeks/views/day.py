"""Day view: one day's tasks spread over three capacity-limited lanes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Sequence

from twelveweeks.api.client import PlannerClient
from twelveweeks.common.errors import CapacityError
from twelveweeks.core import position as pos
from twelveweeks.core import slots
from twelveweeks.core.models import Goal, Milestone, Task, WeeklyGoal, new_temp_id, plan_date
from twelveweeks.state.actions import (
    TaskCreateConfirmed,
    TaskCreated,
    TaskDeleted,
    TasksRegrouped,
    TaskUpdateConfirmed,
    TaskUpdated,
)
from twelveweeks.views.base import ViewState

logger = logging.getLogger("twelveweeks.views.day")


@dataclass
class DayState:
    week_number: int
    day_number: int
    date: date | None = None
    lanes: dict[str, list[Task]] = field(default_factory=slots.empty_lanes)
    goals: list[Goal] = field(default_factory=list)
    milestones: list[Milestone] = field(default_factory=list)
    weekly_goals: list[WeeklyGoal] = field(default_factory=list)
    status: str = "idle"
    error: str | None = None

    def all_tasks(self) -> list[Task]:
        return [t for slot in slots.SLOTS for t in self.lanes.get(slot, [])]

    def find_task(self, task_id: str) -> tuple[str, Task] | None:
        return slots.find_task(self.lanes, task_id)


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------

def _map_lanes(state: DayState, fn) -> DayState:
    return replace(state, lanes={slot: fn(list(state.lanes.get(slot, []))) for slot in slots.SLOTS})


def _belongs(state: DayState, task: Task) -> bool:
    return task.week_number == state.week_number and task.due_day == state.day_number


def _swap(state: DayState, task_id: str, new: Task) -> DayState:
    if not _belongs(state, new):
        return _map_lanes(state, lambda lane: [t for t in lane if t.id != task_id])
    return _map_lanes(state, lambda lane: [new if t.id == task_id else t for t in lane])


def day_reducer(state: DayState, action: Any) -> DayState:
    if isinstance(action, TaskCreated):
        slot = action.slot or slots.ADDITIONAL
        return replace(state, lanes={**state.lanes, slot: state.lanes.get(slot, []) + [action.task]})

    if isinstance(action, TaskCreateConfirmed):
        return _swap(state, action.temp_id, action.task)

    if isinstance(action, TaskUpdated):
        found = state.find_task(action.task_id)
        if found is None:
            return state
        return _swap(state, action.task_id, found[1].with_changes(action.changes))

    if isinstance(action, TaskUpdateConfirmed):
        return _swap(state, action.task.id, action.task)

    if isinstance(action, TaskDeleted):
        return _map_lanes(state, lambda lane: [t for t in lane if t.id != action.task_id])

    if isinstance(action, TasksRegrouped):
        lanes = dict(state.lanes)
        for slot, tasks in action.containers.items():
            lanes[slot] = list(tasks)
        return replace(state, lanes=lanes)

    return state


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------

class DayPlan(ViewState[DayState]):
    def __init__(
        self,
        client: PlannerClient,
        plan_id: str,
        plan_start: date,
        week_number: int,
        day_number: int,
        **kwargs: Any,
    ) -> None:
        initial = DayState(week_number, day_number, plan_date(plan_start, week_number, day_number))
        super().__init__(client, initial, day_reducer, name=f"day:{week_number}/{day_number}", **kwargs)
        self.plan_id = plan_id
        self.plan_start = plan_start
        self.week_number = week_number
        self.day_number = day_number

    # ── Loading ──────────────────────────────────────────────────────────

    async def load(self) -> DayState:
        return await self._load(self._fetch)

    async def _fetch(self) -> DayState:
        tasks, goals, milestones, weekly = await asyncio.gather(
            self.client.list_tasks(self.plan_id, self.week_number, self.day_number),
            self.client.list_plan_goals(self.plan_id),
            self.client.list_milestones(),
            self.client.list_weekly_goals(self.plan_id, self.week_number),
        )
        goals = sorted((Goal.from_dict(g) for g in goals), key=lambda g: g.position)
        goal_ids = {g.id for g in goals}
        lanes = slots.allocate(Task.from_dict(t) for t in tasks)
        logger.debug("Day %d/%d: %s", self.week_number, self.day_number, slots.lane_counts(lanes))
        return DayState(
            week_number=self.week_number,
            day_number=self.day_number,
            date=plan_date(self.plan_start, self.week_number, self.day_number),
            lanes=lanes,
            goals=goals,
            milestones=[Milestone.from_dict(m) for m in milestones if m.get("long_term_goal_id") in goal_ids],
            weekly_goals=sorted((WeeklyGoal.from_dict(w) for w in weekly), key=lambda w: w.position),
            status="ready",
        )

    def _require(self, task_id: str) -> tuple[str, Task]:
        found = self.state.find_task(task_id)
        if found is None:
            raise KeyError(task_id)
        return found

    # ── Tasks ────────────────────────────────────────────────────────────

    async def add_task(self, slot: str, title: str) -> Task:
        lanes = self.state.lanes
        slots.check_capacity(slot, slots.lane_counts(lanes))

        existing = self.state.all_tasks()
        order = pos.week_order(existing[0].position) if existing else 1
        temp = Task(
            id=new_temp_id(),
            plan_id=self.plan_id,
            title=title,
            week_number=self.week_number,
            due_day=self.day_number,
            priority=slots.slot_to_priority(slot),
            task_type="ad_hoc",
            position=pos.encode(order or 1, len(lanes.get(slot, [])) + 1),
        )
        payload = {k: v for k, v in temp.to_dict().items() if k != "id"}
        data = await self.coordinator.run(
            "add task",
            lambda: self.client.create_task(payload),
            optimistic=TaskCreated(temp, slot=slot),
            commit=lambda d: TaskCreateConfirmed(temp.id, Task.from_dict(d)),
        )
        return Task.from_dict(data)

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        """Patch a task; a priority change also re-seats it in the lanes."""
        if "priority" in changes:
            lanes = slots.reassign_priority(self.state.lanes, task_id, changes["priority"])
            rest = {k: v for k, v in changes.items() if k != "priority"}
            optimistic = [TasksRegrouped(lanes), TaskUpdated(task_id, rest) if rest else None]
        else:
            optimistic = TaskUpdated(task_id, changes)

        data = await self.coordinator.run(
            "update task",
            lambda: self.client.update_task(task_id, changes),
            optimistic=optimistic,
            commit=lambda d: TaskUpdateConfirmed(Task.from_dict(d)),
        )
        return Task.from_dict(data)

    async def delete_task(self, task_id: str) -> None:
        await self.coordinator.run(
            "delete task",
            lambda: self.client.delete_task(task_id),
            optimistic=TaskDeleted(task_id),
        )

    async def reorder_in_slot(self, slot: str, order: Sequence[Task | str]) -> None:
        """Renumber one lane in ``order``, which must be a permutation of it."""
        current = {t.id: t for t in self.state.lanes.get(slot, [])}
        if len(order) > pos.DAY_RANK_MAX:
            raise CapacityError(f"{slot} slot ordering", pos.DAY_RANK_MAX)
        ids = [o if isinstance(o, str) else o.id for o in order]
        if len(ids) != len(current) or set(ids) != set(current):
            raise ValueError(f"Order for {slot} must list each of its {len(current)} task(s) exactly once")
        ordered = [current[o] if isinstance(o, str) else o for o in order]

        renumbered = pos.regenerate_for_day_view(ordered)
        changed = [t for t in renumbered if current[t.id].position != t.position]

        def patch(task: Task):
            return lambda: self.client.update_task(task.id, {"position": task.position})

        await self.coordinator.run_batch(
            f"reorder {slot}",
            [patch(t) for t in changed],
            optimistic=TasksRegrouped({slot: tuple(renumbered)}),
        )

    async def change_task_slot(self, task_id: str, new_slot: str) -> Task | None:
        source_slot, _ = self._require(task_id)
        if source_slot == new_slot:
            return None
        lanes = slots.change_slot(self.state.lanes, task_id, new_slot)
        priority = slots.slot_to_priority(new_slot)
        data = await self.coordinator.run(
            "change slot",
            lambda: self.client.update_task(task_id, {"priority": priority}),
            optimistic=TasksRegrouped(lanes),
            commit=lambda d: TaskUpdateConfirmed(Task.from_dict(d)),
        )
        return Task.from_dict(data)

    # ── Debounced priority ───────────────────────────────────────────────

    def request_priority(self, task_id: str, priority: str) -> None:
        """Queue a priority change; rapid requests collapse into the last one."""
        self._require(task_id)
        self._debounce(
            "task", task_id, "priority", priority,
            lambda p: self.update_task(task_id, {"priority": p}),
            window="priority",
        )

    def cycle_priority(self, task_id: str) -> str:
        _, task = self._require(task_id)
        current = self.editor.pending_value("task", task_id, "priority", task.priority)
        priority = slots.next_priority(current)
        self.request_priority(task_id, priority)
        return priority

    # ── Copy / move across days ──────────────────────────────────────────

    def _targets_this_day(self, week_number: int | None, due_day: int | None) -> bool:
        return (week_number in (None, self.week_number)) and (due_day in (None, self.day_number))

    async def copy_task(
        self,
        task_id: str,
        week_number: int | None = None,
        due_day: int | None = None,
    ) -> Task:
        data = await self.coordinator.run(
            "copy task",
            lambda: self.client.copy_task(task_id, week_number, due_day),
        )
        if self._targets_this_day(week_number, due_day):
            await self.load()
        return Task.from_dict(data)

    async def move_task(
        self,
        task_id: str,
        week_number: int | None = None,
        due_day: int | None = None,
    ) -> Task:
        changes = {k: v for k, v in {"week_number": week_number, "due_day": due_day}.items() if v is not None}
        staying = self._targets_this_day(week_number, due_day)
        data = await self.coordinator.run(
            "move task",
            lambda: self.client.update_task(task_id, changes),
            optimistic=None if staying else TaskDeleted(task_id),
        )
        if staying:
            await self.load()
        return Task.from_dict(data)
