"""Week view: weekly goals with their sub-tasks, plus the week's ad-hoc tasks.

Tasks are grouped into containers keyed by weekly goal id; ad-hoc tasks live
under the ``None`` key.  Inside a container tasks are ordered by position and
only the week order of a position is rewritten here (see
``twelveweeks.core.position``).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Sequence

from twelveweeks.api.client import PlannerClient
from twelveweeks.common.errors import CapacityError
from twelveweeks.core import position as pos
from twelveweeks.core.models import (
    MAX_AD_HOC_TASKS_PER_WEEK,
    MAX_TASKS_PER_WEEKLY_GOAL,
    Goal,
    Milestone,
    Task,
    WeeklyGoal,
    assignment_changes,
    new_temp_id,
)
from twelveweeks.state.actions import (
    TaskCreateConfirmed,
    TaskCreated,
    TaskDeleted,
    TasksRegrouped,
    TaskUpdateConfirmed,
    TaskUpdated,
    WeeklyGoalCreateConfirmed,
    WeeklyGoalCreated,
    WeeklyGoalDeleted,
    WeeklyGoalsReordered,
    WeeklyGoalUpdateConfirmed,
    WeeklyGoalUpdated,
)
from twelveweeks.views.base import ViewState

logger = logging.getLogger("twelveweeks.views.week")


@dataclass
class WeekState:
    week_number: int
    weekly_goals: list[WeeklyGoal] = field(default_factory=list)
    tasks: dict[str, list[Task]] = field(default_factory=dict)
    ad_hoc_tasks: list[Task] = field(default_factory=list)
    goals: list[Goal] = field(default_factory=list)
    milestones: list[Milestone] = field(default_factory=list)
    status: str = "idle"
    error: str | None = None

    def container(self, weekly_goal_id: str | None) -> list[Task]:
        if weekly_goal_id is None:
            return self.ad_hoc_tasks
        return self.tasks.get(weekly_goal_id, [])

    def find_task(self, task_id: str) -> tuple[str | None, Task] | None:
        for wg_id, tasks in self.tasks.items():
            for task in tasks:
                if task.id == task_id:
                    return wg_id, task
        for task in self.ad_hoc_tasks:
            if task.id == task_id:
                return None, task
        return None

    def weekly_goal(self, weekly_goal_id: str | None) -> WeeklyGoal | None:
        for wg in self.weekly_goals:
            if wg.id == weekly_goal_id:
                return wg
        return None


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------

def _container_key(task: Task) -> str | None:
    return task.weekly_goal_id if task.task_type == "weekly_sub" else None


def _put(state: WeekState, key: str | None, tasks: list[Task]) -> WeekState:
    if key is None:
        return replace(state, ad_hoc_tasks=tasks)
    return replace(state, tasks={**state.tasks, key: tasks})


def _replace_task(state: WeekState, task_id: str, new: Task) -> WeekState:
    """Swap a task in place, or relocate it when its container changed.

    A task reassigned to a weekly goal outside this week drops out of view.
    """
    found = state.find_task(task_id)
    if found is None:
        return state
    old_key, _ = found
    new_key = _container_key(new)

    if new_key == old_key:
        return _put(state, old_key, [new if t.id == task_id else t for t in state.container(old_key)])

    state = _put(state, old_key, [t for t in state.container(old_key) if t.id != task_id])
    if new_key is not None and new_key not in state.tasks:
        return state
    return _put(state, new_key, state.container(new_key) + [new])


def week_reducer(state: WeekState, action: Any) -> WeekState:
    if isinstance(action, WeeklyGoalCreated):
        wg = action.weekly_goal
        return replace(
            state,
            weekly_goals=state.weekly_goals + [wg],
            tasks={**state.tasks, wg.id: []},
        )

    if isinstance(action, WeeklyGoalCreateConfirmed):
        wg = action.weekly_goal
        tasks = {(wg.id if k == action.temp_id else k): v for k, v in state.tasks.items()}
        return replace(
            state,
            weekly_goals=[wg if g.id == action.temp_id else g for g in state.weekly_goals],
            tasks=tasks,
        )

    if isinstance(action, WeeklyGoalUpdated):
        return replace(state, weekly_goals=[
            g.with_changes(action.changes) if g.id == action.weekly_goal_id else g
            for g in state.weekly_goals
        ])

    if isinstance(action, WeeklyGoalUpdateConfirmed):
        wg = action.weekly_goal
        return replace(state, weekly_goals=[wg if g.id == wg.id else g for g in state.weekly_goals])

    if isinstance(action, WeeklyGoalDeleted):
        tasks = {k: v for k, v in state.tasks.items() if k != action.weekly_goal_id}
        return replace(
            state,
            weekly_goals=[g for g in state.weekly_goals if g.id != action.weekly_goal_id],
            tasks=tasks,
        )

    if isinstance(action, WeeklyGoalsReordered):
        return replace(state, weekly_goals=list(action.weekly_goals))

    if isinstance(action, TaskCreated):
        key = _container_key(action.task)
        return _put(state, key, state.container(key) + [action.task])

    if isinstance(action, TaskCreateConfirmed):
        return _replace_task(state, action.temp_id, action.task)

    if isinstance(action, TaskUpdated):
        found = state.find_task(action.task_id)
        if found is None:
            return state
        return _replace_task(state, action.task_id, found[1].with_changes(action.changes))

    if isinstance(action, TaskUpdateConfirmed):
        return _replace_task(state, action.task.id, action.task)

    if isinstance(action, TaskDeleted):
        return replace(
            state,
            tasks={k: [t for t in v if t.id != action.task_id] for k, v in state.tasks.items()},
            ad_hoc_tasks=[t for t in state.ad_hoc_tasks if t.id != action.task_id],
        )

    if isinstance(action, TasksRegrouped):
        for key, tasks in action.containers.items():
            state = _put(state, key, list(tasks))
        return state

    return state


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------

def _limit_for(weekly_goal_id: str | None) -> tuple[str, int]:
    if weekly_goal_id is None:
        return "ad-hoc tasks", MAX_AD_HOC_TASKS_PER_WEEK
    return "weekly goal tasks", MAX_TASKS_PER_WEEKLY_GOAL


class WeekPlan(ViewState[WeekState]):
    def __init__(self, client: PlannerClient, plan_id: str, week_number: int, **kwargs: Any) -> None:
        super().__init__(client, WeekState(week_number), week_reducer, name=f"week:{week_number}", **kwargs)
        self.plan_id = plan_id
        self.week_number = week_number

    # ── Loading ──────────────────────────────────────────────────────────

    async def load(self) -> WeekState:
        await self._load(self._fetch)
        await self._normalize_if_needed()
        return self.state

    async def _fetch(self) -> WeekState:
        weekly, tasks, goals, milestones = await asyncio.gather(
            self.client.list_weekly_goals(self.plan_id, self.week_number),
            self.client.list_tasks(self.plan_id, self.week_number),
            self.client.list_plan_goals(self.plan_id),
            self.client.list_milestones(),
        )
        goals = sorted((Goal.from_dict(g) for g in goals), key=lambda g: g.position)
        goal_ids = {g.id for g in goals}
        weekly_goals = sorted((WeeklyGoal.from_dict(w) for w in weekly), key=lambda w: w.position)
        all_tasks = pos.sort_by_position(Task.from_dict(t) for t in tasks)

        grouped: dict[str, list[Task]] = {wg.id: [] for wg in weekly_goals}
        ad_hoc: list[Task] = []
        for task in all_tasks:
            if task.weekly_goal_id in grouped:
                grouped[task.weekly_goal_id].append(task)
            elif task.weekly_goal_id is None and task.task_type == "ad_hoc":
                ad_hoc.append(task)

        logger.debug(
            "Week %d: %d weekly goals, %d tasks (%d ad hoc)",
            self.week_number, len(weekly_goals), len(all_tasks), len(ad_hoc),
        )
        return WeekState(
            week_number=self.week_number,
            weekly_goals=weekly_goals,
            tasks=grouped,
            ad_hoc_tasks=ad_hoc,
            goals=goals,
            milestones=[Milestone.from_dict(m) for m in milestones if m.get("long_term_goal_id") in goal_ids],
            status="ready",
        )

    async def _normalize_if_needed(self) -> None:
        state = self.state
        everything = [t for tasks in state.tasks.values() for t in tasks] + state.ad_hoc_tasks
        if not pos.should_normalize((t.position for t in everything), self.overflow_threshold):
            return
        normalized = {t.id: t for t in pos.normalize_if_needed(everything, self.overflow_threshold)}
        changed = [normalized[t.id] for t in everything if normalized[t.id].position != t.position]
        containers = {key: tuple(normalized[t.id] for t in state.container(key)) for key in [*state.tasks, None]}
        await self.coordinator.run_batch(
            "normalize positions",
            [self._patch_position(t) for t in changed],
            optimistic=TasksRegrouped(containers),
        )

    def _patch_position(self, task: Task):
        return lambda: self.client.update_task(task.id, {"position": task.position})

    # ── Weekly goals ─────────────────────────────────────────────────────

    async def add_weekly_goal(
        self,
        title: str,
        long_term_goal_id: str | None = None,
        milestone_id: str | None = None,
    ) -> WeeklyGoal:
        temp = WeeklyGoal(
            id=new_temp_id(),
            plan_id=self.plan_id,
            week_number=self.week_number,
            title=title,
            long_term_goal_id=long_term_goal_id,
            milestone_id=milestone_id,
            position=len(self.state.weekly_goals) + 1,
        )
        payload = {k: v for k, v in temp.to_dict().items() if k != "id"}
        data = await self.coordinator.run(
            "add weekly goal",
            lambda: self.client.create_weekly_goal(payload),
            optimistic=WeeklyGoalCreated(temp),
            commit=lambda d: WeeklyGoalCreateConfirmed(temp.id, WeeklyGoal.from_dict(d)),
        )
        return WeeklyGoal.from_dict(data)

    async def update_weekly_goal(self, weekly_goal_id: str, changes: dict[str, Any]) -> WeeklyGoal:
        data = await self.coordinator.run(
            "update weekly goal",
            lambda: self.client.update_weekly_goal(weekly_goal_id, changes),
            optimistic=WeeklyGoalUpdated(weekly_goal_id, changes),
            commit=lambda d: WeeklyGoalUpdateConfirmed(WeeklyGoal.from_dict(d)),
        )
        return WeeklyGoal.from_dict(data)

    async def delete_weekly_goal(self, weekly_goal_id: str) -> None:
        await self.coordinator.run(
            "delete weekly goal",
            lambda: self.client.delete_weekly_goal(weekly_goal_id),
            optimistic=WeeklyGoalDeleted(weekly_goal_id),
        )

    async def reorder_weekly_goals(self, order: Sequence[WeeklyGoal | str]) -> None:
        by_id = {wg.id: wg for wg in self.state.weekly_goals}
        ordered = [by_id[o] if isinstance(o, str) else o for o in order]
        renumbered = [replace(wg, position=i) for i, wg in enumerate(ordered, start=1)]
        changed = [wg for wg in renumbered if by_id.get(wg.id) is None or by_id[wg.id].position != wg.position]

        def patch(wg: WeeklyGoal):
            return lambda: self.client.update_weekly_goal(wg.id, {"position": wg.position})

        await self.coordinator.run_batch(
            "reorder weekly goals",
            [patch(wg) for wg in changed],
            optimistic=WeeklyGoalsReordered(tuple(renumbered)),
        )

    async def move_weekly_goal_up(self, weekly_goal_id: str) -> bool:
        return await self._move_weekly_goal(weekly_goal_id, -1)

    async def move_weekly_goal_down(self, weekly_goal_id: str) -> bool:
        return await self._move_weekly_goal(weekly_goal_id, 1)

    async def _move_weekly_goal(self, weekly_goal_id: str, step: int) -> bool:
        goals = list(self.state.weekly_goals)
        index = next((i for i, g in enumerate(goals) if g.id == weekly_goal_id), None)
        if index is None or not 0 <= index + step < len(goals):
            return False
        goals[index], goals[index + step] = goals[index + step], goals[index]
        await self.reorder_weekly_goals(goals)
        await self.load()
        return True

    def edit_weekly_goal_title(self, weekly_goal_id: str, title: str) -> None:
        self._debounce(
            "weekly_goal", weekly_goal_id, "title", title,
            lambda v: self.update_weekly_goal(weekly_goal_id, {"title": v}),
            window="text",
        )

    # ── Tasks ────────────────────────────────────────────────────────────

    async def add_task(self, weekly_goal_id: str | None, title: str, priority: str = "C") -> Task:
        container = self.state.container(weekly_goal_id)
        kind, limit = _limit_for(weekly_goal_id)
        if len(container) >= limit:
            raise CapacityError(kind, limit)

        temp = Task(
            id=new_temp_id(),
            plan_id=self.plan_id,
            title=title,
            week_number=self.week_number,
            priority=priority,
            position=pos.encode(len(container) + 1, 1),
        ).with_changes(assignment_changes(self.state.weekly_goal(weekly_goal_id)))
        if weekly_goal_id is not None and temp.weekly_goal_id is None:
            raise KeyError(weekly_goal_id)

        payload = {k: v for k, v in temp.to_dict().items() if k != "id"}
        data = await self.coordinator.run(
            "add task",
            lambda: self.client.create_task(payload),
            optimistic=TaskCreated(temp),
            commit=lambda d: TaskCreateConfirmed(temp.id, Task.from_dict(d)),
        )
        return Task.from_dict(data)

    def _with_assignment(self, changes: dict[str, Any]) -> dict[str, Any]:
        if "weekly_goal_id" not in changes:
            return changes
        wg = self.state.weekly_goal(changes["weekly_goal_id"])
        if wg is None and changes["weekly_goal_id"] is not None:
            return {**changes, "task_type": "weekly_sub"}
        return {**changes, **assignment_changes(wg)}

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        changes = self._with_assignment(changes)
        data = await self.coordinator.run(
            "update task",
            lambda: self.client.update_task(task_id, changes),
            optimistic=TaskUpdated(task_id, changes),
            commit=lambda d: TaskUpdateConfirmed(Task.from_dict(d)),
        )
        return Task.from_dict(data)

    async def delete_task(self, task_id: str) -> None:
        await self.coordinator.run(
            "delete task",
            lambda: self.client.delete_task(task_id),
            optimistic=TaskDeleted(task_id),
        )

    async def move_task(
        self,
        task_id: str,
        source: str | None,
        dest: str | None,
        index: int,
    ) -> None:
        """Drag a task to ``index`` in ``dest`` (a weekly goal id, or None for ad hoc)."""
        state = self.state
        task = next((t for t in state.container(source) if t.id == task_id), None)
        if task is None:
            return

        if dest != source:
            kind, limit = _limit_for(dest)
            if len(state.container(dest)) >= limit:
                raise CapacityError(kind, limit)
            assignment = assignment_changes(state.weekly_goal(dest))
            moved = task.with_changes(assignment)
        else:
            assignment = {}
            moved = task

        src = [t for t in state.container(source) if t.id != task_id]
        dst = src if dest == source else list(state.container(dest))
        dst.insert(max(0, min(index, len(dst))), moved)
        dst = pos.regenerate_for_week_view(dst)

        before = {t.id: t.position for t in state.container(dest)}
        requests = []
        for t in dst:
            if t.id == task_id:
                requests.append(self._patch_task(t.id, {**assignment, "position": t.position}))
            elif before.get(t.id) != t.position:
                requests.append(self._patch_task(t.id, {"position": t.position}))

        containers = {dest: tuple(dst)}
        if dest != source:
            containers[source] = tuple(src)

        await self.coordinator.run_batch(
            "move task",
            requests,
            optimistic=TasksRegrouped(containers),
            commit=lambda results: [TaskUpdateConfirmed(Task.from_dict(r)) for r in results if r],
        )

    def _patch_task(self, task_id: str, changes: dict[str, Any]):
        return lambda: self.client.update_task(task_id, changes)

    def edit_task_title(self, task_id: str, title: str) -> None:
        self._debounce(
            "task", task_id, "title", title,
            lambda v: self.update_task(task_id, {"title": v}),
            window="text",
        )
