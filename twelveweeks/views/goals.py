"""Long-term goals of a plan and the milestones under each goal."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Sequence

from twelveweeks.api.client import PlannerClient
from twelveweeks.common.errors import CapacityError
from twelveweeks.core.models import (
    GOAL_CATEGORIES,
    MAX_GOALS_PER_PLAN,
    MAX_MILESTONES_PER_GOAL,
    Goal,
    Milestone,
    in_plan_window,
    plan_end_date,
    round_progress,
)
from twelveweeks.state.actions import (
    GoalAdded,
    GoalDeleted,
    GoalsReordered,
    GoalUpdateConfirmed,
    GoalUpdated,
    MilestoneAdded,
    MilestoneDeleted,
    MilestonesLoaded,
    MilestoneUpdateConfirmed,
    MilestoneUpdated,
)
from twelveweeks.views.base import ViewState

logger = logging.getLogger("twelveweeks.views.goals")


@dataclass
class GoalsState:
    goals: list[Goal] = field(default_factory=list)
    milestones: dict[str, list[Milestone]] = field(default_factory=dict)
    status: str = "idle"
    error: str | None = None

    def goal(self, goal_id: str) -> Goal | None:
        return next((g for g in self.goals if g.id == goal_id), None)

    def milestone(self, milestone_id: str) -> Milestone | None:
        for items in self.milestones.values():
            for m in items:
                if m.id == milestone_id:
                    return m
        return None


def _map_milestones(state: GoalsState, fn) -> GoalsState:
    return replace(state, milestones={k: fn(v) for k, v in state.milestones.items()})


def goals_reducer(state: GoalsState, action: Any) -> GoalsState:
    if isinstance(action, GoalAdded):
        return replace(state, goals=state.goals + [action.goal])

    if isinstance(action, GoalUpdated):
        return replace(state, goals=[
            g.with_changes(action.changes) if g.id == action.goal_id else g for g in state.goals
        ])

    if isinstance(action, GoalUpdateConfirmed):
        return replace(state, goals=[action.goal if g.id == action.goal.id else g for g in state.goals])

    if isinstance(action, GoalDeleted):
        milestones = {k: v for k, v in state.milestones.items() if k != action.goal_id}
        return replace(state, goals=[g for g in state.goals if g.id != action.goal_id], milestones=milestones)

    if isinstance(action, GoalsReordered):
        return replace(state, goals=list(action.goals))

    if isinstance(action, MilestonesLoaded):
        return replace(state, milestones={**state.milestones, action.goal_id: list(action.milestones)})

    if isinstance(action, MilestoneAdded):
        m = action.milestone
        items = state.milestones.get(m.long_term_goal_id, [])
        return replace(state, milestones={**state.milestones, m.long_term_goal_id: items + [m]})

    if isinstance(action, MilestoneUpdated):
        return _map_milestones(state, lambda items: [
            m.with_changes(action.changes) if m.id == action.milestone_id else m for m in items
        ])

    if isinstance(action, MilestoneUpdateConfirmed):
        new = action.milestone
        return _map_milestones(state, lambda items: [new if m.id == new.id else m for m in items])

    if isinstance(action, MilestoneDeleted):
        return _map_milestones(state, lambda items: [m for m in items if m.id != action.milestone_id])

    return state


class GoalsManager(ViewState[GoalsState]):
    def __init__(
        self,
        client: PlannerClient,
        plan_id: str,
        plan_start: date | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(client, GoalsState(), goals_reducer, name=f"goals:{plan_id}", **kwargs)
        self.plan_id = plan_id
        self.plan_start = plan_start

    async def load(self) -> GoalsState:
        async def fetch() -> GoalsState:
            rows = await self.client.list_plan_goals(self.plan_id)
            goals = sorted((Goal.from_dict(g) for g in rows), key=lambda g: g.position)
            return GoalsState(goals=goals, milestones=dict(self.state.milestones), status="ready")

        return await self._load(fetch)

    # ── Goals ────────────────────────────────────────────────────────────

    async def add_goal(
        self,
        title: str,
        category: str | None = None,
        description: str | None = None,
        progress_percentage: int = 0,
    ) -> Goal:
        """Create a goal.  Waits for the server; nothing is shown before it answers."""
        if len(self.state.goals) >= MAX_GOALS_PER_PLAN:
            raise CapacityError("goals per plan", MAX_GOALS_PER_PLAN)
        if category is not None and category not in GOAL_CATEGORIES:
            raise ValueError(f"Unknown goal category: {category}")

        payload = {
            "plan_id": self.plan_id,
            "title": title,
            "category": category,
            "description": description,
            "progress_percentage": round_progress(progress_percentage),
            "position": len(self.state.goals) + 1,
        }
        data = await self.coordinator.run(
            "add goal",
            lambda: self.client.create_goal(payload),
            commit=lambda d: GoalAdded(Goal.from_dict(d)),
        )
        return Goal.from_dict(data)

    async def update_goal(self, goal_id: str, changes: dict[str, Any]) -> Goal:
        data = await self.coordinator.run(
            "update goal",
            lambda: self.client.update_goal(goal_id, changes),
            optimistic=GoalUpdated(goal_id, changes),
            commit=lambda d: GoalUpdateConfirmed(Goal.from_dict(d)),
        )
        return Goal.from_dict(data)

    def set_progress(self, goal_id: str, value: float) -> int:
        """Slider input: snap to the step and send once the slider settles."""
        progress = round_progress(value)
        self._debounce(
            "goal", goal_id, "progress_percentage", progress,
            lambda v: self.update_goal(goal_id, {"progress_percentage": v}),
            window="slider",
        )
        return progress

    async def delete_goal(self, goal_id: str) -> None:
        await self.coordinator.run(
            "delete goal",
            lambda: self.client.delete_goal(goal_id),
            optimistic=GoalDeleted(goal_id),
        )

    async def reorder_goals(self, order: Sequence[Goal | str]) -> None:
        by_id = {g.id: g for g in self.state.goals}
        ordered = [by_id[o] if isinstance(o, str) else o for o in order]
        renumbered = [replace(g, position=i) for i, g in enumerate(ordered, start=1)]
        changed = [g for g in renumbered if by_id.get(g.id) is None or by_id[g.id].position != g.position]

        def patch(goal: Goal):
            return lambda: self.client.update_goal(goal.id, {"position": goal.position})

        await self.coordinator.run_batch(
            "reorder goals",
            [patch(g) for g in changed],
            optimistic=GoalsReordered(tuple(renumbered)),
        )

    async def move_goal_up(self, goal_id: str) -> bool:
        return await self._move_goal(goal_id, -1)

    async def move_goal_down(self, goal_id: str) -> bool:
        return await self._move_goal(goal_id, 1)

    async def _move_goal(self, goal_id: str, step: int) -> bool:
        goals = list(self.state.goals)
        index = next((i for i, g in enumerate(goals) if g.id == goal_id), None)
        if index is None or not 0 <= index + step < len(goals):
            return False
        goals[index], goals[index + step] = goals[index + step], goals[index]
        await self.reorder_goals(goals)
        return True

    # ── Milestones ───────────────────────────────────────────────────────

    async def load_milestones(self, goal_id: str) -> list[Milestone]:
        rows = await self.client.list_goal_milestones(goal_id)
        milestones = tuple(sorted((Milestone.from_dict(m) for m in rows), key=lambda m: m.position))
        self.store.dispatch(MilestonesLoaded(goal_id, milestones))
        return list(milestones)

    def _check_due_date(self, due_date: date | None) -> None:
        if due_date is None or self.plan_start is None:
            return
        if not in_plan_window(self.plan_start, due_date):
            raise ValueError(
                f"Milestone due date {due_date} must fall between {self.plan_start} "
                f"and {plan_end_date(self.plan_start)}"
            )

    async def add_milestone(
        self,
        goal_id: str,
        title: str,
        due_date: date | None = None,
        description: str | None = None,
    ) -> Milestone:
        if goal_id not in self.state.milestones:
            await self.load_milestones(goal_id)
        existing = self.state.milestones.get(goal_id, [])
        if len(existing) >= MAX_MILESTONES_PER_GOAL:
            raise CapacityError("milestones per goal", MAX_MILESTONES_PER_GOAL)
        self._check_due_date(due_date)

        payload = {
            "long_term_goal_id": goal_id,
            "title": title,
            "description": description,
            "due_date": due_date.isoformat() if due_date else None,
            "is_completed": False,
            "position": len(existing) + 1,
        }
        data = await self.coordinator.run(
            "add milestone",
            lambda: self.client.create_milestone(payload),
            commit=lambda d: MilestoneAdded(Milestone.from_dict(d)),
        )
        return Milestone.from_dict(data)

    async def update_milestone(self, milestone_id: str, changes: dict[str, Any]) -> Milestone:
        if isinstance(changes.get("due_date"), date):
            self._check_due_date(changes["due_date"])
            changes = {**changes, "due_date": changes["due_date"].isoformat()}
        data = await self.coordinator.run(
            "update milestone",
            lambda: self.client.update_milestone(milestone_id, changes),
            optimistic=MilestoneUpdated(milestone_id, changes),
            commit=lambda d: MilestoneUpdateConfirmed(Milestone.from_dict(d)),
        )
        return Milestone.from_dict(data)

    async def toggle_milestone(self, milestone_id: str) -> Milestone:
        milestone = self.state.milestone(milestone_id)
        if milestone is None:
            raise KeyError(milestone_id)
        return await self.update_milestone(milestone_id, {"is_completed": not milestone.is_completed})

    async def delete_milestone(self, milestone_id: str) -> None:
        await self.coordinator.run(
            "delete milestone",
            lambda: self.client.delete_milestone(milestone_id),
            optimistic=MilestoneDeleted(milestone_id),
        )
