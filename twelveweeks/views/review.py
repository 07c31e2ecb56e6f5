"""Weekly review: reflection notes that autosave, plus goal and milestone check-ins.

A week's review does not exist on the server until its first save.  The first
save POSTs it and every later save PATCHes it; saves run one at a time so two
reflection fields settling together cannot both create the review.

Typed reflection text shows at once and stays on screen when a save fails.
Goal progress and milestone toggles are ordinary optimistic mutations and roll
back on failure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable

from twelveweeks.api.client import PlannerClient
from twelveweeks.core.models import (
    PLAN_WEEKS,
    REFLECTION_FIELDS,
    Goal,
    Milestone,
    WeeklyReview,
    round_progress,
)
from twelveweeks.state.actions import (
    GoalUpdateConfirmed,
    GoalUpdated,
    MilestoneUpdateConfirmed,
    MilestoneUpdated,
    ReviewEdited,
    ReviewSaved,
)
from twelveweeks.views.base import ViewState

logger = logging.getLogger("twelveweeks.views.review")


@dataclass
class ReviewState:
    review: WeeklyReview
    goals: list[Goal] = field(default_factory=list)
    milestones: dict[str, list[Milestone]] = field(default_factory=dict)
    last_saved_at: datetime | None = None
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


def review_reducer(state: ReviewState, action: Any) -> ReviewState:
    if isinstance(action, ReviewEdited):
        return replace(state, review=state.review.with_changes(action.changes))

    if isinstance(action, ReviewSaved):
        return replace(state, review=action.review, last_saved_at=action.saved_at or state.last_saved_at)

    if isinstance(action, GoalUpdated):
        return replace(state, goals=[
            g.with_changes(action.changes) if g.id == action.goal_id else g for g in state.goals
        ])

    if isinstance(action, GoalUpdateConfirmed):
        return replace(state, goals=[action.goal if g.id == action.goal.id else g for g in state.goals])

    if isinstance(action, MilestoneUpdated):
        return replace(state, milestones={
            k: [m.with_changes(action.changes) if m.id == action.milestone_id else m for m in items]
            for k, items in state.milestones.items()
        })

    if isinstance(action, MilestoneUpdateConfirmed):
        new = action.milestone
        return replace(state, milestones={
            k: [new if m.id == new.id else m for m in items] for k, items in state.milestones.items()
        })

    return state


def _check_fields(names) -> None:
    unknown = [n for n in names if n not in REFLECTION_FIELDS]
    if unknown:
        raise ValueError(f"Not a reflection field: {', '.join(unknown)}")


class WeekReview(ViewState[ReviewState]):
    def __init__(self, client: PlannerClient, plan_id: str, week_number: int, **kwargs: Any) -> None:
        if not 1 <= week_number <= PLAN_WEEKS:
            raise ValueError(f"Week number must be between 1 and {PLAN_WEEKS}, got {week_number}")
        initial = ReviewState(WeeklyReview(plan_id=plan_id, week_number=week_number))
        super().__init__(client, initial, review_reducer, name=f"review:{week_number}", **kwargs)
        self.plan_id = plan_id
        self.week_number = week_number
        self._key = f"{plan_id}:{week_number}"
        self._save_lock = asyncio.Lock()
        # field -> text typed locally and not yet confirmed by the server
        self._unsaved: dict[str, Any] = {}

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self._unsaved)

    async def load(self) -> ReviewState:
        async def fetch() -> ReviewState:
            review, goals, milestones = await asyncio.gather(
                self.client.get_weekly_review_for_week(self.plan_id, self.week_number),
                self.client.list_plan_goals(self.plan_id),
                self.client.list_milestones(),
            )
            goals = sorted((Goal.from_dict(g) for g in goals), key=lambda g: g.position)
            by_goal: dict[str, list[Milestone]] = {g.id: [] for g in goals}
            for m in sorted((Milestone.from_dict(m) for m in milestones), key=lambda m: m.position):
                if m.long_term_goal_id in by_goal:
                    by_goal[m.long_term_goal_id].append(m)
            if review is None:
                logger.debug("No review yet for week %d of %s", self.week_number, self.plan_id)
            return ReviewState(
                review=(
                    WeeklyReview.from_dict(review) if review
                    else WeeklyReview(plan_id=self.plan_id, week_number=self.week_number)
                ),
                goals=goals,
                milestones=by_goal,
                status="ready",
            )

        self._unsaved.clear()
        return await self._load(fetch)

    # ── Reflection ───────────────────────────────────────────────────────

    def edit_reflection(self, name: str, text: str | None) -> None:
        """Show ``text`` now; save it once typing in that field has paused."""
        _check_fields([name])
        self._unsaved[name] = text
        self.store.dispatch(ReviewEdited({name: text}))
        self._debounce(
            "review", self._key, name, text,
            lambda v: self.save_reflection({name: v}, optimistic=False),
            window="text",
        )

    async def save_reflection(self, changes: dict[str, Any], *, optimistic: bool = True) -> WeeklyReview:
        """Create the review on its first save and patch it afterwards.

        With ``optimistic=False`` the text is assumed to be on screen already
        and a failed save leaves it there.
        """
        _check_fields(changes)
        async with self._save_lock:
            review_id = self.state.review.id
            if review_id is None:
                payload = {"plan_id": self.plan_id, "week_number": self.week_number, **changes}
                mutation, request = "create review", lambda: self.client.create_weekly_review(payload)
            else:
                mutation, request = "save review", lambda: self.client.update_weekly_review(review_id, changes)
            data = await self.coordinator.run(
                mutation,
                request,
                optimistic=ReviewEdited(changes) if optimistic else None,
                commit=self._confirm(changes),
            )
        return WeeklyReview.from_dict(data)

    def _confirm(self, changes: dict[str, Any]) -> Callable[[Any], list[Any]]:
        def build(data: Any) -> list[Any]:
            for name, value in changes.items():
                if name in self._unsaved and self._unsaved[name] == value:
                    del self._unsaved[name]
            # drafts typed while the request was out are laid back over the server copy
            return [
                ReviewSaved(WeeklyReview.from_dict(data), saved_at=datetime.now()),
                ReviewEdited(dict(self._unsaved)) if self._unsaved else None,
            ]

        return build

    async def save_pending(self) -> None:
        """Send queued reflection edits now instead of waiting out the window."""
        for name in REFLECTION_FIELDS:
            await self.scheduler.flush(("review", self._key, name))

    async def toggle_completion(self) -> WeeklyReview:
        """Mark the review complete, or reopen a completed one.

        Pending reflection edits are saved first.  A review that has never been
        saved cannot be completed.
        """
        await self.save_pending()
        review = self.state.review
        if review.id is None:
            raise ValueError("Add some reflection before marking the review complete")

        review_id = review.id
        done = not review.is_completed
        async with self._save_lock:
            if done:
                await self.coordinator.run(
                    "complete review",
                    lambda: self.client.complete_weekly_review(review_id),
                    optimistic=ReviewEdited({"is_completed": True}),
                )
            else:
                await self.coordinator.run(
                    "reopen review",
                    lambda: self.client.update_weekly_review(review_id, {"is_completed": False}),
                    optimistic=ReviewEdited({"is_completed": False}),
                    commit=self._confirm({}),
                )
        logger.info("Week %d review %s", self.week_number, "completed" if done else "reopened")
        return self.state.review

    # ── Goal check-ins ───────────────────────────────────────────────────

    async def update_goal_progress(self, goal_id: str, value: float) -> Goal:
        if self.state.goal(goal_id) is None:
            raise KeyError(goal_id)
        progress = round_progress(value)
        changes = {"progress_percentage": progress}
        data = await self.coordinator.run(
            "update goal progress",
            lambda: self.client.update_goal(goal_id, changes),
            optimistic=GoalUpdated(goal_id, changes),
            commit=lambda d: GoalUpdateConfirmed(Goal.from_dict(d)),
        )
        return Goal.from_dict(data)

    def set_goal_progress(self, goal_id: str, value: float) -> int:
        """Slider input: snap to the step and send once the slider settles."""
        if self.state.goal(goal_id) is None:
            raise KeyError(goal_id)
        progress = round_progress(value)
        self._debounce(
            "goal", goal_id, "progress_percentage", progress,
            lambda v: self.update_goal_progress(goal_id, v),
            window="slider",
        )
        return progress

    async def toggle_milestone(self, milestone_id: str, is_completed: bool | None = None) -> Milestone:
        milestone = self.state.milestone(milestone_id)
        if milestone is None:
            raise KeyError(milestone_id)
        changes = {"is_completed": (not milestone.is_completed) if is_completed is None else is_completed}
        data = await self.coordinator.run(
            "toggle milestone",
            lambda: self.client.update_milestone(milestone_id, changes),
            optimistic=MilestoneUpdated(milestone_id, changes),
            commit=lambda d: MilestoneUpdateConfirmed(Milestone.from_dict(d)),
        )
        return Milestone.from_dict(data)
