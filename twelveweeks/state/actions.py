"""Typed actions accepted by ``Store.dispatch``.

Lifecycle actions (``LoadStarted``, ``Loaded``, ``LoadFailed``,
``MutationRolledBack``) are handled by the store itself; everything else is
handed to the view's reducer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from twelveweeks.core.models import Goal, Milestone, Plan, Task, WeeklyGoal, WeeklyReview


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LoadStarted:
    pass


@dataclass(frozen=True)
class Loaded:
    state: Any


@dataclass(frozen=True)
class LoadFailed:
    error: str


@dataclass(frozen=True)
class MutationRolledBack:
    snapshot: Any
    mutation: str
    error: str = ""


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskCreated:
    task: Task
    slot: str | None = None


@dataclass(frozen=True)
class TaskCreateConfirmed:
    temp_id: str
    task: Task


@dataclass(frozen=True)
class TaskUpdated:
    task_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TaskUpdateConfirmed:
    task: Task


@dataclass(frozen=True)
class TaskDeleted:
    task_id: str


@dataclass(frozen=True)
class TasksRegrouped:
    """Replace whole task containers (week view moves, day lane changes).

    ``containers`` maps a container key to its new task list.  In the week
    view the key is a weekly goal id (``None`` for ad-hoc tasks); in the day
    view it is a lane name.
    """

    containers: Mapping[str | None, tuple[Task, ...]]


# ---------------------------------------------------------------------------
# Weekly goals
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WeeklyGoalCreated:
    weekly_goal: WeeklyGoal


@dataclass(frozen=True)
class WeeklyGoalCreateConfirmed:
    temp_id: str
    weekly_goal: WeeklyGoal


@dataclass(frozen=True)
class WeeklyGoalUpdated:
    weekly_goal_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WeeklyGoalUpdateConfirmed:
    weekly_goal: WeeklyGoal


@dataclass(frozen=True)
class WeeklyGoalDeleted:
    weekly_goal_id: str


@dataclass(frozen=True)
class WeeklyGoalsReordered:
    weekly_goals: tuple[WeeklyGoal, ...]


# ---------------------------------------------------------------------------
# Goals and milestones
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GoalAdded:
    goal: Goal


@dataclass(frozen=True)
class GoalUpdated:
    goal_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GoalUpdateConfirmed:
    goal: Goal


@dataclass(frozen=True)
class GoalDeleted:
    goal_id: str


@dataclass(frozen=True)
class GoalsReordered:
    goals: tuple[Goal, ...]


@dataclass(frozen=True)
class MilestonesLoaded:
    goal_id: str
    milestones: tuple[Milestone, ...]


@dataclass(frozen=True)
class MilestoneAdded:
    milestone: Milestone


@dataclass(frozen=True)
class MilestoneUpdated:
    milestone_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MilestoneUpdateConfirmed:
    milestone: Milestone


@dataclass(frozen=True)
class MilestoneDeleted:
    milestone_id: str


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlanCreated:
    plan: Plan


@dataclass(frozen=True)
class PlanCreateConfirmed:
    temp_id: str
    plan: Plan


@dataclass(frozen=True)
class PlanUpdated:
    plan_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PlanUpdateConfirmed:
    plan: Plan


@dataclass(frozen=True)
class PlanDeleted:
    plan_id: str


# ---------------------------------------------------------------------------
# Weekly reviews
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReviewEdited:
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReviewSaved:
    review: WeeklyReview
    saved_at: datetime | None = None
