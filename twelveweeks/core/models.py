"""Plan entities, enums, capacity ceilings and plan-calendar helpers.

Entities mirror the remote API's snake_case JSON.  Fields the client does
not model (``created_at``, ``updated_at``, ...) ride along in ``extra`` so a
round trip through ``from_dict``/``to_dict`` loses nothing.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timedelta
from typing import Any, ClassVar, Mapping

# ---------------------------------------------------------------------------
# Enums and ceilings
# ---------------------------------------------------------------------------

PLAN_STATUSES = ("ready", "active", "completed", "archived")
GOAL_CATEGORIES = ("work", "finance", "hobby", "relationships", "health", "development")
PRIORITIES = ("A", "B", "C")
TASK_STATUSES = ("todo", "in_progress", "completed", "cancelled", "postponed")
TASK_TYPES = ("ad_hoc", "weekly_sub")
REFLECTION_FIELDS = ("what_worked", "what_did_not_work", "what_to_improve")
CLOSED_TASK_STATUSES = frozenset({"completed", "cancelled"})

PLAN_WEEKS = 12
PLAN_DAYS = PLAN_WEEKS * 7
DAYS_PER_WEEK = 7

MAX_GOALS_PER_PLAN = 6
MAX_MILESTONES_PER_GOAL = 5
MAX_TASKS_PER_WEEKLY_GOAL = 15
MAX_AD_HOC_TASKS_PER_WEEK = 100
PROGRESS_STEP = 5

TEMP_ID_PREFIX = "temp-"


def new_temp_id() -> str:
    """Client-side id for an entity the server has not confirmed yet."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def is_temp_id(entity_id: str | None) -> bool:
    return bool(entity_id) and str(entity_id).startswith(TEMP_ID_PREFIX)


def _to_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and value:
        return date.fromisoformat(value[:10])
    return value


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

class _Record:
    """JSON mapping helpers shared by every entity dataclass."""

    _date_fields: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def _field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)} - {"extra"}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        names = cls._field_names()
        kwargs = {k: v for k, v in data.items() if k in names}
        for key in cls._date_fields:
            if key in kwargs:
                kwargs[key] = _to_date(kwargs[key])
        extra = {k: v for k, v in data.items() if k not in names}
        return cls(**kwargs, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            val = getattr(self, f.name)
            out[f.name] = val.isoformat() if isinstance(val, date) else val
        return out

    def with_changes(self, changes: Mapping[str, Any]):
        """Return a copy with ``changes`` applied; unknown keys go to ``extra``."""
        names = self._field_names()
        known = {k: v for k, v in changes.items() if k in names}
        for key in self._date_fields:
            if key in known:
                known[key] = _to_date(known[key])
        extra = dict(self.extra)
        extra.update({k: v for k, v in changes.items() if k not in names})
        return replace(self, **known, extra=extra)


@dataclass
class Plan(_Record):
    id: str
    name: str
    start_date: date
    status: str = "ready"
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    _date_fields: ClassVar[tuple[str, ...]] = ("start_date",)

    @property
    def end_date(self) -> date:
        return plan_end_date(self.start_date)


@dataclass
class Goal(_Record):
    id: str
    plan_id: str
    title: str
    category: str | None = None
    description: str | None = None
    progress_percentage: int = 0
    position: int = 1
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_completed(self) -> bool:
        return self.progress_percentage >= 100


@dataclass
class Milestone(_Record):
    id: str
    long_term_goal_id: str
    title: str
    description: str | None = None
    due_date: date | None = None
    is_completed: bool = False
    position: int = 1
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    _date_fields: ClassVar[tuple[str, ...]] = ("due_date",)


@dataclass
class WeeklyGoal(_Record):
    id: str
    plan_id: str
    week_number: int
    title: str
    long_term_goal_id: str | None = None
    milestone_id: str | None = None
    description: str | None = None
    position: int = 1
    extra: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass
class Task(_Record):
    id: str
    plan_id: str
    title: str
    week_number: int
    weekly_goal_id: str | None = None
    long_term_goal_id: str | None = None
    milestone_id: str | None = None
    description: str | None = None
    priority: str = "C"
    status: str = "todo"
    task_type: str = "ad_hoc"
    due_day: int | None = None
    position: int = 101
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_TASK_STATUSES


@dataclass
class WeeklyReview(_Record):
    """End-of-week reflection; ``id`` stays None until the first save."""

    plan_id: str
    week_number: int
    id: str | None = None
    what_worked: str | None = None
    what_did_not_work: str | None = None
    what_to_improve: str | None = None
    is_completed: bool = False
    extra: dict[str, Any] = field(default_factory=dict, compare=False)


def assignment_changes(weekly_goal: WeeklyGoal | None) -> dict[str, Any]:
    """Field changes that (un)assign a task to ``weekly_goal``.

    ``task_type`` always flips together with ``weekly_goal_id``.  Assignment
    copies the weekly goal's goal/milestone links once; unassigning leaves the
    task's existing links alone.
    """
    if weekly_goal is None:
        return {"weekly_goal_id": None, "task_type": "ad_hoc"}
    return {
        "weekly_goal_id": weekly_goal.id,
        "task_type": "weekly_sub",
        "long_term_goal_id": weekly_goal.long_term_goal_id,
        "milestone_id": weekly_goal.milestone_id,
    }


def round_progress(value: float) -> int:
    """Clamp to 0..100 and snap to the slider step."""
    value = max(0.0, min(100.0, float(value)))
    return int(round(value / PROGRESS_STEP) * PROGRESS_STEP)


# ---------------------------------------------------------------------------
# Plan calendar
# ---------------------------------------------------------------------------

def is_monday(day: date) -> bool:
    return day.weekday() == 0


def plan_end_date(start: date) -> date:
    """A plan always lasts exactly 12 weeks."""
    return start + timedelta(days=PLAN_DAYS)


def active_week(start: date, today: date | None = None) -> int | None:
    """Week number (1-12) containing ``today``, or None outside the plan."""
    today = today or date.today()
    if today < start or today > plan_end_date(start):
        return None
    week = (today - start).days // 7 + 1
    return week if 1 <= week <= PLAN_WEEKS else None


def current_week(start: date, today: date | None = None) -> int:
    """Like :func:`active_week` but clamped to 1..12."""
    today = today or date.today()
    week = (today - start).days // 7 + 1
    return max(1, min(PLAN_WEEKS, week))


def plan_date(start: date, week_number: int, day_number: int) -> date:
    """Calendar date for ``week_number``/``day_number`` (day 1 is Monday)."""
    return start + timedelta(days=(week_number - 1) * 7 + (day_number - 1))


def in_plan_window(start: date, day: date) -> bool:
    return start <= day < plan_end_date(start)
