"""Build the dashboard hierarchy tree from flat plan collections.

Indent levels::

    0  plan
    1  goal | weekly goal without goal/milestone | "Other Tasks" group
    2  milestone | goal's weekly goal without milestone | goal's own task
       | task of a level-1 weekly goal | ad-hoc task
    3  milestone's weekly goal | milestone's own task | task of a level-2 weekly goal
    4  task of a level-3 weekly goal

Filtering is per node.  A node that fails the filter is dropped together with
its subtree (children are never promoted).  A node that passes is kept even if
all its children were filtered out.  The "Other Tasks" group is the exception:
it is only kept when it has at least one child.  Weekly goals have no completion
state and are only filtered by week.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from twelveweeks.core.models import (
    Goal,
    Milestone,
    Plan,
    Task,
    WeeklyGoal,
    current_week,
    plan_date,
)

logger = logging.getLogger("twelveweeks.dashboard.tree")

AD_HOC_GROUP_ID = "ad-hoc-group"
AD_HOC_GROUP_TITLE = "Other Tasks"

NODE_TYPES = ("plan", "goal", "milestone", "weekly_goal", "task", "ad_hoc_group")


@dataclass
class DashboardData:
    plan: Plan
    goals: list[Goal] = field(default_factory=list)
    milestones: list[Milestone] = field(default_factory=list)
    weekly_goals: list[WeeklyGoal] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DashboardData":
        return cls(
            plan=Plan.from_dict(data["plan"]),
            goals=[Goal.from_dict(g) for g in data.get("goals") or []],
            milestones=[Milestone.from_dict(m) for m in data.get("milestones") or []],
            weekly_goals=[WeeklyGoal.from_dict(w) for w in data.get("weekly_goals") or []],
            tasks=[Task.from_dict(t) for t in data.get("tasks") or []],
        )


@dataclass
class TreeFilters:
    show_completed: bool = True
    show_all_weeks: bool = True
    selected_week: int | None = None


@dataclass
class TreeNode:
    id: str
    type: str
    title: str
    indent: int
    status: str | None = None
    is_completed: bool = False
    progress: int | None = None
    week_number: int | None = None
    priority: str | None = None
    date: date | None = None
    link: str | None = None
    children: list["TreeNode"] = field(default_factory=list)


def _task_sort_key(task: Task) -> tuple[int, int]:
    # Tasks without a due day go after day 7 of their week.
    return (task.week_number or 0, task.due_day or 8)


class HierarchyTreeBuilder:
    """One build per call; index maps are built once and then traversed."""

    def __init__(self, data: DashboardData, filters: TreeFilters, today: date | None = None) -> None:
        self.data = data
        self.filters = filters
        self.week = filters.selected_week or current_week(data.plan.start_date, today)
        self._index()

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def _index(self) -> None:
        weekly_goals = sorted(self.data.weekly_goals, key=lambda w: w.week_number or 0)
        tasks = sorted(self.data.tasks, key=_task_sort_key)

        self.milestones_by_goal: dict[str, list[Milestone]] = defaultdict(list)
        for m in sorted(self.data.milestones, key=lambda m: m.position):
            self.milestones_by_goal[m.long_term_goal_id].append(m)

        self.weekly_by_milestone: dict[str, list[WeeklyGoal]] = defaultdict(list)
        self.weekly_by_goal: dict[str, list[WeeklyGoal]] = defaultdict(list)
        self.plan_weekly: list[WeeklyGoal] = []
        for wg in weekly_goals:
            if wg.milestone_id:
                self.weekly_by_milestone[wg.milestone_id].append(wg)
            elif wg.long_term_goal_id:
                self.weekly_by_goal[wg.long_term_goal_id].append(wg)
            else:
                self.plan_weekly.append(wg)

        self.tasks_by_weekly: dict[str, list[Task]] = defaultdict(list)
        self.tasks_by_milestone: dict[str, list[Task]] = defaultdict(list)
        self.tasks_by_goal: dict[str, list[Task]] = defaultdict(list)
        self.ad_hoc: list[Task] = []
        for t in tasks:
            if t.weekly_goal_id:
                self.tasks_by_weekly[t.weekly_goal_id].append(t)
            elif t.milestone_id:
                self.tasks_by_milestone[t.milestone_id].append(t)
            elif t.long_term_goal_id:
                self.tasks_by_goal[t.long_term_goal_id].append(t)
            else:
                self.ad_hoc.append(t)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def _in_week(self, week_number: int | None) -> bool:
        if self.filters.show_all_weeks or week_number is None:
            return True
        return week_number == self.week

    def include_goal(self, goal: Goal) -> bool:
        return self.filters.show_completed or not goal.is_completed

    def include_milestone(self, milestone: Milestone) -> bool:
        return self.filters.show_completed or not milestone.is_completed

    def include_weekly_goal(self, weekly_goal: WeeklyGoal) -> bool:
        return self._in_week(weekly_goal.week_number)

    def include_task(self, task: Task) -> bool:
        if not self.filters.show_completed and task.is_closed:
            return False
        return self._in_week(task.week_number)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    @property
    def _base(self) -> str:
        return f"/plans/{self.data.plan.id}"

    def _task_node(self, task: Task, indent: int) -> TreeNode:
        status = task.status or "todo"
        if task.due_day:
            link = f"{self._base}/day/{task.week_number}/{task.due_day}"
            when = plan_date(self.data.plan.start_date, task.week_number, task.due_day)
        else:
            link = f"{self._base}/week/{task.week_number}"
            when = None
        return TreeNode(
            id=task.id,
            type="task",
            title=task.title,
            indent=indent,
            status=status,
            is_completed=status == "completed",
            week_number=task.week_number or None,
            priority=task.priority,
            date=when,
            link=link,
        )

    def _task_nodes(self, tasks: Iterable[Task], indent: int) -> list[TreeNode]:
        return [self._task_node(t, indent) for t in tasks if self.include_task(t)]

    def _weekly_goal_node(self, weekly_goal: WeeklyGoal, indent: int) -> TreeNode:
        node = TreeNode(
            id=weekly_goal.id,
            type="weekly_goal",
            title=weekly_goal.title,
            indent=indent,
            week_number=weekly_goal.week_number,
            link=f"{self._base}/week/{weekly_goal.week_number}",
        )
        node.children = self._task_nodes(self.tasks_by_weekly.get(weekly_goal.id, []), indent + 1)
        return node

    def _weekly_goal_nodes(self, weekly_goals: Iterable[WeeklyGoal], indent: int) -> list[TreeNode]:
        return [self._weekly_goal_node(wg, indent) for wg in weekly_goals if self.include_weekly_goal(wg)]

    def _milestone_node(self, milestone: Milestone) -> TreeNode:
        node = TreeNode(
            id=milestone.id,
            type="milestone",
            title=milestone.title,
            indent=2,
            status="completed" if milestone.is_completed else None,
            is_completed=milestone.is_completed,
            date=milestone.due_date,
            link=f"{self._base}/goals",
        )
        node.children.extend(self._weekly_goal_nodes(self.weekly_by_milestone.get(milestone.id, []), 3))
        node.children.extend(self._task_nodes(self.tasks_by_milestone.get(milestone.id, []), 3))
        return node

    def _goal_node(self, goal: Goal) -> TreeNode:
        node = TreeNode(
            id=goal.id,
            type="goal",
            title=goal.title,
            indent=1,
            status="completed" if goal.is_completed else None,
            is_completed=goal.is_completed,
            progress=goal.progress_percentage,
            link=f"{self._base}/goals",
        )
        for milestone in self.milestones_by_goal.get(goal.id, []):
            if self.include_milestone(milestone):
                node.children.append(self._milestone_node(milestone))
        node.children.extend(self._weekly_goal_nodes(self.weekly_by_goal.get(goal.id, []), 2))
        node.children.extend(self._task_nodes(self.tasks_by_goal.get(goal.id, []), 2))
        return node

    def build(self) -> list[TreeNode]:
        plan = self.data.plan
        root = TreeNode(
            id=plan.id,
            type="plan",
            title=plan.name,
            indent=0,
            status=plan.status,
            is_completed=plan.status == "completed",
            link=f"{self._base}/dashboard",
        )

        for goal in sorted(self.data.goals, key=lambda g: g.position):
            if self.include_goal(goal):
                root.children.append(self._goal_node(goal))

        root.children.extend(self._weekly_goal_nodes(self.plan_weekly, 1))

        group = TreeNode(
            id=AD_HOC_GROUP_ID,
            type="ad_hoc_group",
            title=AD_HOC_GROUP_TITLE,
            indent=1,
            link=f"{self._base}/week/{self.week}",
        )
        group.children = self._task_nodes(self.ad_hoc, 2)
        if group.children:
            root.children.append(group)

        logger.debug("Built tree for plan %s: %s", plan.id, dict(count_nodes([root])))
        return [root]


def build_hierarchy_tree(
    data: DashboardData,
    filters: TreeFilters | None = None,
    today: date | None = None,
) -> list[TreeNode]:
    return HierarchyTreeBuilder(data, filters or TreeFilters(), today).build()


def flatten(tree: Iterable[TreeNode]) -> list[TreeNode]:
    """Depth-first, pre-order list of every node."""
    out: list[TreeNode] = []
    stack = list(reversed(list(tree)))
    while stack:
        node = stack.pop()
        out.append(node)
        stack.extend(reversed(node.children))
    return out


def count_nodes(tree: Iterable[TreeNode]) -> Counter:
    return Counter(node.type for node in flatten(tree))
