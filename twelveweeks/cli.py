"""Command-line interface for browsing a 12-week plan.

Usage:
    twelveweeks plans
    twelveweeks plans --status active
    twelveweeks tree --plan <id>
    twelveweeks tree --plan <id> --week 3 --hide-completed
    twelveweeks week --plan <id> --week 3
    twelveweeks day --plan <id> --week 3 --day 2
    twelveweeks review --plan <id> --week 3
    twelveweeks review --plan <id> --week 3 --worked "Mornings" --complete
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from twelveweeks.api.client import PlannerClient
from twelveweeks.common.config import load_config, setup_logging
from twelveweeks.common.errors import PlannerError
from twelveweeks.core import slots
from twelveweeks.dashboard.tree import TreeFilters
from twelveweeks.views.dashboard import Dashboard
from twelveweeks.views.day import DayPlan
from twelveweeks.views.plans import PlansManager
from twelveweeks.views.review import WeekReview
from twelveweeks.views.week import WeekPlan

logger = logging.getLogger("twelveweeks.cli")

_MARK = {True: "x", False: " "}


async def cmd_plans(client: PlannerClient, args: argparse.Namespace, cfg: dict) -> None:
    view = PlansManager(client)
    state = await view.load(args.status)
    if not state.plans:
        print("No plans.")
        return
    print(f"{len(state.plans)} plan(s):\n")
    for plan in state.plans:
        print(f"  [{plan.status:8s}] {plan.name}")
        print(f"         {plan.id}  {plan.start_date} -> {plan.end_date}")


async def cmd_tree(client: PlannerClient, args: argparse.Namespace, cfg: dict) -> None:
    view = Dashboard(client)
    await view.load(args.plan)
    filters = TreeFilters(
        show_completed=not args.hide_completed,
        show_all_weeks=args.week is None,
        selected_week=args.week,
    )
    for root in view.tree(filters):
        _print_node(root)


def _print_node(node) -> None:
    extra = ""
    if node.progress is not None:
        extra = f" ({node.progress}%)"
    elif node.priority:
        extra = f" [{node.priority}]"
    print(f"{'  ' * node.indent}[{_MARK[node.is_completed]}] {node.title}{extra}")
    for child in node.children:
        _print_node(child)


async def cmd_week(client: PlannerClient, args: argparse.Namespace, cfg: dict) -> None:
    view = WeekPlan(client, args.plan, args.week, overflow_threshold=cfg["positions"]["overflow_threshold"])
    try:
        state = await view.load()
    finally:
        view.close()
    print(f"Week {args.week}: {len(state.weekly_goals)} weekly goal(s)\n")
    for wg in state.weekly_goals:
        print(f"  {wg.position}. {wg.title}")
        for task in state.container(wg.id):
            print(f"       [{task.priority}] {task.title} ({task.status})")
    if state.ad_hoc_tasks:
        print("\n  Other tasks")
        for task in state.ad_hoc_tasks:
            print(f"       [{task.priority}] {task.title} ({task.status})")


async def cmd_day(client: PlannerClient, args: argparse.Namespace, cfg: dict) -> None:
    plans = PlansManager(client)
    await plans.load()
    plan = plans.state.plan(args.plan)
    if plan is None:
        print(f"Plan not found: {args.plan}", file=sys.stderr)
        sys.exit(1)

    view = DayPlan(client, plan.id, plan.start_date, args.week, args.day)
    try:
        state = await view.load()
    finally:
        view.close()
    print(f"Week {args.week}, day {args.day} ({state.date:%A %Y-%m-%d})\n")
    for slot in slots.SLOTS:
        lane = state.lanes[slot]
        print(f"  {slot} ({len(lane)}/{slots.SLOT_LIMITS[slot]})")
        for task in lane:
            print(f"       [{task.priority}] {task.title} ({task.status})")


_REFLECTION_LABELS = {
    "what_worked": "What worked",
    "what_did_not_work": "What did not work",
    "what_to_improve": "What to improve",
}


async def cmd_review(client: PlannerClient, args: argparse.Namespace, cfg: dict) -> None:
    view = WeekReview(client, args.plan, args.week)
    try:
        await view.load()
        changes = {k: v for k, v in {
            "what_worked": args.worked,
            "what_did_not_work": args.did_not_work,
            "what_to_improve": args.improve,
        }.items() if v is not None}
        if changes:
            await view.save_reflection(changes)
        if args.complete and view.state.review.id is None:
            print("Nothing to complete: the review is empty.", file=sys.stderr)
        elif args.complete and not view.state.review.is_completed:
            await view.toggle_completion()
        state = view.state
    finally:
        view.close()

    status = "complete" if state.review.is_completed else ("draft" if state.review.id else "not started")
    print(f"Week {args.week} review ({status})\n")
    for name, label in _REFLECTION_LABELS.items():
        print(f"  {label}:")
        print(f"       {getattr(state.review, name) or '-'}")
    if state.goals:
        print("\n  Goals")
        for goal in state.goals:
            print(f"       {goal.title} ({goal.progress_percentage}%)")
            for m in state.milestones.get(goal.id, []):
                print(f"         [{_MARK[m.is_completed]}] {m.title}")


async def _run(args: argparse.Namespace, cfg: dict) -> None:
    dispatch = {
        "plans": cmd_plans,
        "tree": cmd_tree,
        "week": cmd_week,
        "day": cmd_day,
        "review": cmd_review,
    }
    async with PlannerClient.from_config(cfg) as client:
        await dispatch[args.command](client, args, cfg)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="twelveweeks", description="Browse a 12-week plan")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")

    sub = parser.add_subparsers(dest="command", required=True)

    p_plans = sub.add_parser("plans", help="List plans")
    p_plans.add_argument("--status", default=None, help="Filter by plan status")

    p_tree = sub.add_parser("tree", help="Dashboard hierarchy tree")
    p_tree.add_argument("--plan", required=True, help="Plan id")
    p_tree.add_argument("--week", type=int, default=None, help="Only show this week")
    p_tree.add_argument("--hide-completed", action="store_true", help="Hide completed items")

    p_week = sub.add_parser("week", help="Weekly goals and tasks of one week")
    p_week.add_argument("--plan", required=True, help="Plan id")
    p_week.add_argument("--week", type=int, required=True)

    p_day = sub.add_parser("day", help="Priority lanes of one day")
    p_day.add_argument("--plan", required=True, help="Plan id")
    p_day.add_argument("--week", type=int, required=True)
    p_day.add_argument("--day", type=int, required=True, help="Day of week, 1 = Monday")

    p_review = sub.add_parser("review", help="Show or write the weekly review")
    p_review.add_argument("--plan", required=True, help="Plan id")
    p_review.add_argument("--week", type=int, required=True)
    p_review.add_argument("--worked", default=None, help="Set \"what worked\"")
    p_review.add_argument("--did-not-work", default=None, help="Set \"what did not work\"")
    p_review.add_argument("--improve", default=None, help="Set \"what to improve\"")
    p_review.add_argument("--complete", action="store_true", help="Mark the review complete")

    args = parser.parse_args(argv)
    cfg = load_config(args.config)
    setup_logging(cfg)

    try:
        asyncio.run(_run(args, cfg))
    except PlannerError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
