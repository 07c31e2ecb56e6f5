"""Shared fixtures: an in-memory fake of the planner's /api/v1 contract."""

from __future__ import annotations

import fnmatch
import itertools
import json
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from twelveweeks.api.client import PlannerClient
from twelveweeks.state.scheduler import VirtualScheduler

PLAN_START = "2026-01-05"  # a Monday

COLLECTIONS = ("plans", "goals", "milestones", "weekly-goals", "tasks", "weekly-reviews")

_DEFAULTS: dict[str, dict[str, Any]] = {
    "plans": {"status": "ready"},
    "goals": {"category": None, "description": None, "progress_percentage": 0, "position": 1},
    "milestones": {"description": None, "due_date": None, "is_completed": False, "position": 1},
    "weekly-goals": {"long_term_goal_id": None, "milestone_id": None, "description": None, "position": 1},
    "tasks": {
        "weekly_goal_id": None,
        "long_term_goal_id": None,
        "milestone_id": None,
        "description": None,
        "priority": "C",
        "status": "todo",
        "task_type": "ad_hoc",
        "due_day": None,
        "position": 101,
    },
    "weekly-reviews": {
        "what_worked": None,
        "what_did_not_work": None,
        "what_to_improve": None,
        "is_completed": False,
    },
}


def _as_param(value: Any) -> str:
    """Render a stored value the way httpx renders it in a query string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class Call:
    method: str
    path: str
    params: dict[str, str] = field(default_factory=dict)
    json: Any = None


@dataclass
class FailureRule:
    method: str
    pattern: str
    status: int
    body: Any
    times: int | None = None

    def matches(self, method: str, path: str) -> bool:
        return self.method == method and fnmatch.fnmatchcase(path, self.pattern)


class _Injected(Exception):
    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self.body = body


class FakePlannerApi:
    """Dict-backed stand-in for the remote JSON store.

    ``calls`` records every request (path without the /api/v1 prefix).
    ``fail()`` makes matching requests answer with an error envelope.
    """

    def __init__(self) -> None:
        self.db: dict[str, dict[str, dict[str, Any]]] = {c: {} for c in COLLECTIONS}
        self.calls: list[Call] = []
        self.failures: list[FailureRule] = []
        self._ids = itertools.count(1)
        self.app = self._build_app()

    # ── Test helpers ─────────────────────────────────────────────────────

    def seed(self, collection: str, **fields: Any) -> dict[str, Any]:
        row = {**_DEFAULTS[collection], **fields}
        row.setdefault("id", f"{collection[:-1]}-{next(self._ids)}")
        self.db[collection][row["id"]] = row
        return row

    def fail(
        self,
        method: str,
        pattern: str,
        status: int = 500,
        body: Any = None,
        times: int | None = None,
    ) -> None:
        body = {"error": "Internal server error"} if body is None else body
        self.failures.append(FailureRule(method, pattern, status, body, times))

    def requests(self, method: str | None = None, pattern: str = "*") -> list[Call]:
        return [
            c for c in self.calls
            if (method is None or c.method == method) and fnmatch.fnmatchcase(c.path, pattern)
        ]

    def reset_calls(self) -> None:
        self.calls.clear()

    # ── App ──────────────────────────────────────────────────────────────

    async def _gate(self, request: Request) -> Any:
        payload = None
        raw = await request.body()
        if raw:
            payload = json.loads(raw)
        path = request.url.path[len("/api/v1"):]
        self.calls.append(Call(request.method, path, dict(request.query_params), payload))
        for rule in self.failures:
            if rule.matches(request.method, path) and rule.times != 0:
                if rule.times is not None:
                    rule.times -= 1
                raise _Injected(rule.status, rule.body)
        return payload

    def _get(self, collection: str, item_id: str) -> dict[str, Any]:
        row = self.db.get(collection, {}).get(item_id)
        if row is None:
            raise _Injected(404, {"error": f"{collection} {item_id} not found"})
        return row

    def _validate(self, collection: str, row: dict[str, Any]) -> None:
        if collection == "plans" and "name" in row and not str(row["name"]).strip():
            raise _Injected(400, {"error": "Validation failed", "details": [{"field": "name", "message": "Name is required"}]})
        if collection != "plans" and "title" in row and not str(row["title"]).strip():
            raise _Injected(400, {"error": "Validation failed", "details": [{"field": "title", "message": "Title is required"}]})

    def _build_app(self) -> FastAPI:
        app = FastAPI()

        @app.exception_handler(_Injected)
        async def injected(request: Request, exc: _Injected) -> JSONResponse:
            return JSONResponse(status_code=exc.status, content=exc.body)

        @app.get("/api/v1/plans/{plan_id}/goals")
        async def plan_goals(plan_id: str, request: Request):
            await self._gate(request)
            rows = [g for g in self.db["goals"].values() if g["plan_id"] == plan_id]
            return {"data": rows}

        @app.get("/api/v1/goals/{goal_id}/milestones")
        async def goal_milestones(goal_id: str, request: Request):
            await self._gate(request)
            rows = [m for m in self.db["milestones"].values() if m["long_term_goal_id"] == goal_id]
            return {"data": rows}

        @app.post("/api/v1/plans/{plan_id}/archive")
        async def archive(plan_id: str, request: Request):
            await self._gate(request)
            row = self._get("plans", plan_id)
            row["status"] = "archived"
            return {"data": row}

        @app.get("/api/v1/plans/{plan_id}/dashboard")
        async def dashboard(plan_id: str, request: Request):
            await self._gate(request)
            plan = self._get("plans", plan_id)
            goals = [g for g in self.db["goals"].values() if g["plan_id"] == plan_id]
            goal_ids = {g["id"] for g in goals}
            return {"data": {
                "plan": plan,
                "goals": goals,
                "milestones": [m for m in self.db["milestones"].values() if m["long_term_goal_id"] in goal_ids],
                "weekly_goals": [w for w in self.db["weekly-goals"].values() if w["plan_id"] == plan_id],
                "tasks": [t for t in self.db["tasks"].values() if t["plan_id"] == plan_id],
            }}

        @app.post("/api/v1/tasks/{task_id}/copy")
        async def copy_task(task_id: str, request: Request):
            payload = await self._gate(request) or {}
            source = self._get("tasks", task_id)
            row = {**source, **payload, "status": "todo"}
            row.pop("id")
            return JSONResponse(status_code=201, content={"data": self.seed("tasks", **row)})

        @app.get("/api/v1/weekly-reviews/week/{week_number}")
        async def review_for_week(week_number: int, request: Request):
            await self._gate(request)
            plan_id = request.query_params.get("plan_id")
            self._get("plans", plan_id)
            for row in self.db["weekly-reviews"].values():
                if row["plan_id"] == plan_id and row["week_number"] == week_number:
                    return {"data": row}
            raise _Injected(404, {"error": "Weekly review not found", "message": "Weekly review does not exist for this week"})

        @app.post("/api/v1/weekly-reviews/{review_id}/complete")
        async def complete_review(review_id: str, request: Request):
            await self._gate(request)
            row = self._get("weekly-reviews", review_id)
            row["is_completed"] = True
            return {"data": {"id": review_id, "is_completed": True}, "message": "Weekly review marked as complete"}

        @app.get("/api/v1/{collection}")
        async def list_items(collection: str, request: Request):
            await self._gate(request)
            rows = list(self.db[collection].values())
            for key, val in request.query_params.items():
                rows = [r for r in rows if _as_param(r.get(key)) == val]
            return {"data": rows}

        @app.post("/api/v1/{collection}")
        async def create_item(collection: str, request: Request):
            payload = await self._gate(request) or {}
            payload.pop("id", None)
            self._validate(collection, payload)
            if collection == "weekly-reviews" and any(
                r["plan_id"] == payload.get("plan_id") and r["week_number"] == payload.get("week_number")
                for r in self.db[collection].values()
            ):
                raise _Injected(409, {"error": "Weekly review already exists for this week"})
            return JSONResponse(status_code=201, content={"data": self.seed(collection, **payload)})

        @app.get("/api/v1/{collection}/{item_id}")
        async def get_item(collection: str, item_id: str, request: Request):
            await self._gate(request)
            return {"data": self._get(collection, item_id)}

        @app.patch("/api/v1/{collection}/{item_id}")
        async def update_item(collection: str, item_id: str, request: Request):
            payload = await self._gate(request) or {}
            row = self._get(collection, item_id)
            self._validate(collection, payload)
            row.update({k: v for k, v in payload.items() if k != "id"})
            return {"data": row}

        @app.delete("/api/v1/{collection}/{item_id}")
        async def delete_item(collection: str, item_id: str, request: Request):
            await self._gate(request)
            self._get(collection, item_id)
            del self.db[collection][item_id]
            return Response(status_code=204)

        return app


def seed_plan(api: FakePlannerApi) -> dict[str, Any]:
    """A plan with one goal, one milestone and a weekly goal in week 1."""
    plan = api.seed("plans", id="plan-1", name="Q1 Sprint", start_date=PLAN_START, status="active")
    goal = api.seed("goals", id="goal-1", plan_id=plan["id"], title="Ship the book", category="work")
    milestone = api.seed("milestones", id="ms-1", long_term_goal_id=goal["id"], title="Draft done")
    weekly = api.seed(
        "weekly-goals",
        id="wg-1",
        plan_id=plan["id"],
        week_number=1,
        title="Outline chapters",
        long_term_goal_id=goal["id"],
        milestone_id=milestone["id"],
    )
    return {"plan": plan, "goal": goal, "milestone": milestone, "weekly_goal": weekly}


@pytest.fixture()
def api() -> FakePlannerApi:
    return FakePlannerApi()


@pytest.fixture()
def seeded(api: FakePlannerApi) -> dict[str, Any]:
    return seed_plan(api)


@pytest_asyncio.fixture()
async def client(api: FakePlannerApi):
    """PlannerClient bound to the fake API through an ASGI transport."""
    transport = httpx.ASGITransport(app=api.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield PlannerClient(http=http)


@pytest.fixture()
def scheduler() -> VirtualScheduler:
    return VirtualScheduler()
