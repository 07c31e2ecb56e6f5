"""Async client for the planner's ``/api/v1`` JSON CRUD contract.

Success bodies are ``{"data": T}`` or ``{"data": [T, ...]}``; the client
returns the unwrapped ``data``.  Error bodies are
``{"error": str, "details": [{"field": ..., "message": ...}]}`` and become
``ValidationError`` (details present) or ``ApiError``.  Transport failures
become ``NetworkError``.  Authentication is opaque: an optional bearer token
is forwarded as-is.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from twelveweeks.common.errors import ApiError, NetworkError, ValidationError, error_message

logger = logging.getLogger("twelveweeks.api")

API_PREFIX = "/api/v1"
TOKEN_ENV = "TWELVEWEEKS_API_TOKEN"
REVIEW_NOT_FOUND = "Weekly review not found"


class PlannerClient:
    def __init__(
        self,
        base_url: str = "http://localhost:4321",
        *,
        timeout_s: float = 15.0,
        token: str | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        token = token or os.environ.get(TOKEN_ENV)
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout_s, headers=headers)

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "PlannerClient":
        api = cfg.get("api", {})
        return cls(api.get("base_url", "http://localhost:4321"), timeout_s=float(api.get("timeout_s", 15.0)))

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "PlannerClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        url = f"{API_PREFIX}{path}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        logger.debug("%s %s params=%s", method, url, params)

        try:
            resp = await self._http.request(method, url, params=params or None, json=json)
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

        if resp.is_success:
            if resp.status_code == 204 or not resp.content:
                return None
            body = resp.json()
            return body.get("data") if isinstance(body, dict) else body

        try:
            payload = resp.json()
        except ValueError:
            payload = None
        message = error_message(payload, resp.status_code)
        logger.debug("%s %s -> %d: %s", method, url, resp.status_code, message)
        if isinstance(payload, dict) and payload.get("details"):
            raise ValidationError(message, resp.status_code, payload)
        raise ApiError(message, resp.status_code, payload)

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def list_plans(self, status: str | None = None) -> list[dict[str, Any]]:
        return await self._request("GET", "/plans", params={"status": status}) or []

    async def create_plan(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/plans", json=payload)

    async def update_plan(self, plan_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/plans/{plan_id}", json=changes)

    async def delete_plan(self, plan_id: str) -> None:
        await self._request("DELETE", f"/plans/{plan_id}")

    async def archive_plan(self, plan_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/plans/{plan_id}/archive")

    async def get_dashboard(self, plan_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/plans/{plan_id}/dashboard")

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    async def list_goals(self, **filters: Any) -> list[dict[str, Any]]:
        return await self._request("GET", "/goals", params=filters) or []

    async def list_plan_goals(self, plan_id: str) -> list[dict[str, Any]]:
        return await self._request("GET", f"/plans/{plan_id}/goals") or []

    async def create_goal(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/goals", json=payload)

    async def update_goal(self, goal_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/goals/{goal_id}", json=changes)

    async def delete_goal(self, goal_id: str) -> None:
        await self._request("DELETE", f"/goals/{goal_id}")

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    async def list_milestones(self, **filters: Any) -> list[dict[str, Any]]:
        return await self._request("GET", "/milestones", params=filters) or []

    async def list_goal_milestones(self, goal_id: str) -> list[dict[str, Any]]:
        return await self._request("GET", f"/goals/{goal_id}/milestones") or []

    async def create_milestone(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/milestones", json=payload)

    async def update_milestone(self, milestone_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/milestones/{milestone_id}", json=changes)

    async def delete_milestone(self, milestone_id: str) -> None:
        await self._request("DELETE", f"/milestones/{milestone_id}")

    # ------------------------------------------------------------------
    # Weekly goals
    # ------------------------------------------------------------------

    async def list_weekly_goals(self, plan_id: str, week_number: int | None = None) -> list[dict[str, Any]]:
        params = {"plan_id": plan_id, "week_number": week_number}
        return await self._request("GET", "/weekly-goals", params=params) or []

    async def create_weekly_goal(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/weekly-goals", json=payload)

    async def update_weekly_goal(self, weekly_goal_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/weekly-goals/{weekly_goal_id}", json=changes)

    async def delete_weekly_goal(self, weekly_goal_id: str) -> None:
        await self._request("DELETE", f"/weekly-goals/{weekly_goal_id}")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def list_tasks(
        self,
        plan_id: str,
        week_number: int | None = None,
        due_day: int | None = None,
    ) -> list[dict[str, Any]]:
        params = {"plan_id": plan_id, "week_number": week_number, "due_day": due_day}
        return await self._request("GET", "/tasks", params=params) or []

    async def create_task(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/tasks", json=payload)

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/tasks/{task_id}", json=changes)

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")

    async def copy_task(
        self,
        task_id: str,
        week_number: int | None = None,
        due_day: int | None = None,
    ) -> dict[str, Any]:
        payload = {k: v for k, v in {"week_number": week_number, "due_day": due_day}.items() if v is not None}
        return await self._request("POST", f"/tasks/{task_id}/copy", json=payload)

    # ------------------------------------------------------------------
    # Weekly reviews
    # ------------------------------------------------------------------

    async def list_weekly_reviews(
        self,
        plan_id: str,
        week_number: int | None = None,
        is_completed: bool | None = None,
    ) -> list[dict[str, Any]]:
        params = {"plan_id": plan_id, "week_number": week_number, "is_completed": is_completed}
        return await self._request("GET", "/weekly-reviews", params=params) or []

    async def get_weekly_review(self, review_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/weekly-reviews/{review_id}")

    async def get_weekly_review_for_week(self, plan_id: str, week_number: int) -> dict[str, Any] | None:
        """The review of one week, or None when it has not been written yet."""
        try:
            return await self._request("GET", f"/weekly-reviews/week/{week_number}", params={"plan_id": plan_id})
        except ApiError as exc:
            if exc.status_code == 404 and exc.message == REVIEW_NOT_FOUND:
                return None
            raise

    async def create_weekly_review(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/weekly-reviews", json=payload)

    async def update_weekly_review(self, review_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/weekly-reviews/{review_id}", json=changes)

    async def complete_weekly_review(self, review_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/weekly-reviews/{review_id}/complete")

    async def delete_weekly_review(self, review_id: str) -> None:
        await self._request("DELETE", f"/weekly-reviews/{review_id}")
