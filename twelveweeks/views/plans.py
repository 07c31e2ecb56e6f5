"""Plan list: create, rename, activate, archive and delete plans."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

from twelveweeks.api.client import PlannerClient
from twelveweeks.core.models import Plan, is_monday, new_temp_id
from twelveweeks.state.actions import (
    PlanCreateConfirmed,
    PlanCreated,
    PlanDeleted,
    PlanUpdateConfirmed,
    PlanUpdated,
)
from twelveweeks.views.base import ViewState

logger = logging.getLogger("twelveweeks.views.plans")


@dataclass
class PlansState:
    plans: list[Plan] = field(default_factory=list)
    status: str = "idle"
    error: str | None = None

    def plan(self, plan_id: str) -> Plan | None:
        return next((p for p in self.plans if p.id == plan_id), None)


def plans_reducer(state: PlansState, action: Any) -> PlansState:
    if isinstance(action, PlanCreated):
        return replace(state, plans=[action.plan] + state.plans)
    if isinstance(action, PlanCreateConfirmed):
        return replace(state, plans=[action.plan if p.id == action.temp_id else p for p in state.plans])
    if isinstance(action, PlanUpdated):
        return replace(state, plans=[
            p.with_changes(action.changes) if p.id == action.plan_id else p for p in state.plans
        ])
    if isinstance(action, PlanUpdateConfirmed):
        return replace(state, plans=[action.plan if p.id == action.plan.id else p for p in state.plans])
    if isinstance(action, PlanDeleted):
        return replace(state, plans=[p for p in state.plans if p.id != action.plan_id])
    return state


class PlansManager(ViewState[PlansState]):
    def __init__(self, client: PlannerClient, **kwargs: Any) -> None:
        super().__init__(client, PlansState(), plans_reducer, name="plans", **kwargs)

    async def load(self, status: str | None = None) -> PlansState:
        async def fetch() -> PlansState:
            rows = await self.client.list_plans(status)
            return PlansState(plans=[Plan.from_dict(p) for p in rows], status="ready")

        return await self._load(fetch)

    async def create_plan(self, name: str, start_date: date) -> Plan:
        if not is_monday(start_date):
            raise ValueError(f"Plan must start on a Monday, got {start_date:%A} {start_date}")
        temp = Plan(id=new_temp_id(), name=name, start_date=start_date)
        payload = {"name": name, "start_date": start_date.isoformat()}
        data = await self.coordinator.run(
            "create plan",
            lambda: self.client.create_plan(payload),
            optimistic=PlanCreated(temp),
            commit=lambda d: PlanCreateConfirmed(temp.id, Plan.from_dict(d)),
        )
        return Plan.from_dict(data)

    async def _update(self, mutation: str, plan_id: str, changes: dict[str, Any]) -> Plan:
        data = await self.coordinator.run(
            mutation,
            lambda: self.client.update_plan(plan_id, changes),
            optimistic=PlanUpdated(plan_id, changes),
            commit=lambda d: PlanUpdateConfirmed(Plan.from_dict(d)),
        )
        return Plan.from_dict(data)

    async def rename_plan(self, plan_id: str, name: str) -> Plan:
        return await self._update("rename plan", plan_id, {"name": name})

    async def activate_plan(self, plan_id: str) -> Plan:
        return await self._update("activate plan", plan_id, {"status": "active"})

    async def archive_plan(self, plan_id: str) -> Plan:
        data = await self.coordinator.run(
            "archive plan",
            lambda: self.client.archive_plan(plan_id),
            optimistic=PlanUpdated(plan_id, {"status": "archived"}),
            commit=lambda d: PlanUpdateConfirmed(Plan.from_dict(d)),
        )
        return Plan.from_dict(data)

    async def delete_plan(self, plan_id: str) -> None:
        await self.coordinator.run(
            "delete plan",
            lambda: self.client.delete_plan(plan_id),
            optimistic=PlanDeleted(plan_id),
        )
