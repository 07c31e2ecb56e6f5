"""Plan dashboard: one aggregated fetch, rendered as a filterable tree."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from twelveweeks.api.client import PlannerClient
from twelveweeks.dashboard.tree import DashboardData, TreeFilters, TreeNode, build_hierarchy_tree
from twelveweeks.views.base import ViewState

logger = logging.getLogger("twelveweeks.views.dashboard")


@dataclass
class DashboardState:
    plan_id: str | None = None
    data: DashboardData | None = None
    status: str = "idle"
    error: str | None = None


def dashboard_reducer(state: DashboardState, action: Any) -> DashboardState:
    # Read-only view; only the store's lifecycle actions change it.
    return state


class Dashboard(ViewState[DashboardState]):
    def __init__(self, client: PlannerClient, **kwargs: Any) -> None:
        super().__init__(client, DashboardState(), dashboard_reducer, name="dashboard", **kwargs)

    async def load(self, plan_id: str) -> DashboardState:
        async def fetch() -> DashboardState:
            payload = await self.client.get_dashboard(plan_id)
            return DashboardState(plan_id=plan_id, data=DashboardData.from_dict(payload), status="ready")

        return await self._load(fetch)

    async def refetch(self) -> DashboardState | None:
        """Reload the last plan that loaded successfully; no-op before the first load."""
        if self.state.plan_id is None:
            return None
        return await self.load(self.state.plan_id)

    def tree(self, filters: TreeFilters | None = None, today: date | None = None) -> list[TreeNode]:
        if self.state.data is None:
            return []
        return build_hierarchy_tree(self.state.data, filters, today)
