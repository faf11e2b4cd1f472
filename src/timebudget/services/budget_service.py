"""Budget service - project budgets, manual recalculation and alerts."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.calculators.aggregator import SpendingAggregator
from timebudget.calculators.budget import (
    budget_status,
    project_quarter_spend,
    spending_alerts,
    validate_budget,
)
from timebudget.calculators.quarters import fiscal_quarter, fiscal_year
from timebudget.calculators.types import (
    ZERO,
    BudgetAlert,
    BudgetStatus,
    FanOutResult,
    QuarterProjection,
    SpendingTotals,
)
from timebudget.errors import ProjectNotFound
from timebudget.models import PermissionType, Project
from timebudget.services.permission_service import PermissionService

logger = logging.getLogger(__name__)


class BudgetService:
    """Gated entry points for budget edits and spending recomputes.

    - update_budget: EDIT_BUDGETS
    - recalculate / budget_status / quarter_projection: VIEW_REPORTS
    - recalculate_all / create_project: administrators only
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.permissions = PermissionService(session)
        self.aggregator = SpendingAggregator(session)

    async def get_project(self, project_id: UUID) -> Project:
        project = await self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    async def create_project(
        self,
        actor_id: UUID,
        name: str,
        color: str | None = None,
        description: str | None = None,
        total_budget: Decimal = ZERO,
        q1_budget: Decimal = ZERO,
        q2_budget: Decimal = ZERO,
        q3_budget: Decimal = ZERO,
        q4_budget: Decimal = ZERO,
    ) -> Project:
        await self.permissions.require_admin(actor_id)
        validate_budget(total_budget, q1_budget, q2_budget, q3_budget, q4_budget)

        project = Project(
            name=name,
            description=description,
            total_budget=total_budget,
            q1_budget=q1_budget,
            q2_budget=q2_budget,
            q3_budget=q3_budget,
            q4_budget=q4_budget,
        )
        if color:
            project.color = color
        self.session.add(project)
        await self.session.flush()
        return project

    async def update_budget(
        self,
        actor_id: UUID,
        project_id: UUID,
        total_budget: Decimal,
        q1_budget: Decimal,
        q2_budget: Decimal,
        q3_budget: Decimal,
        q4_budget: Decimal,
    ) -> Project:
        """Replace a project's budgets after validating them.

        Raises:
            ProjectNotFound: unknown project
            PermissionDenied: actor lacks EDIT_BUDGETS
            InvalidBudget / BudgetExceedsTotal: rejected before any write
        """
        project = await self.get_project(project_id)
        await self.permissions.require(actor_id, project_id, PermissionType.EDIT_BUDGETS)
        validate_budget(total_budget, q1_budget, q2_budget, q3_budget, q4_budget)

        project.total_budget = total_budget
        project.q1_budget = q1_budget
        project.q2_budget = q2_budget
        project.q3_budget = q3_budget
        project.q4_budget = q4_budget
        await self.session.flush()

        logger.info(
            "Budget for project %s set by %s: total=%s q1=%s q2=%s q3=%s q4=%s",
            project_id,
            actor_id,
            total_budget,
            q1_budget,
            q2_budget,
            q3_budget,
            q4_budget,
        )
        return project

    async def recalculate(
        self,
        actor_id: UUID,
        project_id: UUID,
        fiscal_year: int | None = None,
    ) -> SpendingTotals:
        """Force a full recompute of one project's cached spend."""
        await self.get_project(project_id)
        await self.permissions.require(actor_id, project_id, PermissionType.VIEW_REPORTS)
        return await self.aggregator.recompute_project_spending(project_id, fiscal_year)

    async def recalculate_all(self, actor_id: UUID) -> FanOutResult:
        await self.permissions.require_admin(actor_id)
        return await self.aggregator.recompute_all()

    async def budget_status(self, actor_id: UUID, project_id: UUID) -> tuple[Project, BudgetStatus]:
        project = await self.get_project(project_id)
        await self.permissions.require(actor_id, project_id, PermissionType.VIEW_REPORTS)
        return project, budget_status(project)

    async def alerts(self, actor_id: UUID) -> list[BudgetAlert]:
        """Alerts for every active project the actor can report on."""
        projects = await self.permissions.accessible_projects(
            actor_id, PermissionType.VIEW_REPORTS
        )
        return spending_alerts(projects)

    async def quarter_projection(
        self,
        actor_id: UUID,
        project_id: UUID,
        today: date | None = None,
        year: int | None = None,
        quarter: int | None = None,
    ) -> QuarterProjection:
        """Burn-rate projection for a quarter (the current one by default)."""
        today = today or date.today()
        year = year if year is not None else fiscal_year(today)
        quarter = quarter if quarter is not None else fiscal_quarter(today)

        project = await self.get_project(project_id)
        await self.permissions.require(actor_id, project_id, PermissionType.VIEW_REPORTS)

        totals = await self.aggregator.compute_project_spending(project_id, fiscal_year=year)
        return project_quarter_spend(
            budget=project.quarter_budget(quarter),
            spent=totals.for_quarter(quarter),
            fiscal_year=year,
            quarter=quarter,
            today=today,
        )
