"""Project budget and spending endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from timebudget.api.dependencies import ActorId, DbSession
from timebudget.api.schemas import (
    BudgetAlertResponse,
    BudgetStatusResponse,
    BudgetUpdate,
    ErrorResponse,
    FanOutResponse,
    ProjectCreate,
    ProjectResponse,
    QuarterProjectionResponse,
    QuarterStatusResponse,
    SpendingTotalsResponse,
)
from timebudget.calculators.quarters import fiscal_quarter, fiscal_year
from timebudget.calculators.types import QuarterStatus, round_money
from timebudget.models import Project
from timebudget.services.budget_service import BudgetService
from timebudget.services.permission_service import PermissionService

router = APIRouter(prefix="/projects", tags=["projects"])


def project_response(project: Project) -> ProjectResponse:
    """Project view with spent values rounded for display."""
    return ProjectResponse(
        project_id=project.project_id,
        name=project.name,
        description=project.description,
        color=project.color,
        active=project.active,
        total_budget=project.total_budget,
        q1_budget=project.q1_budget,
        q2_budget=project.q2_budget,
        q3_budget=project.q3_budget,
        q4_budget=project.q4_budget,
        q1_spent=round_money(project.q1_spent),
        q2_spent=round_money(project.q2_spent),
        q3_spent=round_money(project.q3_spent),
        q4_spent=round_money(project.q4_spent),
        total_spent=round_money(project.total_spent),
        spent_fiscal_year=project.spent_fiscal_year,
        spent_recomputed_at=project.spent_recomputed_at,
    )


def quarter_status_response(item: QuarterStatus) -> QuarterStatusResponse:
    return QuarterStatusResponse(
        label=item.label,
        budget=round_money(item.budget),
        spent=round_money(item.spent),
        remaining=round_money(item.remaining),
        overage=round_money(item.overage),
        utilization=item.utilization_display,
        alert=item.alert.value,
    )


# ============================================================================
# Projects
# ============================================================================


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def create_project(
    db: DbSession,
    actor_id: ActorId,
    payload: ProjectCreate,
) -> ProjectResponse:
    project = await BudgetService(db).create_project(
        actor_id,
        name=payload.name,
        color=payload.color,
        description=payload.description,
        total_budget=payload.total_budget,
        q1_budget=payload.q1_budget,
        q2_budget=payload.q2_budget,
        q3_budget=payload.q3_budget,
        q4_budget=payload.q4_budget,
    )
    await db.commit()
    return project_response(project)


@router.get("", response_model=list[ProjectResponse])
async def list_projects(db: DbSession, actor_id: ActorId) -> list[ProjectResponse]:
    """Active projects the caller can access."""
    projects = await PermissionService(db).accessible_projects(actor_id)
    return [project_response(p) for p in projects]


@router.get("/alerts", response_model=list[BudgetAlertResponse])
async def budget_alerts(db: DbSession, actor_id: ActorId) -> list[BudgetAlertResponse]:
    """Quarters past the warning threshold, most severe first."""
    alerts = await BudgetService(db).alerts(actor_id)
    return [
        BudgetAlertResponse(
            project_id=a.project_id,
            project_name=a.project_name,
            quarter=a.quarter,
            alert=a.alert.value,
            utilization=round_money(a.utilization),
            budget=round_money(a.budget),
            spent=round_money(a.spent),
        )
        for a in alerts
    ]


@router.post(
    "/recalculate",
    response_model=FanOutResponse,
    responses={403: {"model": ErrorResponse}},
)
async def recalculate_all(db: DbSession, actor_id: ActorId) -> FanOutResponse:
    """Recompute every project's cached spend (administrators)."""
    result = await BudgetService(db).recalculate_all(actor_id)
    await db.commit()
    return FanOutResponse.from_result(result)


@router.get(
    "/{project_id}",
    response_model=ProjectResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_project(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
) -> ProjectResponse:
    project = await BudgetService(db).get_project(project_id)
    await PermissionService(db).require(actor_id, project_id)
    return project_response(project)


# ============================================================================
# Budgets and spending
# ============================================================================


@router.put(
    "/{project_id}/budget",
    response_model=ProjectResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def update_budget(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
    payload: BudgetUpdate,
) -> ProjectResponse:
    """Replace the project's budgets (EDIT_BUDGETS)."""
    project = await BudgetService(db).update_budget(
        actor_id,
        project_id,
        total_budget=payload.total_budget,
        q1_budget=payload.q1_budget,
        q2_budget=payload.q2_budget,
        q3_budget=payload.q3_budget,
        q4_budget=payload.q4_budget,
    )
    await db.commit()
    return project_response(project)


@router.post(
    "/{project_id}/recalculate",
    response_model=SpendingTotalsResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def recalculate(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
    fiscal_year: Annotated[int | None, Query(ge=1900, le=9998)] = None,
) -> SpendingTotalsResponse:
    """Force a full recompute of the project's cached spend (VIEW_REPORTS)."""
    totals = await BudgetService(db).recalculate(actor_id, project_id, fiscal_year)
    await db.commit()
    return SpendingTotalsResponse.from_totals(project_id, totals, fiscal_year)


@router.get(
    "/{project_id}/budget-status",
    response_model=BudgetStatusResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def budget_status(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
) -> BudgetStatusResponse:
    project, status_view = await BudgetService(db).budget_status(actor_id, project_id)
    return BudgetStatusResponse(
        project_id=project.project_id,
        name=project.name,
        quarters=[quarter_status_response(q) for q in status_view.quarters],
        total=quarter_status_response(status_view.total),
        over_budget_quarters=status_view.over_budget_quarters,
        is_over_budget=status_view.is_over_budget,
    )


@router.get(
    "/{project_id}/projection",
    response_model=QuarterProjectionResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def quarter_projection(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
    year: Annotated[int | None, Query(alias="fiscal_year", ge=1900, le=9998)] = None,
    quarter: Annotated[int | None, Query(ge=1, le=4)] = None,
) -> QuarterProjectionResponse:
    """Burn-rate projection for a fiscal quarter (current one by default)."""
    today = date.today()
    year = year if year is not None else fiscal_year(today)
    quarter = quarter if quarter is not None else fiscal_quarter(today)
    projection = await BudgetService(db).quarter_projection(
        actor_id, project_id, today=today, year=year, quarter=quarter
    )
    return QuarterProjectionResponse(
        project_id=project_id,
        fiscal_year=year,
        quarter=quarter,
        projected_spend=round_money(projection.projected_spend),
        on_track_spend=round_money(projection.on_track_spend),
        variance=round_money(projection.variance),
    )
