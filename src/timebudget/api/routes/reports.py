"""Spending report endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from timebudget.api.dependencies import ActorId, DbSession
from timebudget.api.schemas import (
    EmployeeSpendingResponse,
    ErrorResponse,
    MonthlySummaryResponse,
    ProjectBreakdownResponse,
    SpendingSummaryResponse,
    UserActivityResponse,
    UserSummaryResponse,
)
from timebudget.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])

FiscalYear = Annotated[int, Query(ge=1900, le=9998)]


@router.get(
    "/projects/{project_id}",
    response_model=ProjectBreakdownResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def project_breakdown(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
    fiscal_year: FiscalYear,
) -> ProjectBreakdownResponse:
    """Per-employee hours and spend at historical rates (VIEW_REPORTS)."""
    breakdown = await ReportService(db).project_breakdown(actor_id, project_id, fiscal_year)
    return ProjectBreakdownResponse(
        project_id=breakdown.project_id,
        fiscal_year=breakdown.fiscal_year,
        employees=[EmployeeSpendingResponse.from_employee(e) for e in breakdown.employees],
        totals=SpendingSummaryResponse.from_summary(breakdown.totals),
    )


@router.get(
    "/users/{user_id}",
    response_model=UserSummaryResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def user_summary(
    db: DbSession,
    actor_id: ActorId,
    user_id: Annotated[UUID, Path()],
    fiscal_year: FiscalYear,
) -> UserSummaryResponse:
    summary = await ReportService(db).user_summary(actor_id, user_id, fiscal_year)
    return UserSummaryResponse(
        user_id=summary.user_id,
        fiscal_year=summary.fiscal_year,
        projects={
            str(project_id): SpendingSummaryResponse.from_summary(s)
            for project_id, s in summary.projects.items()
        },
        totals=SpendingSummaryResponse.from_summary(summary.totals),
    )


@router.get(
    "/monthly",
    response_model=MonthlySummaryResponse,
    responses={403: {"model": ErrorResponse}},
)
async def monthly_summary(
    db: DbSession,
    actor_id: ActorId,
    year: Annotated[int, Query(ge=1900, le=9999)],
    month: Annotated[int, Query(ge=1, le=12)],
) -> MonthlySummaryResponse:
    """Spend per employee per project for one calendar month (administrators)."""
    summary = await ReportService(db).monthly_summary(actor_id, year, month)
    return MonthlySummaryResponse(
        month=summary.month_key,
        rows=[EmployeeSpendingResponse.from_employee(e) for e in summary.rows],
        totals=SpendingSummaryResponse.from_summary(summary.totals),
    )


@router.get(
    "/user-oversight",
    response_model=list[UserActivityResponse],
    responses={403: {"model": ErrorResponse}},
)
async def user_oversight(db: DbSession, actor_id: ActorId) -> list[UserActivityResponse]:
    """Today's and this week's logged minutes per active user (administrators)."""
    activity = await ReportService(db).user_oversight(actor_id)
    return [UserActivityResponse.model_validate(a) for a in activity]
