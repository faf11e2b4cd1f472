"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from timebudget.calculators.types import (
    EmployeeSpending,
    FanOutResult,
    SpendingSummary,
    SpendingTotals,
    round_hours,
    round_money,
)
from timebudget.models import PermissionType, UserRole


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None


# ============================================================================
# User and rate schemas
# ============================================================================


class UserCreate(BaseModel):
    """Schema for creating a user."""

    email: str = Field(min_length=3)
    name: str | None = None
    role: UserRole = UserRole.EMPLOYEE
    employee_rate: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)


class UserResponse(BaseModel):
    """Schema for user response."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    email: str
    name: str | None = None
    role: str
    employee_rate: Decimal
    active: bool


class RateChangeCreate(BaseModel):
    """Schema for scheduling or back-dating a rate change."""

    rate: Decimal = Field(ge=0, decimal_places=2)
    effective_date: date


class RateHistoryResponse(BaseModel):
    """Schema for a rate history row."""

    model_config = ConfigDict(from_attributes=True)

    rate_history_id: UUID
    user_id: UUID
    rate: Decimal
    effective_date: date
    created_at: datetime
    created_by: str
    is_baseline: bool


class FanOutResponse(BaseModel):
    """Outcome of recomputing several projects."""

    recomputed: list[UUID]
    failed: dict[str, str]

    @classmethod
    def from_result(cls, result: FanOutResult) -> "FanOutResponse":
        return cls(
            recomputed=list(result.recomputed),
            failed={str(k): v for k, v in result.failed.items()},
        )


class RateChangeResponse(BaseModel):
    """Schema for a recorded rate change."""

    history: RateHistoryResponse
    employee_rate: Decimal
    recompute: FanOutResponse


class RatePeriodResponse(BaseModel):
    rate: Decimal
    start: date
    end: date | None = None


# ============================================================================
# Time entry schemas
# ============================================================================


class TimeEntryCreate(BaseModel):
    """Schema for a manual time entry."""

    project_id: UUID
    user_id: UUID | None = None  # administrators only
    start_time: datetime
    end_time: datetime | None = None
    duration: int | None = Field(default=None, ge=0)
    work_date: date | None = None
    description: str | None = None


class TimerStart(BaseModel):
    project_id: UUID
    description: str | None = None


class TimeEntryUpdate(BaseModel):
    """Schema for partial time entry updates."""

    project_id: UUID | None = None
    work_date: date | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: int | None = Field(default=None, ge=0)
    description: str | None = None


class TimeEntryResponse(BaseModel):
    """Schema for time entry response."""

    model_config = ConfigDict(from_attributes=True)

    time_entry_id: UUID
    user_id: UUID
    project_id: UUID
    description: str | None = None
    work_date: date
    start_time: datetime
    end_time: datetime | None = None
    duration: int
    hours: Decimal


class TimeEntryListResponse(BaseModel):
    items: list[TimeEntryResponse]
    total: int


# ============================================================================
# Project and budget schemas
# ============================================================================


class BudgetFields(BaseModel):
    total_budget: Decimal = Field(default=Decimal("0"), decimal_places=2)
    q1_budget: Decimal = Field(default=Decimal("0"), decimal_places=2)
    q2_budget: Decimal = Field(default=Decimal("0"), decimal_places=2)
    q3_budget: Decimal = Field(default=Decimal("0"), decimal_places=2)
    q4_budget: Decimal = Field(default=Decimal("0"), decimal_places=2)


class ProjectCreate(BudgetFields):
    """Schema for creating a project."""

    name: str = Field(min_length=1)
    description: str | None = None
    color: str | None = None


class BudgetUpdate(BudgetFields):
    """Schema for replacing a project's budgets."""


class ProjectResponse(BaseModel):
    """Schema for project response; spent values are rounded to cents."""

    project_id: UUID
    name: str
    description: str | None = None
    color: str
    active: bool
    total_budget: Decimal
    q1_budget: Decimal
    q2_budget: Decimal
    q3_budget: Decimal
    q4_budget: Decimal
    q1_spent: Decimal
    q2_spent: Decimal
    q3_spent: Decimal
    q4_spent: Decimal
    total_spent: Decimal
    spent_fiscal_year: int | None = None
    spent_recomputed_at: datetime | None = None


class SpendingTotalsResponse(BaseModel):
    """Quarterly spend after a recompute, rounded to cents."""

    project_id: UUID
    fiscal_year: int | None = None
    q1_spent: Decimal
    q2_spent: Decimal
    q3_spent: Decimal
    q4_spent: Decimal
    total_spent: Decimal

    @classmethod
    def from_totals(
        cls, project_id: UUID, totals: SpendingTotals, fiscal_year: int | None = None
    ) -> "SpendingTotalsResponse":
        return cls(project_id=project_id, fiscal_year=fiscal_year, **totals.rounded())


class QuarterStatusResponse(BaseModel):
    label: str
    budget: Decimal
    spent: Decimal
    remaining: Decimal
    overage: Decimal
    utilization: str
    alert: str


class BudgetStatusResponse(BaseModel):
    """Budget utilization for a project."""

    project_id: UUID
    name: str
    quarters: list[QuarterStatusResponse]
    total: QuarterStatusResponse
    over_budget_quarters: list[str]
    is_over_budget: bool


class BudgetAlertResponse(BaseModel):
    project_id: UUID
    project_name: str
    quarter: str
    alert: str
    utilization: Decimal
    budget: Decimal
    spent: Decimal


class QuarterProjectionResponse(BaseModel):
    project_id: UUID
    fiscal_year: int
    quarter: int
    projected_spend: Decimal
    on_track_spend: Decimal
    variance: Decimal


# ============================================================================
# Permission schemas
# ============================================================================


class PermissionGrant(BaseModel):
    """Schema for granting a project permission."""

    user_id: UUID
    permission: PermissionType


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project_permission_id: UUID
    user_id: UUID
    project_id: UUID
    permission: str
    granted_by: str | None = None
    created_at: datetime


class PermissionCheckResponse(BaseModel):
    user_id: UUID
    project_id: UUID
    permission: str | None = None
    allowed: bool


class RevokeResponse(BaseModel):
    removed: int


# ============================================================================
# Report schemas
# ============================================================================


class SpendingSummaryResponse(BaseModel):
    """Hours and spend by quarter and month; money rounded to cents."""

    total_hours: Decimal
    total_spending: Decimal
    quarterly_hours: dict[str, Decimal]
    quarterly_spending: dict[str, Decimal]
    monthly_hours: dict[str, Decimal]
    monthly_spending: dict[str, Decimal]

    @classmethod
    def from_summary(cls, summary: SpendingSummary, **extra: Any) -> "SpendingSummaryResponse":
        return cls(
            total_hours=round_hours(summary.total_hours),
            total_spending=round_money(summary.total_spending),
            quarterly_hours={k: round_hours(v) for k, v in summary.quarterly_hours.items()},
            quarterly_spending={k: round_money(v) for k, v in summary.quarterly_spending.items()},
            monthly_hours={k: round_hours(v) for k, v in sorted(summary.monthly_hours.items())},
            monthly_spending={
                k: round_money(v) for k, v in sorted(summary.monthly_spending.items())
            },
            **extra,
        )


class RateChangePoint(BaseModel):
    effective_date: date
    rate: Decimal


class EmployeeSpendingResponse(SpendingSummaryResponse):
    employee_id: UUID
    project_id: UUID
    fiscal_year: int
    name: str | None = None
    email: str | None = None
    rate_changes: list[RateChangePoint] = []

    @classmethod
    def from_employee(cls, employee: EmployeeSpending) -> "EmployeeSpendingResponse":
        return cls.from_summary(
            employee,
            employee_id=employee.employee_id,
            project_id=employee.project_id,
            fiscal_year=employee.fiscal_year,
            name=employee.name,
            email=employee.email,
            rate_changes=[
                RateChangePoint(effective_date=c.effective_date, rate=c.rate)
                for c in employee.rate_changes
            ],
        )


class ProjectBreakdownResponse(BaseModel):
    project_id: UUID
    fiscal_year: int
    employees: list[EmployeeSpendingResponse]
    totals: SpendingSummaryResponse


class UserSummaryResponse(BaseModel):
    user_id: UUID
    fiscal_year: int
    projects: dict[str, SpendingSummaryResponse]
    totals: SpendingSummaryResponse


class MonthlySummaryResponse(BaseModel):
    month: str
    rows: list[EmployeeSpendingResponse]
    totals: SpendingSummaryResponse


class UserActivityResponse(BaseModel):
    """One user's recent logging, as seen by administrators."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    name: str | None = None
    email: str
    role: str
    today_minutes: int
    week_minutes: int
    last_entry_at: datetime | None = None
    entries_count: int
    has_issues: bool
