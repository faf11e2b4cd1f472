"""Type definitions for the spending and budget calculators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

ZERO = Decimal("0")
MONEY_PRECISION = Decimal("0.01")
HOURS_PRECISION = Decimal("0.0001")
MINUTES_PER_HOUR = Decimal(60)


def round_money(amount: Decimal) -> Decimal:
    """Round to cents, half up. Apply once, at display time."""
    return amount.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def round_hours(amount: Decimal) -> Decimal:
    """Round hours to 4 places, half up, for display."""
    return amount.quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP)


def quarter_key(quarter: int) -> str:
    """Key used for quarter-indexed report fields ("q1".."q4")."""
    return f"q{quarter}"


def empty_quarters() -> dict[str, Decimal]:
    return {quarter_key(q): ZERO for q in (1, 2, 3, 4)}


@dataclass(frozen=True)
class QuarterBucket:
    """Where a calendar date falls in the April-March fiscal year."""

    fiscal_year: int  # calendar year in which the fiscal year starts
    fiscal_quarter: int  # 1-4
    month_key: str  # YYYY-MM


@dataclass(frozen=True)
class RateChange:
    """One point of a user's rate timeline."""

    effective_date: date
    rate: Decimal


@dataclass(frozen=True)
class RatePeriod:
    """A window over which a single rate applies."""

    rate: Decimal
    start: date
    end: date | None  # exclusive; None = open ended


@dataclass(frozen=True)
class PricedEntry:
    """A time entry costed at the rate in effect on its work date."""

    user_id: UUID
    project_id: UUID
    work_date: date
    duration: int  # minutes
    rate: Decimal
    bucket: QuarterBucket

    @property
    def hours(self) -> Decimal:
        return Decimal(self.duration) / MINUTES_PER_HOUR

    @property
    def cost(self) -> Decimal:
        """Exact cost from whole minutes; never priced from rounded hours."""
        return Decimal(self.duration) * self.rate / MINUTES_PER_HOUR


@dataclass
class SpendingTotals:
    """Quarterly spend for one project, unrounded."""

    q1_spent: Decimal = ZERO
    q2_spent: Decimal = ZERO
    q3_spent: Decimal = ZERO
    q4_spent: Decimal = ZERO

    @property
    def total_spent(self) -> Decimal:
        return self.q1_spent + self.q2_spent + self.q3_spent + self.q4_spent

    def for_quarter(self, quarter: int) -> Decimal:
        return getattr(self, f"q{quarter}_spent")

    def add(self, quarter: int, amount: Decimal) -> None:
        name = f"q{quarter}_spent"
        setattr(self, name, getattr(self, name) + amount)

    def as_dict(self) -> dict[str, Decimal]:
        return {
            "q1_spent": self.q1_spent,
            "q2_spent": self.q2_spent,
            "q3_spent": self.q3_spent,
            "q4_spent": self.q4_spent,
            "total_spent": self.total_spent,
        }

    def rounded(self) -> dict[str, Decimal]:
        """Display values rounded to cents."""
        return {key: round_money(value) for key, value in self.as_dict().items()}


@dataclass
class SpendingSummary:
    """Hours and spend bucketed by fiscal quarter and by month."""

    total_hours: Decimal = ZERO
    total_spending: Decimal = ZERO
    quarterly_hours: dict[str, Decimal] = field(default_factory=empty_quarters)
    quarterly_spending: dict[str, Decimal] = field(default_factory=empty_quarters)
    monthly_hours: dict[str, Decimal] = field(default_factory=dict)
    monthly_spending: dict[str, Decimal] = field(default_factory=dict)

    def add(self, bucket: QuarterBucket, hours: Decimal, cost: Decimal) -> None:
        key = quarter_key(bucket.fiscal_quarter)
        self.total_hours += hours
        self.total_spending += cost
        self.quarterly_hours[key] += hours
        self.quarterly_spending[key] += cost
        self.monthly_hours[bucket.month_key] = self.monthly_hours.get(bucket.month_key, ZERO) + hours
        self.monthly_spending[bucket.month_key] = (
            self.monthly_spending.get(bucket.month_key, ZERO) + cost
        )


@dataclass
class EmployeeSpending(SpendingSummary):
    """Spend of one employee on one project over one fiscal year."""

    employee_id: UUID | None = None
    project_id: UUID | None = None
    fiscal_year: int | None = None
    name: str | None = None
    email: str | None = None
    rate_changes: list[RateChange] = field(default_factory=list)


@dataclass
class ProjectSpendingBreakdown:
    """Per-employee spend for a project and fiscal year."""

    project_id: UUID
    fiscal_year: int
    employees: list[EmployeeSpending]
    totals: SpendingSummary


@dataclass
class UserSpendingSummary:
    """One user's hours and spend across projects for a fiscal year."""

    user_id: UUID
    fiscal_year: int
    projects: dict[UUID, SpendingSummary]
    totals: SpendingSummary


@dataclass
class MonthlySpendingSummary:
    """Per employee per project spend for one calendar month."""

    month_key: str
    rows: list[EmployeeSpending]
    totals: SpendingSummary


@dataclass(frozen=True)
class UserActivity:
    """Recent time logging by one user."""

    user_id: UUID
    name: str | None
    email: str
    role: str
    today_minutes: int
    week_minutes: int
    last_entry_at: datetime | None
    entries_count: int
    has_issues: bool


@dataclass
class FanOutResult:
    """Outcome of recomputing every project a user logged time against."""

    user_id: UUID | None
    recomputed: dict[UUID, SpendingTotals] = field(default_factory=dict)
    failed: dict[UUID, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.failed


class AlertLevel(str, Enum):
    """Budget alert severity."""

    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"
    OVER_BUDGET = "over-budget"

    @property
    def severity(self) -> int:
        return _ALERT_SEVERITY[self]


_ALERT_SEVERITY = {
    AlertLevel.NONE: 0,
    AlertLevel.WARNING: 1,
    AlertLevel.CRITICAL: 2,
    AlertLevel.OVER_BUDGET: 3,
}


@dataclass(frozen=True)
class QuarterStatus:
    """Budget versus spend for one quarter (or the whole project)."""

    label: str
    budget: Decimal
    spent: Decimal
    utilization: Decimal | None  # percent; None when no budget is set
    alert: AlertLevel

    @property
    def remaining(self) -> Decimal:
        return max(ZERO, self.budget - self.spent)

    @property
    def overage(self) -> Decimal:
        return max(ZERO, self.spent - self.budget)

    @property
    def utilization_display(self) -> str:
        if self.utilization is None:
            return "N/A"
        return f"{round_money(self.utilization)}%"


@dataclass(frozen=True)
class BudgetStatus:
    """Budget utilization view of a project."""

    project_id: UUID
    quarters: list[QuarterStatus]
    total: QuarterStatus

    @property
    def over_budget_quarters(self) -> list[str]:
        return [f"Q{i}" for i, q in enumerate(self.quarters, start=1) if q.spent > q.budget]

    @property
    def is_over_budget(self) -> bool:
        return bool(self.over_budget_quarters) or self.total.spent > self.total.budget


@dataclass(frozen=True)
class BudgetAlert:
    """A quarter that crossed an alert threshold."""

    project_id: UUID
    project_name: str
    quarter: str
    alert: AlertLevel
    utilization: Decimal
    budget: Decimal
    spent: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": str(self.project_id),
            "project_name": self.project_name,
            "quarter": self.quarter,
            "alert": self.alert.value,
            "utilization": str(round_money(self.utilization)),
            "budget": str(round_money(self.budget)),
            "spent": str(round_money(self.spent)),
        }


@dataclass(frozen=True)
class QuarterProjection:
    """Burn-rate projection of a quarter's spend."""

    projected_spend: Decimal
    on_track_spend: Decimal
    variance: Decimal
