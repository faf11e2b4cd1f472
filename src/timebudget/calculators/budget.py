"""Budget utilization and alerting.

Derived on read from the persisted budgets and the cached quarterly spend;
nothing here is stored.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from timebudget.calculators.quarters import QUARTER_LABELS, quarter_bounds
from timebudget.calculators.types import (
    ZERO,
    AlertLevel,
    BudgetAlert,
    BudgetStatus,
    QuarterProjection,
    QuarterStatus,
)
from timebudget.errors import BudgetExceedsTotal, InvalidBudget
from timebudget.models import QUARTERS, Project

WARNING_THRESHOLD = Decimal("75")
CRITICAL_THRESHOLD = Decimal("90")
OVER_BUDGET_THRESHOLD = Decimal("100")


def utilization(spent: Decimal, budget: Decimal) -> Decimal | None:
    """Percent of budget spent, or None when no budget is set."""
    if budget <= ZERO:
        return None
    return spent / budget * 100


def alert_level(percent: Decimal | None) -> AlertLevel:
    if percent is None:
        return AlertLevel.NONE
    if percent >= OVER_BUDGET_THRESHOLD:
        return AlertLevel.OVER_BUDGET
    if percent >= CRITICAL_THRESHOLD:
        return AlertLevel.CRITICAL
    if percent >= WARNING_THRESHOLD:
        return AlertLevel.WARNING
    return AlertLevel.NONE


def quarter_status(label: str, budget: Decimal, spent: Decimal) -> QuarterStatus:
    percent = utilization(spent, budget)
    return QuarterStatus(
        label=label,
        budget=budget,
        spent=spent,
        utilization=percent,
        alert=alert_level(percent),
    )


def validate_budget(
    total_budget: Decimal,
    q1_budget: Decimal,
    q2_budget: Decimal,
    q3_budget: Decimal,
    q4_budget: Decimal,
) -> None:
    """Reject negative amounts and quarterly sums above the total.

    Raises:
        InvalidBudget: any amount is negative
        BudgetExceedsTotal: q1 + q2 + q3 + q4 > total
    """
    amounts = {
        "total_budget": total_budget,
        "q1_budget": q1_budget,
        "q2_budget": q2_budget,
        "q3_budget": q3_budget,
        "q4_budget": q4_budget,
    }
    for field_name, amount in amounts.items():
        if amount < ZERO:
            raise InvalidBudget(field_name, amount)

    quarterly_sum = q1_budget + q2_budget + q3_budget + q4_budget
    if quarterly_sum > total_budget:
        raise BudgetExceedsTotal(quarterly_sum, total_budget)


def budget_status(project: Project) -> BudgetStatus:
    """Per-quarter and total utilization of a project's budget."""
    quarters = [
        quarter_status(QUARTER_LABELS[q], project.quarter_budget(q), project.quarter_spent(q))
        for q in QUARTERS
    ]
    total = quarter_status("Total", project.total_budget, project.total_spent)
    return BudgetStatus(project_id=project.project_id, quarters=quarters, total=total)


def spending_alerts(projects: Iterable[Project]) -> list[BudgetAlert]:
    """Quarters at or above the warning threshold, most severe first.

    Ties on severity are ordered by utilization, highest first.
    """
    alerts: list[BudgetAlert] = []
    for project in projects:
        status = budget_status(project)
        for quarter, item in zip(QUARTERS, status.quarters):
            if item.alert is AlertLevel.NONE or item.utilization is None:
                continue
            alerts.append(
                BudgetAlert(
                    project_id=project.project_id,
                    project_name=project.name,
                    quarter=f"Q{quarter}",
                    alert=item.alert,
                    utilization=item.utilization,
                    budget=item.budget,
                    spent=item.spent,
                )
            )

    alerts.sort(key=lambda a: (a.alert.severity, a.utilization), reverse=True)
    return alerts


def project_quarter_spend(
    budget: Decimal,
    spent: Decimal,
    fiscal_year: int,
    quarter: int,
    today: date,
) -> QuarterProjection:
    """Project end-of-quarter spend from the burn rate so far.

    ``on_track_spend`` is the share of the budget that a linear burn would
    have used by ``today``; ``variance`` is projected spend minus budget.
    """
    start, end = quarter_bounds(fiscal_year, quarter)
    total_days = (end - start).days + 1

    if today < start:
        elapsed = 0
    elif today > end:
        elapsed = total_days
    else:
        elapsed = (today - start).days + 1

    if elapsed == 0:
        projected = spent
    else:
        projected = spent / elapsed * total_days

    on_track = budget * elapsed / total_days
    return QuarterProjection(
        projected_spend=projected,
        on_track_spend=on_track,
        variance=projected - budget,
    )
