"""Tests for budget validation, utilization and alerts."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from timebudget.calculators.budget import (
    alert_level,
    budget_status,
    project_quarter_spend,
    spending_alerts,
    utilization,
    validate_budget,
)
from timebudget.calculators.types import AlertLevel
from timebudget.errors import BudgetExceedsTotal, InvalidBudget, PermissionDenied
from timebudget.models import PermissionType, Project
from timebudget.services.budget_service import BudgetService
from timebudget.services.permission_service import PermissionService


def make_project(name="Apollo", budget="1000", spent=("0", "0", "0", "0")) -> Project:
    return Project(
        project_id=uuid4(),
        name=name,
        total_budget=Decimal(budget) * 4,
        q1_budget=Decimal(budget),
        q2_budget=Decimal(budget),
        q3_budget=Decimal(budget),
        q4_budget=Decimal(budget),
        q1_spent=Decimal(spent[0]),
        q2_spent=Decimal(spent[1]),
        q3_spent=Decimal(spent[2]),
        q4_spent=Decimal(spent[3]),
    )


class TestValidateBudget:
    def test_quarters_may_equal_total(self):
        validate_budget(*(Decimal(x) for x in ("100", "25", "25", "25", "25")))

    def test_quarters_may_leave_headroom(self):
        validate_budget(*(Decimal(x) for x in ("100", "10", "0", "0", "0")))

    def test_quarters_above_total(self):
        with pytest.raises(BudgetExceedsTotal) as exc_info:
            validate_budget(*(Decimal(x) for x in ("100", "30", "30", "30", "30")))

        assert exc_info.value.quarterly_sum == Decimal("120")
        assert exc_info.value.total_budget == Decimal("100")

    def test_negative_amount(self):
        with pytest.raises(InvalidBudget) as exc_info:
            validate_budget(*(Decimal(x) for x in ("100", "10", "-5", "0", "0")))

        assert exc_info.value.field_name == "q2_budget"


class TestUtilization:
    def test_no_budget_is_not_applicable(self):
        assert utilization(Decimal("50"), Decimal("0")) is None

        status = budget_status(make_project(budget="0", spent=("50", "0", "0", "0")))

        assert status.quarters[0].utilization_display == "N/A"
        assert status.quarters[0].alert is AlertLevel.NONE

    def test_percent_of_budget(self):
        assert utilization(Decimal("250"), Decimal("1000")) == Decimal("25")

    @pytest.mark.parametrize(
        "percent, expected",
        [
            ("0", AlertLevel.NONE),
            ("74.99", AlertLevel.NONE),
            ("75", AlertLevel.WARNING),
            ("89.99", AlertLevel.WARNING),
            ("90", AlertLevel.CRITICAL),
            ("99.99", AlertLevel.CRITICAL),
            ("100", AlertLevel.OVER_BUDGET),
            ("250", AlertLevel.OVER_BUDGET),
        ],
    )
    def test_alert_thresholds(self, percent, expected):
        assert alert_level(Decimal(percent)) is expected

    def test_budget_status(self):
        project = make_project(spent=("1200", "500", "0", "0"))

        status = budget_status(project)

        assert status.over_budget_quarters == ["Q1"]
        assert status.is_over_budget
        assert status.quarters[0].overage == Decimal("200")
        assert status.quarters[1].remaining == Decimal("500")
        assert status.quarters[1].utilization_display == "50.00%"
        assert status.total.spent == Decimal("1700")


class TestSpendingAlerts:
    def test_most_severe_first(self):
        calm = make_project("Calm", spent=("100", "0", "0", "0"))
        warm = make_project("Warm", spent=("800", "0", "0", "0"))
        hot = make_project("Hot", spent=("950", "1100", "0", "0"))
        warmer = make_project("Warmer", spent=("0", "850", "0", "0"))

        alerts = spending_alerts([calm, warm, hot, warmer])

        assert [(a.project_name, a.quarter, a.alert) for a in alerts] == [
            ("Hot", "Q2", AlertLevel.OVER_BUDGET),
            ("Hot", "Q1", AlertLevel.CRITICAL),
            ("Warmer", "Q2", AlertLevel.WARNING),
            ("Warm", "Q1", AlertLevel.WARNING),
        ]
        assert alerts[0].to_dict()["utilization"] == "110.00"


class TestProjection:
    def test_linear_burn(self):
        # Q1 FY2024 has 91 days; 30 days elapsed on 2024-04-30
        projection = project_quarter_spend(
            budget=Decimal("910"),
            spent=Decimal("300"),
            fiscal_year=2024,
            quarter=1,
            today=date(2024, 4, 30),
        )

        assert projection.projected_spend == Decimal("910")
        assert projection.on_track_spend == Decimal("300")
        assert projection.variance == Decimal("0")

    def test_before_quarter_starts(self):
        projection = project_quarter_spend(
            budget=Decimal("900"),
            spent=Decimal("0"),
            fiscal_year=2024,
            quarter=2,
            today=date(2024, 4, 30),
        )

        assert projection.projected_spend == Decimal("0")
        assert projection.on_track_spend == Decimal("0")
        assert projection.variance == Decimal("-900")

    def test_after_quarter_ends(self):
        projection = project_quarter_spend(
            budget=Decimal("900"),
            spent=Decimal("910"),
            fiscal_year=2024,
            quarter=1,
            today=date(2024, 8, 1),
        )

        assert projection.projected_spend == Decimal("910")
        assert projection.on_track_spend == Decimal("900")
        assert projection.variance == Decimal("10")


class TestBudgetService:
    """Tests for the permission-gated budget operations."""

    @pytest.mark.asyncio
    async def test_admin_updates_budget(self, session, admin, project):
        updated = await BudgetService(session).update_budget(
            admin.user_id,
            project.project_id,
            total_budget=Decimal("2000"),
            q1_budget=Decimal("500"),
            q2_budget=Decimal("500"),
            q3_budget=Decimal("500"),
            q4_budget=Decimal("500"),
        )

        assert updated.total_budget == Decimal("2000")
        assert updated.quarterly_budget_sum == Decimal("2000")

    @pytest.mark.asyncio
    async def test_rejected_budget_leaves_project_unchanged(self, session, admin, project):
        with pytest.raises(BudgetExceedsTotal):
            await BudgetService(session).update_budget(
                admin.user_id,
                project.project_id,
                total_budget=Decimal("100"),
                q1_budget=Decimal("100"),
                q2_budget=Decimal("1"),
                q3_budget=Decimal("0"),
                q4_budget=Decimal("0"),
            )

        assert project.total_budget == Decimal("10000.00")

    @pytest.mark.asyncio
    async def test_edit_requires_permission(self, session, employee, project):
        service = BudgetService(session)
        budgets = dict(
            total_budget=Decimal("100"),
            q1_budget=Decimal("25"),
            q2_budget=Decimal("25"),
            q3_budget=Decimal("25"),
            q4_budget=Decimal("25"),
        )

        with pytest.raises(PermissionDenied) as exc_info:
            await service.update_budget(employee.user_id, project.project_id, **budgets)
        assert exc_info.value.required == "EDIT_BUDGETS"

        await PermissionService(session).grant(
            employee.user_id, project.project_id, PermissionType.EDIT_BUDGETS
        )
        updated = await service.update_budget(employee.user_id, project.project_id, **budgets)
        assert updated.total_budget == Decimal("100")

    @pytest.mark.asyncio
    async def test_recalculate_requires_view_reports(
        self, session, employee, project, add_entry
    ):
        await add_entry(employee, project, date(2024, 5, 10), 60)
        service = BudgetService(session)

        with pytest.raises(PermissionDenied):
            await service.recalculate(employee.user_id, project.project_id)

        await PermissionService(session).grant(
            employee.user_id, project.project_id, PermissionType.VIEW_REPORTS
        )
        totals = await service.recalculate(employee.user_id, project.project_id)

        assert totals.q1_spent == Decimal("20")
        assert project.q1_spent == Decimal("20")

    @pytest.mark.asyncio
    async def test_recalculate_all_is_admin_only(self, session, admin, employee, project):
        service = BudgetService(session)

        with pytest.raises(PermissionDenied):
            await service.recalculate_all(employee.user_id)

        result = await service.recalculate_all(admin.user_id)
        assert project.project_id in result.recomputed

    @pytest.mark.asyncio
    async def test_create_project_validates(self, session, admin):
        with pytest.raises(BudgetExceedsTotal):
            await BudgetService(session).create_project(
                admin.user_id,
                name="Overcommitted",
                total_budget=Decimal("10"),
                q1_budget=Decimal("11"),
            )

    @pytest.mark.asyncio
    async def test_alerts_only_for_reportable_projects(
        self, session, admin, employee, project, other_project
    ):
        project.q1_spent = Decimal("2400")
        other_project.total_budget = Decimal("100")
        other_project.q1_budget = Decimal("100")
        other_project.q1_spent = Decimal("150")
        await session.flush()
        await PermissionService(session).grant(
            employee.user_id, project.project_id, PermissionType.FULL_ACCESS
        )
        service = BudgetService(session)

        employee_alerts = await service.alerts(employee.user_id)
        admin_alerts = await service.alerts(admin.user_id)

        assert [(a.project_name, a.alert) for a in employee_alerts] == [
            ("Apollo", AlertLevel.CRITICAL)
        ]
        assert [a.project_name for a in admin_alerts] == ["Borealis", "Apollo"]

    @pytest.mark.asyncio
    async def test_quarter_projection_uses_computed_spend(
        self, session, admin, employee, project, add_entry
    ):
        await add_entry(employee, project, date(2024, 4, 10), 900)  # 15h * 20 = 300

        projection = await BudgetService(session).quarter_projection(
            admin.user_id, project.project_id, today=date(2024, 4, 30), year=2024, quarter=1
        )

        assert projection.projected_spend == Decimal("910")
        assert projection.variance == Decimal("910") - Decimal("2500.00")
