"""Spending reports priced at historical rates."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.calculators.aggregator import SpendingAggregator
from timebudget.calculators.quarters import month_bounds, month_key
from timebudget.calculators.types import (
    EmployeeSpending,
    MonthlySpendingSummary,
    ProjectSpendingBreakdown,
    SpendingSummary,
    UserActivity,
    UserSpendingSummary,
)
from timebudget.models import PermissionType, TimeEntry, User
from timebudget.models.base import as_utc, utcnow
from timebudget.services.permission_service import PermissionService


EXPECTED_WEEKLY_MINUTES = 40 * 60
# Hour (UTC) after which a day with nothing logged counts as a gap
LATE_MORNING_HOUR = 10


def week_start(day: date) -> date:
    """The Sunday on or before ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


class ReportService:
    """Read-only reporting views.

    Every spending figure is derived from time entries and rate history on request,
    never from the cached project totals.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.permissions = PermissionService(session)
        self.aggregator = SpendingAggregator(session)

    async def project_breakdown(
        self,
        actor_id: UUID,
        project_id: UUID,
        fiscal_year: int,
    ) -> ProjectSpendingBreakdown:
        """Per-employee hours and spend on a project (VIEW_REPORTS)."""
        await self.aggregator.require_project(project_id)
        await self.permissions.require(actor_id, project_id, PermissionType.VIEW_REPORTS)
        return await self.aggregator.project_breakdown(project_id, fiscal_year)

    async def user_summary(
        self,
        actor_id: UUID,
        user_id: UUID,
        fiscal_year: int,
    ) -> UserSpendingSummary:
        """A user's spend per project for a fiscal year (self or admin)."""
        await self.permissions.get_user(user_id)
        await self.permissions.require_self_or_admin(actor_id, user_id)

        entries = await self.aggregator.priced_entries(
            TimeEntry.user_id == user_id, fiscal_year=fiscal_year
        )
        projects: dict[UUID, SpendingSummary] = {}
        totals = SpendingSummary()
        for entry in entries:
            projects.setdefault(entry.project_id, SpendingSummary()).add(
                entry.bucket, entry.hours, entry.cost
            )
            totals.add(entry.bucket, entry.hours, entry.cost)

        return UserSpendingSummary(
            user_id=user_id,
            fiscal_year=fiscal_year,
            projects=projects,
            totals=totals,
        )

    async def monthly_summary(
        self,
        actor_id: UUID,
        year: int,
        month: int,
    ) -> MonthlySpendingSummary:
        """Spend per employee per project for a calendar month (admin)."""
        await self.permissions.require_admin(actor_id)
        start, end = month_bounds(year, month)

        entries = await self.aggregator.priced_entries(TimeEntry.work_date.between(start, end))
        user_ids = {entry.user_id for entry in entries}
        people = {}
        if user_ids:
            rows = await self.session.execute(
                select(User.user_id, User.name, User.email).where(User.user_id.in_(user_ids))
            )
            people = {row.user_id: row for row in rows}

        grouped: dict[tuple[UUID, UUID], EmployeeSpending] = {}
        totals = SpendingSummary()
        for entry in entries:
            key = (entry.user_id, entry.project_id)
            if key not in grouped:
                person = people[entry.user_id]
                grouped[key] = EmployeeSpending(
                    employee_id=entry.user_id,
                    project_id=entry.project_id,
                    fiscal_year=entry.bucket.fiscal_year,
                    name=person.name,
                    email=person.email,
                )
            grouped[key].add(entry.bucket, entry.hours, entry.cost)
            totals.add(entry.bucket, entry.hours, entry.cost)

        rows_out = sorted(
            grouped.values(),
            key=lambda e: (e.name or e.email or "", str(e.project_id)),
        )
        return MonthlySpendingSummary(month_key=month_key(start), rows=rows_out, totals=totals)

    async def user_oversight(
        self,
        actor_id: UUID,
        now: datetime | None = None,
    ) -> list[UserActivity]:
        """Logging activity per active user, flagging gaps (admin).

        A user is flagged when nothing was logged in the last day, the
        week so far is short of a full week, or nothing is logged today
        after the morning. Only stopped entries count toward the day and
        week totals.
        """
        await self.permissions.require_admin(actor_id)
        now = as_utc(now) if now is not None else utcnow()
        day_begin = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
        week_begin = datetime.combine(week_start(now.date()), time.min, tzinfo=timezone.utc)
        stopped = TimeEntry.end_time.is_not(None)

        def minutes_since(start: datetime):
            return func.coalesce(
                func.sum(
                    case(
                        (and_(stopped, TimeEntry.start_time >= start), TimeEntry.duration),
                        else_=0,
                    )
                ),
                0,
            )

        query = (
            select(
                User.user_id,
                User.name,
                User.email,
                User.role,
                minutes_since(day_begin).label("today_minutes"),
                minutes_since(week_begin).label("week_minutes"),
                func.max(TimeEntry.start_time).label("last_entry_at"),
                func.count(TimeEntry.time_entry_id).label("entries_count"),
            )
            .outerjoin(TimeEntry, TimeEntry.user_id == User.user_id)
            .where(User.active.is_(True))
            .group_by(User.user_id, User.name, User.email, User.role)
            .order_by(User.name, User.email)
        )

        since = now - timedelta(days=1)
        activity = []
        for row in await self.session.execute(query):
            last_entry_at = as_utc(row.last_entry_at) if row.last_entry_at else None
            has_issues = (
                last_entry_at is None
                or last_entry_at < since
                or row.week_minutes < EXPECTED_WEEKLY_MINUTES
                or (row.today_minutes == 0 and now.hour > LATE_MORNING_HOUR)
            )
            activity.append(
                UserActivity(
                    user_id=row.user_id,
                    name=row.name,
                    email=row.email,
                    role=row.role,
                    today_minutes=int(row.today_minutes),
                    week_minutes=int(row.week_minutes),
                    last_entry_at=last_entry_at,
                    entries_count=row.entries_count,
                    has_issues=has_issues,
                )
            )
        return activity
