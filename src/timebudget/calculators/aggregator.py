"""Spending aggregator - derives project spend from hours and historical rates."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.calculators.quarters import classify, fiscal_year_bounds
from timebudget.calculators.rate_resolver import RateResolver
from timebudget.calculators.types import (
    EmployeeSpending,
    FanOutResult,
    PricedEntry,
    ProjectSpendingBreakdown,
    SpendingSummary,
    SpendingTotals,
)
from timebudget.database import lock_project
from timebudget.errors import ProjectNotFound, RecomputationFailure
from timebudget.models import Project, TimeEntry, User
from timebudget.models.base import utcnow

logger = logging.getLogger(__name__)


def accumulate(entries: Iterable[PricedEntry]) -> SpendingTotals:
    """Sum entry costs into fiscal quarter buckets without rounding."""
    totals = SpendingTotals()
    for entry in entries:
        totals.add(entry.bucket.fiscal_quarter, entry.cost)
    return totals


class SpendingAggregator:
    """Recomputes the cached quarterly spend on projects.

    This is the only writer of ``Project.qN_spent``. Each recompute is a
    full rescan of the project's entries, so running it again with no data
    changes yields the same totals.

    Recompute pipeline (one transaction per project):
    1) Lock the project row
    2) Load entries (optionally bounded to one fiscal year)
    3) Price each entry at the rate effective on its work date
    4) Bucket by fiscal quarter and sum
    5) Write the four quarterly totals in a single update
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.rates = RateResolver(session)

    async def priced_entries(self, *criteria, fiscal_year: int | None = None) -> list[PricedEntry]:
        """Load time entries matching ``criteria`` and price each one."""
        query = select(
            TimeEntry.user_id,
            TimeEntry.project_id,
            TimeEntry.work_date,
            TimeEntry.duration,
        ).where(*criteria)
        if fiscal_year is not None:
            start, end = fiscal_year_bounds(fiscal_year)
            query = query.where(TimeEntry.work_date.between(start, end))
        query = query.order_by(TimeEntry.work_date, TimeEntry.start_time)

        rows = (await self.session.execute(query)).all()
        timelines = await self.rates.load_timelines({row.user_id for row in rows})

        return [
            PricedEntry(
                user_id=row.user_id,
                project_id=row.project_id,
                work_date=row.work_date,
                duration=row.duration,
                rate=timelines[row.user_id].rate_on(row.work_date),
                bucket=classify(row.work_date),
            )
            for row in rows
        ]

    async def compute_project_spending(
        self,
        project_id: UUID,
        fiscal_year: int | None = None,
    ) -> SpendingTotals:
        """Compute a project's quarterly spend without persisting it."""
        await self.require_project(project_id)
        entries = await self.priced_entries(
            TimeEntry.project_id == project_id, fiscal_year=fiscal_year
        )
        return accumulate(entries)

    async def recompute_project_spending(
        self,
        project_id: UUID,
        fiscal_year: int | None = None,
    ) -> SpendingTotals:
        """Recompute and persist a project's quarterly spend.

        Raises ProjectNotFound for an unknown project and RecomputationFailure
        when the database fails mid-way; in the latter case the caller's
        transaction must be rolled back.
        """
        try:
            project = await lock_project(self.session, project_id)
            if project is None:
                raise ProjectNotFound(project_id)

            entries = await self.priced_entries(
                TimeEntry.project_id == project_id, fiscal_year=fiscal_year
            )
            totals = accumulate(entries)

            project.q1_spent = totals.q1_spent
            project.q2_spent = totals.q2_spent
            project.q3_spent = totals.q3_spent
            project.q4_spent = totals.q4_spent
            project.spent_fiscal_year = fiscal_year
            project.spent_recomputed_at = utcnow()
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise RecomputationFailure(project_id, str(exc)) from exc

        logger.info(
            "Recomputed spending for project %s (fiscal_year=%s, entries=%d): "
            "q1=%s q2=%s q3=%s q4=%s total=%s",
            project_id,
            fiscal_year,
            len(entries),
            totals.q1_spent,
            totals.q2_spent,
            totals.q3_spent,
            totals.q4_spent,
            totals.total_spent,
        )
        return totals

    async def projects_for_user(self, user_id: UUID) -> list[UUID]:
        """Every project the user has logged time against."""
        result = await self.session.execute(
            select(TimeEntry.project_id)
            .where(TimeEntry.user_id == user_id)
            .distinct()
        )
        return list(result.scalars().all())

    async def recompute_projects_for_user(self, user_id: UUID) -> FanOutResult:
        """Recompute every project a user has logged time against.

        A failing project is logged and skipped; the others still run and
        nothing already written by the caller is rolled back.
        """
        project_ids = await self.projects_for_user(user_id)
        return await self.recompute_projects(project_ids, user_id=user_id)

    async def recompute_all(self) -> FanOutResult:
        """Recompute every project (drift correction)."""
        result = await self.session.execute(select(Project.project_id))
        return await self.recompute_projects(result.scalars().all())

    async def recompute_projects(
        self,
        project_ids: Iterable[UUID],
        user_id: UUID | None = None,
    ) -> FanOutResult:
        """Recompute projects one at a time, each inside its own savepoint.

        Projects are visited in id order whatever the caller passes, so
        concurrent fan-outs take their row locks in the same sequence.
        """
        outcome = FanOutResult(user_id=user_id)

        for project_id in sorted(set(project_ids), key=str):
            try:
                async with self.session.begin_nested():
                    outcome.recomputed[project_id] = await self.recompute_project_spending(
                        project_id
                    )
            except Exception as exc:
                logger.exception(
                    "Spending recomputation failed for project %s; cached totals are stale",
                    project_id,
                )
                outcome.failed[project_id] = str(exc)

        if outcome.failed:
            logger.warning(
                "Recomputed %d of %d projects (user=%s); failed: %s",
                len(outcome.recomputed),
                len(outcome.recomputed) + len(outcome.failed),
                user_id,
                ", ".join(str(p) for p in outcome.failed),
            )
        return outcome

    async def project_breakdown(
        self,
        project_id: UUID,
        fiscal_year: int,
    ) -> ProjectSpendingBreakdown:
        """Per-employee hours and spend on a project for one fiscal year."""
        await self.require_project(project_id)
        entries = await self.priced_entries(
            TimeEntry.project_id == project_id, fiscal_year=fiscal_year
        )

        user_ids = {entry.user_id for entry in entries}
        timelines = await self.rates.load_timelines(user_ids)
        start, end = fiscal_year_bounds(fiscal_year)

        employees: dict[UUID, EmployeeSpending] = {}
        if user_ids:
            rows = await self.session.execute(
                select(User.user_id, User.name, User.email).where(User.user_id.in_(user_ids))
            )
            for row in rows:
                employees[row.user_id] = EmployeeSpending(
                    employee_id=row.user_id,
                    project_id=project_id,
                    fiscal_year=fiscal_year,
                    name=row.name,
                    email=row.email,
                    rate_changes=[
                        change
                        for change in timelines[row.user_id].changes
                        if start <= change.effective_date <= end
                    ],
                )

        totals = SpendingSummary()
        for entry in entries:
            employees[entry.user_id].add(entry.bucket, entry.hours, entry.cost)
            totals.add(entry.bucket, entry.hours, entry.cost)

        return ProjectSpendingBreakdown(
            project_id=project_id,
            fiscal_year=fiscal_year,
            employees=sorted(employees.values(), key=lambda e: (e.name or e.email or "")),
            totals=totals,
        )

    async def require_project(self, project_id: UUID) -> None:
        found = await self.session.scalar(
            select(Project.project_id).where(Project.project_id == project_id)
        )
        if found is None:
            raise ProjectNotFound(project_id)
