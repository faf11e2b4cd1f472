"""Historical pay rate resolution."""

from __future__ import annotations

from bisect import bisect_right
from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.calculators.types import ZERO, RateChange, RatePeriod
from timebudget.errors import UserNotFound
from timebudget.models import RateHistory, User


class RateTimeline:
    """A user's rate history, ordered oldest first.

    Resolution rule: the latest change with ``effective_date <= on_date``
    wins; dates before the first change use the baseline rate (the user's
    stored ``employee_rate``), which counts as effective since forever.
    Effective dates are unique per user, so there are no ties.
    """

    def __init__(self, baseline: Decimal, changes: Iterable[RateChange] = ()):
        self.baseline = baseline
        self.changes = sorted(changes, key=lambda c: c.effective_date)
        self._dates = [c.effective_date for c in self.changes]
        if len(set(self._dates)) != len(self._dates):
            raise ValueError("Rate timeline has duplicate effective dates")

    def rate_on(self, on_date: date) -> Decimal:
        """Rate in effect on a date."""
        index = bisect_right(self._dates, on_date)
        if index == 0:
            return self.baseline
        return self.changes[index - 1].rate

    def periods(self, start: date, end: date) -> list[RatePeriod]:
        """Rate windows overlapping ``[start, end]``, clipped to ``start``.

        Each period's ``end`` is the exclusive date the next change takes
        effect, or None for the open-ended last window.
        """
        if end < start:
            raise ValueError(f"Period end {end} is before start {start}")

        periods: list[RatePeriod] = []
        first = bisect_right(self._dates, start)
        current_rate = self.baseline if first == 0 else self.changes[first - 1].rate
        current_start = start

        for change in self.changes[first:]:
            if change.effective_date > end:
                break
            periods.append(RatePeriod(current_rate, current_start, change.effective_date))
            current_rate = change.rate
            current_start = change.effective_date

        periods.append(RatePeriod(current_rate, current_start, None))
        return periods

    def latest_effective(self, today: date) -> Decimal:
        """Rate in effect today, the value cached on the user row."""
        return self.rate_on(today)


class RateResolver:
    """Resolves a user's hourly rate as of a date from rate history.

    Rate selection:
    1. Latest rate_history row with effective_date <= as_of_date
    2. Otherwise the user's baseline employee_rate
    3. Unknown user raises UserNotFound
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def effective_rate(self, user_id: UUID, on_date: date) -> Decimal:
        """Resolve the rate in effect for a user on a date."""
        result = await self.session.execute(
            select(RateHistory.rate)
            .where(
                RateHistory.user_id == user_id,
                RateHistory.effective_date <= on_date,
            )
            .order_by(RateHistory.effective_date.desc())
            .limit(1)
        )
        rate = result.scalar_one_or_none()
        if rate is not None:
            return rate

        baseline = await self.session.scalar(
            select(User.employee_rate).where(User.user_id == user_id)
        )
        if baseline is None:
            raise UserNotFound(user_id)
        return baseline

    async def load_timeline(self, user_id: UUID) -> RateTimeline:
        """Load one user's full rate timeline."""
        timelines = await self.load_timelines([user_id])
        return timelines[user_id]

    async def load_timelines(self, user_ids: Iterable[UUID]) -> dict[UUID, RateTimeline]:
        """Load rate timelines for several users in two queries.

        Raises UserNotFound for the first id with no user row.
        """
        wanted = set(user_ids)
        if not wanted:
            return {}

        baselines = {
            row.user_id: row.employee_rate
            for row in await self.session.execute(
                select(User.user_id, User.employee_rate).where(User.user_id.in_(wanted))
            )
        }
        missing = wanted - baselines.keys()
        if missing:
            raise UserNotFound(sorted(missing, key=str)[0])

        changes: dict[UUID, list[RateChange]] = defaultdict(list)
        rows = await self.session.execute(
            select(RateHistory.user_id, RateHistory.effective_date, RateHistory.rate)
            .where(RateHistory.user_id.in_(wanted))
            .order_by(RateHistory.user_id, RateHistory.effective_date)
        )
        for row in rows:
            changes[row.user_id].append(RateChange(row.effective_date, row.rate))

        return {
            user_id: RateTimeline(baselines[user_id] or ZERO, changes[user_id])
            for user_id in wanted
        }

    async def rate_periods(self, user_id: UUID, start: date, end: date) -> list[RatePeriod]:
        """Rate windows that cover a date range for a user."""
        timeline = await self.load_timeline(user_id)
        return timeline.periods(start, end)

    async def rate_changes(
        self,
        user_id: UUID,
        limit: int | None = None,
        until: date | None = None,
    ) -> list[RateHistory]:
        """Rate history rows for a user, most recent first."""
        query = (
            select(RateHistory)
            .where(RateHistory.user_id == user_id)
            .order_by(RateHistory.effective_date.desc())
        )
        if until is not None:
            query = query.where(RateHistory.effective_date <= until)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())
