"""Rate history service - effective-dated pay rate changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.calculators.aggregator import SpendingAggregator
from timebudget.calculators.rate_resolver import RateResolver
from timebudget.calculators.types import FanOutResult
from timebudget.errors import (
    DuplicateEffectiveDate,
    InvalidRate,
    RateAlreadyEffective,
    RateHistoryNotFound,
    UserNotFound,
)
from timebudget.models import RateHistory, User
from timebudget.models.base import as_utc
from timebudget.models.user import BASELINE_EFFECTIVE_DATE
from timebudget.services.spending_triggers import SpendingTriggers

logger = logging.getLogger(__name__)

SYSTEM_BASELINE = "SYSTEM_BASELINE"
SYSTEM_MIGRATION = "SYSTEM_MIGRATION"


@dataclass
class RateUpdate:
    """A recorded rate change and the recompute it triggered."""

    history: RateHistory
    fanout: FanOutResult


@dataclass
class BackfillResult:
    created: int
    fanout: FanOutResult


class RateService:
    """Records and removes rate changes, keeping project spend current.

    Key invariants:
    1. At most one rate_history row per (user, effective_date)
    2. Only rate changes that have not taken effect yet can be deleted
    3. Every write recomputes all projects the user has logged time against
    4. ``User.employee_rate`` mirrors the rate in effect today

    Before a user's first change is recorded, their baseline rate is pinned
    as a history row effective from ``BASELINE_EFFECTIVE_DATE``. Dates that
    predate every change keep resolving to the old baseline even after
    ``employee_rate`` moves.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.resolver = RateResolver(session)
        self.triggers = SpendingTriggers(session)

    async def _get_user(self, user_id: UUID) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    async def set_rate(
        self,
        user_id: UUID,
        new_rate: Decimal,
        effective_date: date,
        actor: str,
        today: date | None = None,
    ) -> RateUpdate:
        """Record a rate change and recompute the user's projects.

        Raises:
            InvalidRate: negative rate
            UserNotFound: unknown user
            DuplicateEffectiveDate: a change already exists on that date
        """
        if new_rate < 0:
            raise InvalidRate(new_rate)
        today = today or date.today()
        user = await self._get_user(user_id)

        if await self._has_change_on(user_id, effective_date):
            raise DuplicateEffectiveDate(user_id, effective_date)

        if effective_date != BASELINE_EFFECTIVE_DATE:
            await self._pin_baseline(user)

        history = RateHistory(
            user_id=user_id,
            rate=new_rate,
            effective_date=effective_date,
            created_by=actor,
        )
        # A concurrent writer can claim the date after the check above
        try:
            async with self.session.begin_nested():
                self.session.add(history)
                await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateEffectiveDate(user_id, effective_date) from exc

        timeline = await self.resolver.load_timeline(user_id)
        user.employee_rate = timeline.latest_effective(today)
        await self.session.flush()

        logger.info(
            "Rate for user %s set to %s effective %s by %s",
            user_id,
            new_rate,
            effective_date,
            actor,
        )
        fanout = await self.triggers.on_rate_changed(user_id, effective_date)
        return RateUpdate(history=history, fanout=fanout)

    async def _has_change_on(self, user_id: UUID, effective_date: date) -> bool:
        existing = await self.session.scalar(
            select(RateHistory.rate_history_id).where(
                RateHistory.user_id == user_id,
                RateHistory.effective_date == effective_date,
            )
        )
        return existing is not None

    async def _pin_baseline(self, user: User) -> None:
        pinned = await self.session.scalar(
            select(RateHistory.rate_history_id).where(
                RateHistory.user_id == user.user_id,
                RateHistory.effective_date == BASELINE_EFFECTIVE_DATE,
            )
        )
        if pinned is not None:
            return

        self.session.add(
            RateHistory(
                user_id=user.user_id,
                rate=user.employee_rate,
                effective_date=BASELINE_EFFECTIVE_DATE,
                created_by=SYSTEM_BASELINE,
            )
        )
        await self.session.flush()

    async def delete_future_rate(
        self,
        rate_history_id: UUID,
        user_id: UUID | None = None,
        today: date | None = None,
    ) -> FanOutResult:
        """Delete a scheduled rate change and recompute the user's projects.

        Raises:
            RateHistoryNotFound: unknown id, or it belongs to another user
            RateAlreadyEffective: effective_date <= today
        """
        today = today or date.today()
        history = await self.session.get(RateHistory, rate_history_id)
        if history is None or (user_id is not None and history.user_id != user_id):
            raise RateHistoryNotFound(rate_history_id)
        if history.effective_date <= today:
            raise RateAlreadyEffective(rate_history_id, history.effective_date, today)

        owner_id = history.user_id
        effective_date = history.effective_date
        await self.session.delete(history)
        await self.session.flush()

        logger.info(
            "Deleted scheduled rate change %s for user %s (effective %s)",
            rate_history_id,
            owner_id,
            effective_date,
        )
        return await self.triggers.on_rate_deleted(owner_id, effective_date)

    async def list_rate_history(
        self,
        user_id: UUID,
        limit: int | None = None,
    ) -> list[RateHistory]:
        """A user's rate changes, most recent first."""
        await self._get_user(user_id)
        return await self.resolver.rate_changes(user_id, limit=limit)

    async def current_rate(self, user_id: UUID, today: date | None = None) -> Decimal:
        return await self.resolver.effective_rate(user_id, today or date.today())

    async def backfill_rate_history(self) -> BackfillResult:
        """Give every user without history a row for their current rate.

        The row takes effect on the account's creation date. All projects
        are recomputed afterwards.
        """
        has_history = select(RateHistory.user_id).distinct()
        result = await self.session.execute(
            select(User).where(User.user_id.not_in(has_history)).order_by(User.created_at)
        )
        users = list(result.scalars().all())

        for user in users:
            self.session.add(
                RateHistory(
                    user_id=user.user_id,
                    rate=user.employee_rate,
                    effective_date=as_utc(user.created_at).date(),
                    created_by=SYSTEM_MIGRATION,
                )
            )
        await self.session.flush()

        total = await self.session.scalar(select(func.count()).select_from(RateHistory))
        logger.info(
            "Backfilled rate history for %d user(s); %d rate_history rows total",
            len(users),
            total,
        )
        fanout = await SpendingAggregator(self.session).recompute_all()
        return BackfillResult(created=len(users), fanout=fanout)
