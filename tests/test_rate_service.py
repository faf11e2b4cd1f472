"""Tests for rate history writes."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from timebudget.errors import (
    DuplicateEffectiveDate,
    InvalidRate,
    RateAlreadyEffective,
    RateHistoryNotFound,
    UserNotFound,
)
from timebudget.models import RateHistory
from timebudget.services.rate_service import (
    BASELINE_EFFECTIVE_DATE,
    SYSTEM_BASELINE,
    SYSTEM_MIGRATION,
    RateService,
)

TODAY = date(2024, 7, 1)


async def history_for(session, user):
    result = await session.execute(
        select(RateHistory)
        .where(RateHistory.user_id == user.user_id)
        .order_by(RateHistory.effective_date)
    )
    return list(result.scalars().all())


class TestSetRate:
    """Tests for recording rate changes."""

    @pytest.mark.asyncio
    async def test_pins_baseline_and_caches_current_rate(self, session, employee):
        service = RateService(session)

        update = await service.set_rate(
            employee.user_id, Decimal("30.00"), date(2024, 6, 1), actor="admin", today=TODAY
        )

        rows = await history_for(session, employee)
        assert [(r.effective_date, r.rate, r.created_by) for r in rows] == [
            (BASELINE_EFFECTIVE_DATE, Decimal("20.00"), SYSTEM_BASELINE),
            (date(2024, 6, 1), Decimal("30.00"), "admin"),
        ]
        assert [r.is_baseline for r in rows] == [True, False]
        assert update.history.rate == Decimal("30.00")
        assert employee.employee_rate == Decimal("30.00")
        assert await service.current_rate(employee.user_id, date(2024, 5, 31)) == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_future_rate_leaves_cached_rate(self, session, employee):
        await RateService(session).set_rate(
            employee.user_id, Decimal("35.00"), date(2024, 9, 1), actor="admin", today=TODAY
        )

        assert employee.employee_rate == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_baseline_is_pinned_once(self, session, employee):
        service = RateService(session)
        await service.set_rate(
            employee.user_id, Decimal("25.00"), date(2024, 5, 1), actor="admin", today=TODAY
        )
        await service.set_rate(
            employee.user_id, Decimal("30.00"), date(2024, 6, 1), actor="admin", today=TODAY
        )

        rows = await history_for(session, employee)
        assert [r.created_by for r in rows].count(SYSTEM_BASELINE) == 1
        assert rows[0].rate == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_duplicate_effective_date(self, session, employee):
        service = RateService(session)
        await service.set_rate(
            employee.user_id, Decimal("30.00"), date(2024, 6, 1), actor="admin", today=TODAY
        )

        with pytest.raises(DuplicateEffectiveDate) as exc_info:
            await service.set_rate(
                employee.user_id, Decimal("31.00"), date(2024, 6, 1), actor="admin", today=TODAY
            )

        assert exc_info.value.effective_date == date(2024, 6, 1)
        assert exc_info.value.user_id == employee.user_id

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_hits_constraint(self, session, employee, monkeypatch):
        """A row written after the existence check still maps to DuplicateEffectiveDate."""
        session.add(
            RateHistory(
                user_id=employee.user_id,
                rate=Decimal("30.00"),
                effective_date=date(2024, 6, 1),
                created_by="other-session",
            )
        )
        await session.flush()
        service = RateService(session)

        async def not_seen(user_id, effective_date):
            return False

        monkeypatch.setattr(service, "_has_change_on", not_seen)

        with pytest.raises(DuplicateEffectiveDate) as exc_info:
            await service.set_rate(
                employee.user_id, Decimal("31.00"), date(2024, 6, 1), actor="admin", today=TODAY
            )

        assert exc_info.value.effective_date == date(2024, 6, 1)
        rates = [row.rate for row in await history_for(session, employee)]
        assert Decimal("31.00") not in rates
        assert Decimal("30.00") in rates

    @pytest.mark.asyncio
    async def test_negative_rate(self, session, employee):
        with pytest.raises(InvalidRate):
            await RateService(session).set_rate(
                employee.user_id, Decimal("-1"), date(2024, 6, 1), actor="admin", today=TODAY
            )

    @pytest.mark.asyncio
    async def test_unknown_user(self, session):
        with pytest.raises(UserNotFound):
            await RateService(session).set_rate(
                uuid4(), Decimal("30"), date(2024, 6, 1), actor="admin", today=TODAY
            )

    @pytest.mark.asyncio
    async def test_recomputes_projects_of_user(self, session, employee, project, add_entry):
        await add_entry(employee, project, date(2024, 6, 10), 120)

        update = await RateService(session).set_rate(
            employee.user_id, Decimal("30.00"), date(2024, 6, 1), actor="admin", today=TODAY
        )

        assert set(update.fanout.recomputed) == {project.project_id}
        assert project.q1_spent == Decimal("60")


class TestDeleteFutureRate:
    """Only changes that have not taken effect can be removed."""

    @pytest.mark.asyncio
    async def test_delete_scheduled_change(self, session, employee, project, add_entry):
        await add_entry(employee, project, date(2024, 9, 10), 60)
        service = RateService(session)
        update = await service.set_rate(
            employee.user_id, Decimal("50.00"), date(2024, 9, 1), actor="admin", today=TODAY
        )
        assert project.q2_spent == Decimal("50")

        fanout = await service.delete_future_rate(
            update.history.rate_history_id, employee.user_id, today=TODAY
        )

        assert fanout.complete
        assert project.q2_spent == Decimal("20")
        rates = [r.rate for r in await history_for(session, employee)]
        assert Decimal("50.00") not in rates

    @pytest.mark.asyncio
    @pytest.mark.parametrize("effective_date", [date(2024, 6, 1), TODAY])
    async def test_cannot_delete_effective_change(self, session, employee, effective_date):
        service = RateService(session)
        update = await service.set_rate(
            employee.user_id, Decimal("30.00"), effective_date, actor="admin", today=TODAY
        )

        with pytest.raises(RateAlreadyEffective) as exc_info:
            await service.delete_future_rate(
                update.history.rate_history_id, employee.user_id, today=TODAY
            )

        assert exc_info.value.effective_date == effective_date
        assert exc_info.value.today == TODAY

    @pytest.mark.asyncio
    async def test_wrong_user(self, session, employee, second_employee):
        service = RateService(session)
        update = await service.set_rate(
            employee.user_id, Decimal("30.00"), date(2024, 9, 1), actor="admin", today=TODAY
        )

        with pytest.raises(RateHistoryNotFound):
            await service.delete_future_rate(
                update.history.rate_history_id, second_employee.user_id, today=TODAY
            )

    @pytest.mark.asyncio
    async def test_unknown_id(self, session):
        with pytest.raises(RateHistoryNotFound):
            await RateService(session).delete_future_rate(uuid4(), today=TODAY)


class TestBackfill:
    @pytest.mark.asyncio
    async def test_backfills_users_without_history(
        self, session, employee, second_employee, project, add_entry
    ):
        second_employee.created_at = datetime(2023, 3, 15, 12, 0, tzinfo=timezone.utc)
        service = RateService(session)
        await service.set_rate(
            employee.user_id, Decimal("30.00"), date(2024, 6, 1), actor="admin", today=TODAY
        )
        await add_entry(second_employee, project, date(2024, 5, 1), 60)

        result = await service.backfill_rate_history()

        assert result.created == 1
        rows = await history_for(session, second_employee)
        assert [(r.effective_date, r.rate, r.created_by) for r in rows] == [
            (date(2023, 3, 15), Decimal("40.00"), SYSTEM_MIGRATION),
        ]
        assert project.project_id in result.fanout.recomputed
        assert project.q1_spent == Decimal("40")

    @pytest.mark.asyncio
    async def test_backfill_is_noop_when_history_exists(self, session, employee):
        await RateService(session).set_rate(
            employee.user_id, Decimal("30.00"), date(2024, 6, 1), actor="admin", today=TODAY
        )

        result = await RateService(session).backfill_rate_history()

        assert result.created == 0


class TestListRateHistory:
    @pytest.mark.asyncio
    async def test_most_recent_first(self, session, employee):
        service = RateService(session)
        await service.set_rate(
            employee.user_id, Decimal("25.00"), date(2024, 5, 1), actor="admin", today=TODAY
        )
        await service.set_rate(
            employee.user_id, Decimal("30.00"), date(2024, 6, 1), actor="admin", today=TODAY
        )

        rows = await service.list_rate_history(employee.user_id, limit=2)

        assert [r.effective_date for r in rows] == [date(2024, 6, 1), date(2024, 5, 1)]

    @pytest.mark.asyncio
    async def test_unknown_user(self, session):
        with pytest.raises(UserNotFound):
            await RateService(session).list_rate_history(uuid4())

