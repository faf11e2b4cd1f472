"""Tests for historical rate resolution."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from timebudget.calculators.rate_resolver import RateResolver, RateTimeline
from timebudget.calculators.types import RateChange, RatePeriod
from timebudget.errors import UserNotFound
from timebudget.models import RateHistory

D1 = date(2024, 1, 1)
D2 = date(2024, 6, 1)
D3 = date(2025, 1, 1)


@pytest.fixture
def timeline() -> RateTimeline:
    return RateTimeline(
        Decimal("15.00"),
        [
            RateChange(D3, Decimal("40.00")),
            RateChange(D1, Decimal("20.00")),
            RateChange(D2, Decimal("30.00")),
        ],
    )


class TestRateTimeline:
    """Tests for the in-memory timeline."""

    def test_baseline_before_first_change(self, timeline):
        assert timeline.rate_on(D1 - timedelta(days=1)) == Decimal("15.00")

    def test_change_applies_from_its_effective_date(self, timeline):
        assert timeline.rate_on(D1) == Decimal("20.00")
        assert timeline.rate_on(D2 - timedelta(days=1)) == Decimal("20.00")
        assert timeline.rate_on(D2) == Decimal("30.00")
        assert timeline.rate_on(D3 - timedelta(days=1)) == Decimal("30.00")
        assert timeline.rate_on(D3) == Decimal("40.00")
        assert timeline.rate_on(date(2030, 1, 1)) == Decimal("40.00")

    def test_no_history_uses_baseline(self):
        assert RateTimeline(Decimal("12.50")).rate_on(date(2024, 5, 1)) == Decimal("12.50")

    def test_duplicate_dates_rejected(self):
        with pytest.raises(ValueError):
            RateTimeline(
                Decimal("10"),
                [RateChange(D1, Decimal("20")), RateChange(D1, Decimal("25"))],
            )

    def test_periods_cover_range(self, timeline):
        periods = timeline.periods(date(2023, 12, 1), date(2024, 12, 31))

        assert periods == [
            RatePeriod(Decimal("15.00"), date(2023, 12, 1), D1),
            RatePeriod(Decimal("20.00"), D1, D2),
            RatePeriod(Decimal("30.00"), D2, None),
        ]

    def test_periods_start_inside_a_window(self, timeline):
        periods = timeline.periods(date(2024, 7, 1), date(2024, 7, 31))

        assert periods == [RatePeriod(Decimal("30.00"), date(2024, 7, 1), None)]

    def test_periods_reject_inverted_range(self, timeline):
        with pytest.raises(ValueError):
            timeline.periods(D2, D1)

    def test_latest_effective_ignores_future_changes(self, timeline):
        assert timeline.latest_effective(date(2024, 12, 31)) == Decimal("30.00")

    @given(
        st.lists(
            st.tuples(
                st.dates(min_value=date(2000, 1, 1), max_value=date(2030, 12, 31)),
                st.integers(min_value=0, max_value=50000),
            ),
            unique_by=lambda pair: pair[0],
            max_size=12,
        ),
        st.dates(min_value=date(1999, 1, 1), max_value=date(2031, 12, 31)),
    )
    def test_rate_on_matches_linear_scan(self, changes, on_date):
        """The latest change on or before the date wins, else the baseline."""
        baseline = Decimal("7.00")
        timeline = RateTimeline(
            baseline,
            [RateChange(d, Decimal(cents) / 100) for d, cents in changes],
        )

        applicable = sorted((d, cents) for d, cents in changes if d <= on_date)
        expected = Decimal(applicable[-1][1]) / 100 if applicable else baseline
        assert timeline.rate_on(on_date) == expected


class TestRateResolver:
    """Tests for database-backed rate resolution."""

    @pytest.mark.asyncio
    async def test_falls_back_to_employee_rate(self, session, employee):
        """No history: the user's stored rate applies."""
        resolver = RateResolver(session)

        rate = await resolver.effective_rate(employee.user_id, date(2024, 5, 1))

        assert rate == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_latest_history_row_wins(self, session, employee):
        """Latest row with effective_date <= date is used."""
        for effective, rate in [(D1, "25.00"), (D2, "30.00"), (D3, "35.00")]:
            session.add(
                RateHistory(
                    user_id=employee.user_id,
                    rate=Decimal(rate),
                    effective_date=effective,
                    created_by="test",
                )
            )
        await session.flush()
        resolver = RateResolver(session)

        assert await resolver.effective_rate(employee.user_id, date(2023, 12, 31)) == Decimal("20.00")
        assert await resolver.effective_rate(employee.user_id, D1) == Decimal("25.00")
        assert await resolver.effective_rate(employee.user_id, date(2024, 8, 1)) == Decimal("30.00")
        assert await resolver.effective_rate(employee.user_id, D3) == Decimal("35.00")

    @pytest.mark.asyncio
    async def test_unknown_user(self, session):
        """Unknown user raises UserNotFound."""
        resolver = RateResolver(session)
        missing = uuid4()

        with pytest.raises(UserNotFound) as exc_info:
            await resolver.effective_rate(missing, date(2024, 5, 1))

        assert exc_info.value.entity_id == missing

    @pytest.mark.asyncio
    async def test_load_timelines_for_several_users(self, session, employee, second_employee):
        session.add(
            RateHistory(
                user_id=employee.user_id,
                rate=Decimal("22.00"),
                effective_date=D2,
                created_by="test",
            )
        )
        await session.flush()

        timelines = await RateResolver(session).load_timelines(
            [employee.user_id, second_employee.user_id]
        )

        assert timelines[employee.user_id].rate_on(D2) == Decimal("22.00")
        assert timelines[second_employee.user_id].rate_on(D2) == Decimal("40.00")

    @pytest.mark.asyncio
    async def test_load_timelines_unknown_user(self, session, employee):
        with pytest.raises(UserNotFound):
            await RateResolver(session).load_timelines([employee.user_id, uuid4()])

    @pytest.mark.asyncio
    async def test_rate_changes_most_recent_first(self, session, employee):
        for effective, rate in [(D1, "25.00"), (D3, "35.00"), (D2, "30.00")]:
            session.add(
                RateHistory(
                    user_id=employee.user_id,
                    rate=Decimal(rate),
                    effective_date=effective,
                    created_by="test",
                )
            )
        await session.flush()
        resolver = RateResolver(session)

        changes = await resolver.rate_changes(employee.user_id)
        limited = await resolver.rate_changes(employee.user_id, limit=1, until=D2)

        assert [c.effective_date for c in changes] == [D3, D2, D1]
        assert [c.effective_date for c in limited] == [D2]
