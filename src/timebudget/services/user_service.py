"""User onboarding."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.errors import EmailAlreadyRegistered, InvalidRate
from timebudget.models import RateHistory, User, UserRole

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_user(
        self,
        email: str,
        name: str | None = None,
        role: UserRole = UserRole.EMPLOYEE,
        employee_rate: Decimal = Decimal("0"),
        actor: str = "SYSTEM",
        today: date | None = None,
    ) -> User:
        """Create a user and record their starting rate as history."""
        if employee_rate < 0:
            raise InvalidRate(employee_rate)

        taken = await self.session.scalar(select(User.user_id).where(User.email == email))
        if taken is not None:
            raise EmailAlreadyRegistered(email)

        user = User(
            email=email,
            name=name,
            role=role.value,
            employee_rate=employee_rate,
            active=True,
        )
        self.session.add(user)
        await self.session.flush()

        self.session.add(
            RateHistory(
                user_id=user.user_id,
                rate=employee_rate,
                effective_date=today or date.today(),
                created_by=actor,
            )
        )
        await self.session.flush()

        logger.info("Created %s user %s at rate %s", role.value, user.user_id, employee_rate)
        return user
