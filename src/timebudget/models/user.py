"""User and rate history models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timebudget.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from timebudget.models.project import ProjectPermission, ProjectUser
    from timebudget.models.time_entry import TimeEntry


class UserRole(str, Enum):
    """User role values."""

    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"


class User(Base, UpdatedAtMixin):
    """Application user (administrator or employee)."""

    __tablename__ = "app_user"

    user_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, nullable=False, default=UserRole.EMPLOYEE.value)
    # Latest rate already in effect; historical resolution goes through RateHistory.
    employee_rate: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("role IN ('ADMIN', 'EMPLOYEE')", name="app_user_role_check"),
        CheckConstraint("employee_rate >= 0", name="app_user_rate_non_negative"),
    )

    # Relationships
    rate_history: Mapped[list[RateHistory]] = relationship(
        back_populates="user",
        passive_deletes=True,
        order_by="RateHistory.effective_date.desc()",
    )
    time_entries: Mapped[list[TimeEntry]] = relationship(
        back_populates="user",
        passive_deletes=True,
    )
    project_assignments: Mapped[list[ProjectUser]] = relationship(
        back_populates="user",
        passive_deletes=True,
    )
    project_permissions: Mapped[list[ProjectPermission]] = relationship(
        back_populates="user",
        passive_deletes=True,
    )

    @property
    def is_admin(self) -> bool:
        """Check if the user is an administrator."""
        return self.role == UserRole.ADMIN.value


# Effective date of the row that pins a user's rate from before any recorded change.
BASELINE_EFFECTIVE_DATE = date.min


class RateHistory(Base, TimestampMixin):
    """Effective-dated hourly rate for a user.

    At most one row per (user, effective_date); rate resolution relies on it.
    """

    __tablename__ = "rate_history"

    rate_history_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_by: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "effective_date", name="rate_history_user_date_unique"),
        CheckConstraint("rate >= 0", name="rate_history_rate_non_negative"),
        Index("ix_rate_history_user_effective", "user_id", "effective_date"),
    )

    # Relationships
    user: Mapped[User] = relationship(back_populates="rate_history")

    @property
    def is_baseline(self) -> bool:
        """Whether this row pins the rate in force before the first change."""
        return self.effective_date == BASELINE_EFFECTIVE_DATE

    def is_effective_on(self, as_of_date: date) -> bool:
        """Check if this rate change has taken effect on a given date."""
        return self.effective_date <= as_of_date
