"""Project, assignment and permission models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timebudget.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from timebudget.models.time_entry import TimeEntry
    from timebudget.models.user import User

QUARTERS = (1, 2, 3, 4)


class PermissionType(str, Enum):
    """Per-project permission grants."""

    VIEW_REPORTS = "VIEW_REPORTS"
    EDIT_BUDGETS = "EDIT_BUDGETS"
    FULL_ACCESS = "FULL_ACCESS"


class Project(Base, UpdatedAtMixin):
    """Project with quarterly budgets and cached quarterly spend.

    The ``qN_spent`` columns are written only by the spending aggregator;
    time entries and rate history remain the source of truth.
    """

    __tablename__ = "project"

    project_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#3b82f6")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    total_budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    q1_budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    q2_budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    q3_budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    q4_budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    # Unrounded sums of hours * rate (hours carry 4 places, rates 2)
    q1_spent: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    q2_spent: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    q3_spent: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    q4_spent: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    # None when the cached totals cover every entry; otherwise the fiscal year they cover
    spent_fiscal_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    spent_recomputed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "total_budget >= 0 AND q1_budget >= 0 AND q2_budget >= 0 "
            "AND q3_budget >= 0 AND q4_budget >= 0",
            name="project_budgets_non_negative",
        ),
    )

    # Relationships
    time_entries: Mapped[list[TimeEntry]] = relationship(
        back_populates="project",
        passive_deletes=True,
    )
    assignments: Mapped[list[ProjectUser]] = relationship(
        back_populates="project",
        passive_deletes=True,
    )
    permissions: Mapped[list[ProjectPermission]] = relationship(
        back_populates="project",
        passive_deletes=True,
    )

    def quarter_budget(self, quarter: int) -> Decimal:
        """Budget allocated to a fiscal quarter (1-4)."""
        if quarter not in QUARTERS:
            raise ValueError(f"Invalid fiscal quarter: {quarter}")
        return getattr(self, f"q{quarter}_budget")

    def quarter_spent(self, quarter: int) -> Decimal:
        """Cached spend for a fiscal quarter (1-4)."""
        if quarter not in QUARTERS:
            raise ValueError(f"Invalid fiscal quarter: {quarter}")
        return getattr(self, f"q{quarter}_spent")

    @property
    def quarterly_budget_sum(self) -> Decimal:
        return sum((self.quarter_budget(q) for q in QUARTERS), Decimal("0"))

    @property
    def total_spent(self) -> Decimal:
        return sum((self.quarter_spent(q) for q in QUARTERS), Decimal("0"))


class ProjectUser(Base, TimestampMixin):
    """Assignment of a user to a project (basic access)."""

    __tablename__ = "project_user"

    project_user_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "project_id", name="project_user_unique"),
    )

    # Relationships
    user: Mapped[User] = relationship(back_populates="project_assignments")
    project: Mapped[Project] = relationship(back_populates="assignments")


class ProjectPermission(Base, TimestampMixin):
    """Permission granted to a user on a project."""

    __tablename__ = "project_permission"

    project_permission_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
    )
    permission: Mapped[str] = mapped_column(String, nullable=False)
    granted_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "project_id", "permission", name="project_permission_unique"
        ),
        CheckConstraint(
            "permission IN ('VIEW_REPORTS', 'EDIT_BUDGETS', 'FULL_ACCESS')",
            name="project_permission_type_check",
        ),
    )

    # Relationships
    user: Mapped[User] = relationship(back_populates="project_permissions")
    project: Mapped[Project] = relationship(back_populates="permissions")

    def grants(self, required: PermissionType) -> bool:
        """Check whether this grant satisfies a required permission."""
        return self.permission in (required.value, PermissionType.FULL_ACCESS.value)
