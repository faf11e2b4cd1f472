"""Time entry model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timebudget.models.base import Base, UpdatedAtMixin

if TYPE_CHECKING:
    from timebudget.models.project import Project
    from timebudget.models.user import User

HOURS_PRECISION = Decimal("0.0001")


def hours_for_minutes(duration: int) -> Decimal:
    """Convert a duration in minutes to stored hours (4 places, half up).

    The stored value is for display and filtering only; spend is priced
    from ``duration``.
    """
    if duration < 0:
        raise ValueError(f"Duration must be non-negative, got {duration}")
    return (Decimal(duration) / Decimal(60)).quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP)


class TimeEntry(Base, UpdatedAtMixin):
    """Hours worked by a user on a project.

    ``hours`` always equals ``hours_for_minutes(duration)``; use
    ``set_duration`` rather than assigning either column directly.
    """

    __tablename__ = "time_entry"

    time_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hours: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False, default=Decimal("0"))

    __table_args__ = (
        CheckConstraint("duration >= 0", name="time_entry_duration_non_negative"),
        CheckConstraint(
            "end_time IS NULL OR end_time >= start_time",
            name="time_entry_times_check",
        ),
        Index("ix_time_entry_project_date", "project_id", "work_date"),
        Index("ix_time_entry_user", "user_id"),
    )

    # Relationships
    user: Mapped[User] = relationship(back_populates="time_entries")
    project: Mapped[Project] = relationship(back_populates="time_entries")

    @property
    def is_running(self) -> bool:
        """Check if the entry is an open timer."""
        return self.end_time is None

    def set_duration(self, duration: int) -> None:
        """Set duration in minutes and the derived hours together."""
        self.duration = duration
        self.hours = hours_for_minutes(duration)
