"""SQLAlchemy ORM models."""

from timebudget.models.base import Base, TimestampMixin, UpdatedAtMixin
from timebudget.models.project import (
    QUARTERS,
    PermissionType,
    Project,
    ProjectPermission,
    ProjectUser,
)
from timebudget.models.time_entry import TimeEntry, hours_for_minutes
from timebudget.models.user import RateHistory, User, UserRole

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "QUARTERS",
    "PermissionType",
    "Project",
    "ProjectPermission",
    "ProjectUser",
    "TimeEntry",
    "hours_for_minutes",
    "RateHistory",
    "User",
    "UserRole",
]
