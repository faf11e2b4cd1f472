"""Domain exceptions."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID


class TimeBudgetError(Exception):
    """Base class for all domain errors."""


class NotFoundError(TimeBudgetError):
    """Raised when a referenced record does not exist."""

    entity = "record"

    def __init__(self, entity_id: UUID):
        self.entity_id = entity_id
        super().__init__(f"{self.entity.capitalize()} {entity_id} not found")


class UserNotFound(NotFoundError):
    entity = "user"


class ProjectNotFound(NotFoundError):
    entity = "project"


class TimeEntryNotFound(NotFoundError):
    entity = "time entry"


class RateHistoryNotFound(NotFoundError):
    entity = "rate history entry"


class DuplicateEffectiveDate(TimeBudgetError):
    """Raised when a user already has a rate change on the given date."""

    def __init__(self, user_id: UUID, effective_date: date):
        self.user_id = user_id
        self.effective_date = effective_date
        super().__init__(
            f"A rate change already exists for user {user_id} on {effective_date}; "
            "choose a different date"
        )


class RateAlreadyEffective(TimeBudgetError):
    """Raised when deleting a rate change that has already taken effect."""

    def __init__(self, rate_history_id: UUID, effective_date: date, today: date):
        self.rate_history_id = rate_history_id
        self.effective_date = effective_date
        self.today = today
        super().__init__(
            f"Rate change {rate_history_id} took effect on {effective_date} "
            f"(today is {today}); only future rate changes can be deleted"
        )


class InvalidRate(TimeBudgetError):
    """Raised for negative or malformed rates."""

    def __init__(self, rate: Decimal):
        self.rate = rate
        super().__init__(f"Rate must be non-negative, got {rate}")


class BudgetExceedsTotal(TimeBudgetError):
    """Raised when quarterly budgets add up to more than the total budget."""

    def __init__(self, quarterly_sum: Decimal, total_budget: Decimal):
        self.quarterly_sum = quarterly_sum
        self.total_budget = total_budget
        super().__init__(
            f"Quarterly budgets sum to {quarterly_sum}, "
            f"which exceeds the total budget of {total_budget}"
        )


class InvalidBudget(TimeBudgetError):
    """Raised for negative budget amounts."""

    def __init__(self, field_name: str, amount: Decimal):
        self.field_name = field_name
        self.amount = amount
        super().__init__(f"{field_name} must be non-negative, got {amount}")


class RecomputationFailure(TimeBudgetError):
    """Raised when a project's spending could not be recomputed.

    The cached totals stay stale until the next successful recompute.
    """

    def __init__(self, project_id: UUID, reason: str):
        self.project_id = project_id
        self.reason = reason
        super().__init__(f"Spending recomputation failed for project {project_id}: {reason}")


class PermissionDenied(TimeBudgetError):
    """Raised when the permission gate refuses an action."""

    def __init__(self, user_id: UUID, project_id: UUID | None, required: str):
        self.user_id = user_id
        self.project_id = project_id
        self.required = required
        target = f"project {project_id}" if project_id else "this action"
        super().__init__(f"User {user_id} lacks {required} on {target}")


class PermissionAlreadyGranted(TimeBudgetError):
    """Raised when granting a permission the user already holds."""

    def __init__(self, user_id: UUID, project_id: UUID, permission: str):
        self.user_id = user_id
        self.project_id = project_id
        self.permission = permission
        super().__init__(
            f"User {user_id} already has {permission} on project {project_id}"
        )


class InvalidTimeEntry(TimeBudgetError):
    """Raised when a time entry's times or duration are inconsistent."""


class TimerAlreadyStopped(TimeBudgetError):
    """Raised when stopping a timer that has already ended."""

    def __init__(self, time_entry_id: UUID):
        self.time_entry_id = time_entry_id
        super().__init__(f"Time entry {time_entry_id} is already stopped")


class EmailAlreadyRegistered(TimeBudgetError):
    """Raised when creating a user with an email that is taken."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"A user with email {email} already exists")
