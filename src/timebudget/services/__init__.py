"""Timebudget services."""

from timebudget.services.budget_service import BudgetService
from timebudget.services.permission_service import PermissionService
from timebudget.services.rate_service import RateService
from timebudget.services.report_service import ReportService
from timebudget.services.spending_triggers import EntryRef, SpendingTriggers
from timebudget.services.time_entry_service import TimeEntryService
from timebudget.services.user_service import UserService

__all__ = [
    "BudgetService",
    "PermissionService",
    "RateService",
    "ReportService",
    "EntryRef",
    "SpendingTriggers",
    "TimeEntryService",
    "UserService",
]
