"""API routes."""

from timebudget.api.routes.health import router as health_router
from timebudget.api.routes.permissions import router as permissions_router
from timebudget.api.routes.projects import router as projects_router
from timebudget.api.routes.rates import router as rates_router
from timebudget.api.routes.reports import router as reports_router
from timebudget.api.routes.time_entries import router as time_entries_router

__all__ = [
    "health_router",
    "permissions_router",
    "projects_router",
    "rates_router",
    "reports_router",
    "time_entries_router",
]
