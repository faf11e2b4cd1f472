"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timebudget import __version__
from timebudget.api.routes import (
    health_router,
    permissions_router,
    projects_router,
    rates_router,
    reports_router,
    time_entries_router,
)
from timebudget.config import get_settings
from timebudget.database import dispose_db, init_db
from timebudget.errors import (
    BudgetExceedsTotal,
    DuplicateEffectiveDate,
    EmailAlreadyRegistered,
    InvalidBudget,
    InvalidRate,
    InvalidTimeEntry,
    NotFoundError,
    PermissionAlreadyGranted,
    PermissionDenied,
    RateAlreadyEffective,
    RecomputationFailure,
    TimeBudgetError,
    TimerAlreadyStopped,
)
from timebudget.logging_config import configure_logging

logger = logging.getLogger(__name__)

# Most specific first; the first matching class wins.
ERROR_STATUS: list[tuple[type[TimeBudgetError], int, str]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (DuplicateEffectiveDate, status.HTTP_409_CONFLICT, "DUPLICATE_EFFECTIVE_DATE"),
    (RateAlreadyEffective, status.HTTP_409_CONFLICT, "RATE_ALREADY_EFFECTIVE"),
    (PermissionAlreadyGranted, status.HTTP_409_CONFLICT, "PERMISSION_ALREADY_GRANTED"),
    (EmailAlreadyRegistered, status.HTTP_409_CONFLICT, "EMAIL_ALREADY_REGISTERED"),
    (TimerAlreadyStopped, status.HTTP_409_CONFLICT, "TIMER_ALREADY_STOPPED"),
    (BudgetExceedsTotal, status.HTTP_400_BAD_REQUEST, "BUDGET_EXCEEDS_TOTAL"),
    (InvalidBudget, status.HTTP_400_BAD_REQUEST, "INVALID_BUDGET"),
    (InvalidRate, status.HTTP_400_BAD_REQUEST, "INVALID_RATE"),
    (InvalidTimeEntry, status.HTTP_400_BAD_REQUEST, "INVALID_TIME_ENTRY"),
    (PermissionDenied, status.HTTP_403_FORBIDDEN, "PERMISSION_DENIED"),
    (RecomputationFailure, status.HTTP_503_SERVICE_UNAVAILABLE, "RECOMPUTATION_FAILED"),
]


def error_status(exc: TimeBudgetError) -> tuple[int, str]:
    for error_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, code
    return status.HTTP_400_BAD_REQUEST, "DOMAIN_ERROR"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging(get_settings().log_level)
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Timebudget API",
        description="Time tracking and project budgets with historical rate-aware spending",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(TimeBudgetError)
    async def domain_exception_handler(
        request: Request, exc: TimeBudgetError
    ) -> JSONResponse:
        """Map domain errors onto HTTP status codes."""
        status_code, code = error_status(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(rates_router, prefix="/api/v1")
    app.include_router(time_entries_router, prefix="/api/v1")
    app.include_router(projects_router, prefix="/api/v1")
    app.include_router(permissions_router, prefix="/api/v1")
    app.include_router(reports_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
