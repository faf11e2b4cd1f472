"""User and rate history endpoints."""

from datetime import date
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from timebudget.api.dependencies import ActorId, DbSession
from timebudget.api.schemas import (
    ErrorResponse,
    FanOutResponse,
    RateChangeCreate,
    RateChangeResponse,
    RateHistoryResponse,
    RatePeriodResponse,
    UserCreate,
    UserResponse,
)
from timebudget.services.permission_service import PermissionService
from timebudget.services.rate_service import RateService
from timebudget.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


# ============================================================================
# Users
# ============================================================================


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_user(
    db: DbSession,
    actor_id: ActorId,
    payload: UserCreate,
) -> UserResponse:
    """Create a user; the starting rate is recorded as rate history."""
    await PermissionService(db).require_admin(actor_id)
    user = await UserService(db).create_user(
        email=payload.email,
        name=payload.name,
        role=payload.role,
        employee_rate=payload.employee_rate,
        actor=str(actor_id),
    )
    await db.commit()
    return UserResponse.model_validate(user)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_user(
    db: DbSession,
    actor_id: ActorId,
    user_id: Annotated[UUID, Path()],
) -> UserResponse:
    permissions = PermissionService(db)
    user = await permissions.get_user(user_id)
    await permissions.require_self_or_admin(actor_id, user_id)
    return UserResponse.model_validate(user)


# ============================================================================
# Rate history
# ============================================================================


@router.post(
    "/{user_id}/rates",
    response_model=RateChangeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def set_rate(
    db: DbSession,
    actor_id: ActorId,
    user_id: Annotated[UUID, Path()],
    payload: RateChangeCreate,
) -> RateChangeResponse:
    """Record a rate change and recompute every project the user worked on.

    Projects that fail to recompute are listed under ``recompute.failed``;
    the rate change is kept regardless.
    """
    await PermissionService(db).require_admin(actor_id)
    update = await RateService(db).set_rate(
        user_id=user_id,
        new_rate=payload.rate,
        effective_date=payload.effective_date,
        actor=str(actor_id),
    )
    user = await PermissionService(db).get_user(user_id)
    response = RateChangeResponse(
        history=RateHistoryResponse.model_validate(update.history),
        employee_rate=user.employee_rate,
        recompute=FanOutResponse.from_result(update.fanout),
    )
    await db.commit()
    return response


@router.get(
    "/{user_id}/rates",
    response_model=list[RateHistoryResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def list_rate_history(
    db: DbSession,
    actor_id: ActorId,
    user_id: Annotated[UUID, Path()],
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> list[RateHistoryResponse]:
    """Rate changes, most recent first."""
    await PermissionService(db).require_self_or_admin(actor_id, user_id)
    history = await RateService(db).list_rate_history(user_id, limit=limit)
    return [RateHistoryResponse.model_validate(h) for h in history]


@router.get(
    "/{user_id}/rates/effective",
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def effective_rate(
    db: DbSession,
    actor_id: ActorId,
    user_id: Annotated[UUID, Path()],
    on: Annotated[date | None, Query()] = None,
) -> dict[str, str]:
    """Rate in effect on a date (today by default)."""
    await PermissionService(db).require_self_or_admin(actor_id, user_id)
    on = on or date.today()
    rate: Decimal = await RateService(db).current_rate(user_id, today=on)
    return {"user_id": str(user_id), "date": on.isoformat(), "rate": str(rate)}


@router.get(
    "/{user_id}/rates/periods",
    response_model=list[RatePeriodResponse],
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def rate_periods(
    db: DbSession,
    actor_id: ActorId,
    user_id: Annotated[UUID, Path()],
    start: Annotated[date, Query()],
    end: Annotated[date, Query()],
) -> list[RatePeriodResponse]:
    """Rate windows covering ``[start, end]``."""
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must not be before start",
        )
    await PermissionService(db).require_self_or_admin(actor_id, user_id)
    periods = await RateService(db).resolver.rate_periods(user_id, start, end)
    return [RatePeriodResponse(rate=p.rate, start=p.start, end=p.end) for p in periods]


@router.delete(
    "/{user_id}/rates/{rate_history_id}",
    response_model=FanOutResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def delete_future_rate(
    db: DbSession,
    actor_id: ActorId,
    user_id: Annotated[UUID, Path()],
    rate_history_id: Annotated[UUID, Path()],
) -> FanOutResponse:
    """Delete a rate change that has not taken effect yet."""
    await PermissionService(db).require_admin(actor_id)
    result = await RateService(db).delete_future_rate(rate_history_id, user_id=user_id)
    await db.commit()
    return FanOutResponse.from_result(result)
