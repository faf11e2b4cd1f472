"""Time entry endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.api.dependencies import ActorId, DbSession
from timebudget.api.schemas import (
    ErrorResponse,
    TimeEntryCreate,
    TimeEntryListResponse,
    TimeEntryResponse,
    TimeEntryUpdate,
    TimerStart,
)
from timebudget.models import TimeEntry
from timebudget.services.permission_service import PermissionService
from timebudget.services.time_entry_service import TimeEntryService

router = APIRouter(prefix="/time-entries", tags=["time-entries"])


async def _owned_entry(db: AsyncSession, actor_id: UUID, time_entry_id: UUID) -> TimeEntry:
    entry = await TimeEntryService(db).get_entry(time_entry_id)
    await PermissionService(db).require_self_or_admin(actor_id, entry.user_id)
    return entry


@router.post(
    "",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def create_time_entry(
    db: DbSession,
    actor_id: ActorId,
    payload: TimeEntryCreate,
) -> TimeEntryResponse:
    """Log a completed block of work.

    Entries are logged for the caller unless an administrator names
    another user.
    """
    user_id = payload.user_id or actor_id
    permissions = PermissionService(db)
    await permissions.require_self_or_admin(actor_id, user_id)
    await permissions.require(actor_id, payload.project_id)
    entry = await TimeEntryService(db).create_manual_entry(
        user_id=user_id,
        project_id=payload.project_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        duration=payload.duration,
        description=payload.description,
        work_date=payload.work_date,
    )
    await db.commit()
    return TimeEntryResponse.model_validate(entry)


@router.post(
    "/timer",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}},
)
async def start_timer(
    db: DbSession,
    actor_id: ActorId,
    payload: TimerStart,
) -> TimeEntryResponse:
    await PermissionService(db).require(actor_id, payload.project_id)
    entry = await TimeEntryService(db).start_timer(
        user_id=actor_id,
        project_id=payload.project_id,
        description=payload.description,
    )
    await db.commit()
    return TimeEntryResponse.model_validate(entry)


@router.post(
    "/{time_entry_id}/stop",
    response_model=TimeEntryResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def stop_timer(
    db: DbSession,
    actor_id: ActorId,
    time_entry_id: Annotated[UUID, Path()],
) -> TimeEntryResponse:
    await _owned_entry(db, actor_id, time_entry_id)
    entry = await TimeEntryService(db).stop_timer(time_entry_id)
    await db.commit()
    return TimeEntryResponse.model_validate(entry)


@router.get(
    "",
    response_model=TimeEntryListResponse,
    responses={403: {"model": ErrorResponse}},
)
async def list_time_entries(
    db: DbSession,
    actor_id: ActorId,
    user_id: UUID | None = None,
    project_id: UUID | None = None,
    start: Annotated[date | None, Query()] = None,
    end: Annotated[date | None, Query()] = None,
) -> TimeEntryListResponse:
    """List entries for the calling user (admins may ask for anyone)."""
    user_id = user_id or actor_id
    await PermissionService(db).require_self_or_admin(actor_id, user_id)
    entries = await TimeEntryService(db).list_entries(
        user_id=user_id, project_id=project_id, start=start, end=end
    )
    return TimeEntryListResponse(
        items=[TimeEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.patch(
    "/{time_entry_id}",
    response_model=TimeEntryResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_time_entry(
    db: DbSession,
    actor_id: ActorId,
    time_entry_id: Annotated[UUID, Path()],
    payload: TimeEntryUpdate,
) -> TimeEntryResponse:
    """Update an entry; spend is recomputed for the old and new project."""
    await _owned_entry(db, actor_id, time_entry_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("project_id") is not None:
        await PermissionService(db).require(actor_id, changes["project_id"])
    entry = await TimeEntryService(db).update_entry(time_entry_id, changes)
    await db.commit()
    return TimeEntryResponse.model_validate(entry)


@router.delete(
    "/{time_entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_time_entry(
    db: DbSession,
    actor_id: ActorId,
    time_entry_id: Annotated[UUID, Path()],
) -> Response:
    await _owned_entry(db, actor_id, time_entry_id)
    await TimeEntryService(db).delete_entry(time_entry_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
