"""Project permission endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status
from pydantic import BaseModel

from timebudget.api.dependencies import ActorId, DbSession
from timebudget.api.schemas import (
    ErrorResponse,
    PermissionCheckResponse,
    PermissionGrant,
    PermissionResponse,
    RevokeResponse,
)
from timebudget.models import PermissionType
from timebudget.services.permission_service import PermissionService

router = APIRouter(prefix="/projects/{project_id}", tags=["permissions"])


class AssignmentCreate(BaseModel):
    user_id: UUID


@router.post(
    "/permissions",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def grant_permission(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
    payload: PermissionGrant,
) -> PermissionResponse:
    permissions = PermissionService(db)
    await permissions.require_admin(actor_id)
    grant = await permissions.grant(
        payload.user_id, project_id, payload.permission, granted_by=str(actor_id)
    )
    await db.commit()
    return PermissionResponse.model_validate(grant)


@router.get(
    "/permissions",
    response_model=list[PermissionResponse],
    responses={403: {"model": ErrorResponse}},
)
async def list_permissions(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
) -> list[PermissionResponse]:
    permissions = PermissionService(db)
    await permissions.require_admin(actor_id)
    grants = await permissions.list_grants(project_id)
    return [PermissionResponse.model_validate(g) for g in grants]


@router.get(
    "/permissions/summary",
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def permission_summary(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
) -> dict[str, int]:
    """Number of grants per permission type."""
    permissions = PermissionService(db)
    await permissions.require_admin(actor_id)
    return await permissions.summary(project_id)


@router.get(
    "/permissions/check",
    response_model=PermissionCheckResponse,
    responses={403: {"model": ErrorResponse}},
)
async def check_permission(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
    user_id: UUID | None = None,
    permission: Annotated[PermissionType | None, Query()] = None,
) -> PermissionCheckResponse:
    """Whether a user (the caller by default) holds a permission."""
    permissions = PermissionService(db)
    user_id = user_id or actor_id
    await permissions.require_self_or_admin(actor_id, user_id)
    allowed = await permissions.has_permission(user_id, project_id, permission)
    return PermissionCheckResponse(
        user_id=user_id,
        project_id=project_id,
        permission=permission.value if permission else None,
        allowed=allowed,
    )


@router.delete(
    "/permissions/{user_id}",
    response_model=RevokeResponse,
    responses={403: {"model": ErrorResponse}},
)
async def revoke_permission(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
    user_id: Annotated[UUID, Path()],
    permission: Annotated[PermissionType | None, Query()] = None,
) -> RevokeResponse:
    """Revoke one permission, or every permission when none is given."""
    permissions = PermissionService(db)
    await permissions.require_admin(actor_id)
    removed = await permissions.revoke(user_id, project_id, permission)
    await db.commit()
    return RevokeResponse(removed=removed)


@router.post(
    "/assignments",
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def assign_user(
    db: DbSession,
    actor_id: ActorId,
    project_id: Annotated[UUID, Path()],
    payload: AssignmentCreate,
) -> dict[str, str]:
    """Assign a user to a project, giving them basic access."""
    permissions = PermissionService(db)
    await permissions.require_admin(actor_id)
    assignment = await permissions.assign(payload.user_id, project_id)
    await db.commit()
    return {
        "project_user_id": str(assignment.project_user_id),
        "user_id": str(assignment.user_id),
        "project_id": str(assignment.project_id),
    }
