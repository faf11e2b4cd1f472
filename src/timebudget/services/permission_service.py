"""Permission gate for project-scoped actions."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.errors import (
    PermissionAlreadyGranted,
    PermissionDenied,
    ProjectNotFound,
    UserNotFound,
)
from timebudget.models import (
    PermissionType,
    Project,
    ProjectPermission,
    ProjectUser,
    User,
)

logger = logging.getLogger(__name__)

ADMIN_ACCESS = "ADMIN"
PROJECT_ACCESS = "PROJECT_ACCESS"


class PermissionService:
    """Answers and manages per-project permission questions.

    Rules:
    - Inactive or unknown users have no permissions
    - Administrators pass every check
    - FULL_ACCESS implies VIEW_REPORTS and EDIT_BUDGETS
    - Being assigned to a project, or holding any grant on it, gives basic
      access (``required=None``)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: UUID) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    async def has_permission(
        self,
        user_id: UUID,
        project_id: UUID,
        required: PermissionType | None = None,
    ) -> bool:
        """Check whether a user may act on a project."""
        user = await self.session.get(User, user_id)
        if user is None or not user.active:
            return False
        if user.is_admin:
            return True

        if required is None:
            assigned = await self.session.scalar(
                select(func.count())
                .select_from(ProjectUser)
                .where(ProjectUser.user_id == user_id, ProjectUser.project_id == project_id)
            )
            if assigned:
                return True
            granted = await self.session.scalar(
                select(func.count())
                .select_from(ProjectPermission)
                .where(
                    ProjectPermission.user_id == user_id,
                    ProjectPermission.project_id == project_id,
                )
            )
            return bool(granted)

        granted = await self.session.scalar(
            select(func.count())
            .select_from(ProjectPermission)
            .where(
                ProjectPermission.user_id == user_id,
                ProjectPermission.project_id == project_id,
                ProjectPermission.permission.in_(
                    [required.value, PermissionType.FULL_ACCESS.value]
                ),
            )
        )
        return bool(granted)

    async def require(
        self,
        user_id: UUID,
        project_id: UUID,
        required: PermissionType | None = None,
    ) -> None:
        """Raise PermissionDenied unless the user holds the permission."""
        if not await self.has_permission(user_id, project_id, required):
            raise PermissionDenied(
                user_id, project_id, required.value if required else PROJECT_ACCESS
            )

    async def require_admin(self, user_id: UUID) -> User:
        user = await self.session.get(User, user_id)
        if user is None or not user.active or not user.is_admin:
            raise PermissionDenied(user_id, None, ADMIN_ACCESS)
        return user

    async def require_self_or_admin(self, actor_id: UUID, user_id: UUID) -> None:
        """Allow users to act on their own records; admins on anyone's."""
        if actor_id == user_id:
            actor = await self.session.get(User, actor_id)
            if actor is not None and actor.active:
                return
        await self.require_admin(actor_id)

    async def grant(
        self,
        user_id: UUID,
        project_id: UUID,
        permission: PermissionType,
        granted_by: str | None = None,
    ) -> ProjectPermission:
        """Grant a permission on a project.

        Raises:
            UserNotFound / ProjectNotFound: unknown ids
            PermissionAlreadyGranted: the exact grant exists
        """
        await self.get_user(user_id)
        if await self.session.get(Project, project_id) is None:
            raise ProjectNotFound(project_id)

        existing = await self.session.scalar(
            select(ProjectPermission).where(
                ProjectPermission.user_id == user_id,
                ProjectPermission.project_id == project_id,
                ProjectPermission.permission == permission.value,
            )
        )
        if existing is not None:
            raise PermissionAlreadyGranted(user_id, project_id, permission.value)

        grant = ProjectPermission(
            user_id=user_id,
            project_id=project_id,
            permission=permission.value,
            granted_by=granted_by,
        )
        self.session.add(grant)
        await self.session.flush()

        logger.info(
            "Granted %s on project %s to user %s (by %s)",
            permission.value,
            project_id,
            user_id,
            granted_by,
        )
        return grant

    async def revoke(
        self,
        user_id: UUID,
        project_id: UUID,
        permission: PermissionType | None = None,
    ) -> int:
        """Revoke one permission, or all of them when none is given.

        Returns the number of grants removed.
        """
        stmt = delete(ProjectPermission).where(
            ProjectPermission.user_id == user_id,
            ProjectPermission.project_id == project_id,
        )
        if permission is not None:
            stmt = stmt.where(ProjectPermission.permission == permission.value)

        result = await self.session.execute(stmt)
        removed = result.rowcount or 0
        logger.info(
            "Revoked %d permission(s) on project %s from user %s",
            removed,
            project_id,
            user_id,
        )
        return removed

    async def accessible_projects(
        self,
        user_id: UUID,
        required: PermissionType | None = None,
    ) -> list[Project]:
        """Active projects the user can act on, ordered by name."""
        user = await self.session.get(User, user_id)
        if user is None or not user.active:
            return []

        query = select(Project).where(Project.active.is_(True)).order_by(Project.name)
        if user.is_admin:
            result = await self.session.execute(query)
            return list(result.scalars().all())

        if required is None:
            granted_ids = select(ProjectPermission.project_id).where(
                ProjectPermission.user_id == user_id
            )
            assigned_ids = select(ProjectUser.project_id).where(ProjectUser.user_id == user_id)
            query = query.where(
                or_(Project.project_id.in_(granted_ids), Project.project_id.in_(assigned_ids))
            )
        else:
            granted_ids = select(ProjectPermission.project_id).where(
                ProjectPermission.user_id == user_id,
                ProjectPermission.permission.in_(
                    [required.value, PermissionType.FULL_ACCESS.value]
                ),
            )
            query = query.where(Project.project_id.in_(granted_ids))

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_grants(self, project_id: UUID) -> list[ProjectPermission]:
        result = await self.session.execute(
            select(ProjectPermission)
            .where(ProjectPermission.project_id == project_id)
            .order_by(ProjectPermission.created_at)
        )
        return list(result.scalars().all())

    async def summary(self, project_id: UUID) -> dict[str, int]:
        """Count of grants per permission type on a project."""
        if await self.session.get(Project, project_id) is None:
            raise ProjectNotFound(project_id)

        counts = {permission.value: 0 for permission in PermissionType}
        rows = await self.session.execute(
            select(ProjectPermission.permission, func.count())
            .where(ProjectPermission.project_id == project_id)
            .group_by(ProjectPermission.permission)
        )
        for permission, count in rows:
            counts[permission] = count
        return counts

    async def assign(self, user_id: UUID, project_id: UUID) -> ProjectUser:
        """Assign a user to a project; returns the existing row if present."""
        await self.get_user(user_id)
        if await self.session.get(Project, project_id) is None:
            raise ProjectNotFound(project_id)

        existing = await self.session.scalar(
            select(ProjectUser).where(
                ProjectUser.user_id == user_id, ProjectUser.project_id == project_id
            )
        )
        if existing is not None:
            return existing

        assignment = ProjectUser(user_id=user_id, project_id=project_id)
        self.session.add(assignment)
        await self.session.flush()
        return assignment
