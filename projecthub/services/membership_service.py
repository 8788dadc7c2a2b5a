"""
services/membership_service.py
------------------------------
Project membership: add, remove, list.

Only the project owner manages membership, and the owner's own row can
never be removed here (project deletion is the only way it goes).
"""

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from projecthub.core.errors import ConflictError
from projecthub.core.logging import get_logger
from projecthub.core.security import CallerIdentity
from projecthub.models.project import ProjectMembership
from projecthub.services import authorization as guard
from projecthub.services.invalidation import ViewInvalidator, project_path
from projecthub.services.project_service import (
    ensure_user_exists,
    get_project_or_404,
    is_project_member,
)

logger = get_logger(__name__)


class MembershipService:

    def __init__(self, db: AsyncSession, invalidator: ViewInvalidator) -> None:
        self.db = db
        self.invalidator = invalidator

    async def add_project_member(
        self, caller: CallerIdentity, project_id: str, user_id: str
    ) -> ProjectMembership:
        caller_id = guard.require_authenticated(caller)
        project = await get_project_or_404(self.db, project_id)
        guard.require(guard.can_add_or_remove_member(caller_id, project), caller_id)

        await ensure_user_exists(self.db, user_id)
        if await is_project_member(self.db, project_id, user_id):
            raise ConflictError("User is already a project member")

        membership = ProjectMembership(project_id=project_id, user_id=user_id)
        self.db.add(membership)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            # Lost a race against a concurrent add of the same user.
            await self.db.rollback()
            raise ConflictError("User is already a project member") from exc

        logger.info("Project member added", project_id=project_id, user_id=user_id)
        self.invalidator.invalidate(project_path(project_id))
        return await self._load(membership.id)

    async def remove_project_member(
        self, caller: CallerIdentity, project_id: str, user_id: str
    ) -> None:
        """
        Owner only; the owner's membership is protected (ValidationError).
        Removing a user who is not a member is a no-op. Removing the
        assignee also clears the assignment so it never points at a
        non-member.
        """
        caller_id = guard.require_authenticated(caller)
        project = await get_project_or_404(self.db, project_id)
        guard.require(guard.can_remove_member(caller_id, project, user_id), caller_id)

        result = await self.db.execute(
            delete(ProjectMembership).where(
                ProjectMembership.project_id == project_id,
                ProjectMembership.user_id == user_id,
            )
        )
        if project.assigned_to == user_id:
            project.assigned_to = None
        await self.db.commit()

        logger.info(
            "Project member removed",
            project_id=project_id,
            user_id=user_id,
            removed=bool(result.rowcount),
        )
        self.invalidator.invalidate(project_path(project_id))

    async def list_project_members(
        self, caller: CallerIdentity, project_id: str
    ) -> list[ProjectMembership]:
        guard.require_authenticated(caller)
        await get_project_or_404(self.db, project_id)
        result = await self.db.execute(
            select(ProjectMembership)
            .where(ProjectMembership.project_id == project_id)
            .options(selectinload(ProjectMembership.user))
            .order_by(ProjectMembership.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _load(self, membership_id: str) -> ProjectMembership:
        result = await self.db.execute(
            select(ProjectMembership)
            .where(ProjectMembership.id == membership_id)
            .options(selectinload(ProjectMembership.user))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
