"""
services/project_service.py
---------------------------
Project lifecycle: create, update, delete, list, get.

Service layer is responsible for:
  - Resolving the tenant and the caller before touching data
  - Consulting services/authorization.py for every guarded action
  - Keeping the owner / assignee membership rows in step with the project
  - Committing its own unit of work, then signalling view invalidation
  - Never returning HTTP responses (that's the route's job)

Field updates are last-write-wins; there is no optimistic concurrency
token on projects.
"""

from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from projecthub.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from projecthub.core.logging import get_logger
from projecthub.core.security import CallerIdentity
from projecthub.models.project import Project, ProjectMembership, ProjectStatus
from projecthub.models.user import User
from projecthub.schemas.project import ProjectCreate, ProjectUpdate
from projecthub.services import authorization as guard
from projecthub.services.invalidation import PROJECTS_PATH, ViewInvalidator, project_path
from projecthub.services.organization_directory import OrganizationDirectory
from projecthub.services.storage_service import BlobStorage

logger = get_logger(__name__)


# ── Shared lookups ────────────────────────────────────────────────────────────

async def get_project_or_404(db: AsyncSession, project_id: str, *options) -> Project:
    result = await db.execute(
        select(Project)
        .where(Project.id == project_id)
        .options(*options)
        .execution_options(populate_existing=True)
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project not found")
    return project


async def ensure_user_exists(
    db: AsyncSession, user_id: str, retryable: bool = False
) -> None:
    """
    Users are mirrored from the identity provider; a caller whose
    user.created event has not been processed yet gets a retryable miss.
    """
    if await db.get(User, user_id) is None:
        raise NotFoundError("User not found", retryable=retryable)


async def is_project_member(db: AsyncSession, project_id: str, user_id: str) -> bool:
    result = await db.execute(
        select(ProjectMembership.id).where(
            ProjectMembership.project_id == project_id,
            ProjectMembership.user_id == user_id,
        )
    )
    return result.first() is not None


def _validate_dates(start_date: Optional[date], due_date: Optional[date]) -> None:
    if start_date and due_date and due_date < start_date:
        raise ValidationError("Due date cannot be before start date")


# ── Service ───────────────────────────────────────────────────────────────────

class ProjectService:

    def __init__(
        self,
        db: AsyncSession,
        storage: BlobStorage,
        invalidator: ViewInvalidator,
    ) -> None:
        self.db = db
        self.storage = storage
        self.invalidator = invalidator
        self.directory = OrganizationDirectory(db)

    async def create_project(self, caller: CallerIdentity, data: ProjectCreate) -> Project:
        """
        Insert the project, the owner's membership and (when assigned to
        someone else) the assignee's membership in one transaction.
        """
        caller_id = guard.require_authenticated(caller)
        if not caller.org_id:
            raise AuthenticationError("Unauthorized")
        org = await self.directory.resolve(caller.org_id)

        name = (data.name or "").strip()
        if not name:
            raise ValidationError("Project name is required")
        _validate_dates(data.start_date, data.due_date)

        await ensure_user_exists(self.db, caller_id, retryable=True)
        assigned_to = data.assigned_to or None
        if assigned_to and assigned_to != caller_id:
            await ensure_user_exists(self.db, assigned_to)

        project = Project(
            org_id=org.id,
            name=name,
            description=data.description or None,
            status=ProjectStatus.active.value,
            owner_id=caller_id,
            assigned_to=assigned_to,
            start_date=data.start_date,
            due_date=data.due_date,
        )
        members = [ProjectMembership(user_id=caller_id)]
        if assigned_to and assigned_to != caller_id:
            members.append(ProjectMembership(user_id=assigned_to))
        project.memberships = members

        self.db.add(project)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            logger.error("Create project failed", org_id=org.id, error=str(exc))
            raise ConflictError("Failed to create project") from exc

        logger.info(
            "Project created",
            project_id=project.id,
            org_id=org.id,
            owner_id=caller_id,
            assigned_to=assigned_to,
        )
        self.invalidator.invalidate(PROJECTS_PATH)
        return project

    async def update_project(
        self, caller: CallerIdentity, project_id: str, data: ProjectUpdate
    ) -> Project:
        """
        Replace the mutable fields. Only authentication is required: whether
        non-owners should be able to edit is an open product question, so
        non-owner edits are logged for review.
        """
        caller_id = guard.require_authenticated(caller)
        project = await get_project_or_404(self.db, project_id)

        name = (data.name or "").strip()
        if not name:
            raise ValidationError("Project name is required")
        _validate_dates(data.start_date, data.due_date)

        assigned_to = data.assigned_to or None
        add_assignee = (
            assigned_to is not None
            and assigned_to != project.assigned_to
            and not await is_project_member(self.db, project.id, assigned_to)
        )
        if add_assignee:
            await ensure_user_exists(self.db, assigned_to)

        if caller_id != project.owner_id:
            logger.warning(
                "Project updated by non-owner",
                project_id=project.id,
                caller_id=caller_id,
                owner_id=project.owner_id,
            )

        project.name = name
        project.description = data.description or None
        project.status = (data.status or ProjectStatus.active).value
        project.start_date = data.start_date
        project.due_date = data.due_date
        project.assigned_to = assigned_to
        if add_assignee:
            self.db.add(ProjectMembership(project_id=project.id, user_id=assigned_to))

        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            logger.error("Update project failed", project_id=project_id, error=str(exc))
            raise ConflictError("Failed to update project") from exc
        await self.db.refresh(project)

        logger.info("Project updated", project_id=project.id, status=project.status)
        self.invalidator.invalidate(PROJECTS_PATH, project_path(project.id))
        return project

    async def delete_project(self, caller: CallerIdentity, project_id: str) -> None:
        """
        Owner only. Memberships, documents and notes go with the project;
        the documents' blobs are removed afterwards, best effort.
        """
        caller_id = guard.require_authenticated(caller)
        project = await get_project_or_404(
            self.db, project_id, selectinload(Project.documents)
        )
        guard.require(guard.can_delete_project(caller_id, project), caller_id)

        blob_paths = [doc.file_path for doc in project.documents]
        await self.db.delete(project)
        await self.db.commit()
        logger.info("Project deleted", project_id=project_id, documents=len(blob_paths))

        for path in blob_paths:
            try:
                await self.storage.delete(path)
            except StorageError as exc:
                logger.warning("Blob cleanup failed", path=path, error=exc.reason)

        self.invalidator.invalidate(PROJECTS_PATH, project_path(project_id))

    async def list_projects(self, caller: CallerIdentity) -> list[Project]:
        """Projects of the caller's organization, newest first, with owners."""
        guard.require_authenticated(caller)
        if not caller.org_id:
            raise AuthenticationError("Unauthorized")
        org = await self.directory.resolve(caller.org_id)

        result = await self.db.execute(
            select(Project)
            .where(Project.org_id == org.id)
            .options(selectinload(Project.owner))
            .order_by(Project.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_project(self, caller: CallerIdentity, project_id: str) -> Project:
        guard.require_authenticated(caller)
        return await get_project_or_404(
            self.db,
            project_id,
            selectinload(Project.owner),
            selectinload(Project.documents),
        )
