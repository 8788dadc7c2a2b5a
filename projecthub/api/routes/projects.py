"""
api/routes/projects.py
----------------------
Project endpoints.

GET    /projects          : Projects of the caller's organization
POST   /projects          : Create a project (caller becomes owner)
GET    /projects/{id}     : Project with owner and documents
PATCH  /projects/{id}     : Update mutable fields
DELETE /projects/{id}     : Owner only
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from projecthub.dependencies import Caller, get_project_service
from projecthub.schemas.project import (
    ProjectCreate,
    ProjectDetail,
    ProjectRead,
    ProjectUpdate,
    ProjectWithOwner,
)
from projecthub.services.project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["Projects"])

Service = Annotated[ProjectService, Depends(get_project_service)]


@router.get(
    "",
    response_model=list[ProjectWithOwner],
    summary="List projects in the caller's organization",
)
async def list_projects(caller: Caller, service: Service) -> list[ProjectWithOwner]:
    projects = await service.list_projects(caller)
    return [ProjectWithOwner.model_validate(p) for p in projects]


@router.post(
    "",
    response_model=ProjectRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
)
async def create_project(
    body: ProjectCreate, caller: Caller, service: Service
) -> ProjectRead:
    """
    The caller becomes the owner and first member. When `assigned_to`
    names someone else, that user is added as a member too.
    Returns 404 (retryable) while the caller's organization is not yet
    mirrored from the identity provider.
    """
    project = await service.create_project(caller, body)
    return ProjectRead.model_validate(project)


@router.get("/{project_id}", response_model=ProjectDetail, summary="Get a project")
async def get_project(project_id: str, caller: Caller, service: Service) -> ProjectDetail:
    project = await service.get_project(caller, project_id)
    return ProjectDetail.model_validate(project)


@router.patch("/{project_id}", response_model=ProjectRead, summary="Update a project")
async def update_project(
    project_id: str, body: ProjectUpdate, caller: Caller, service: Service
) -> ProjectRead:
    project = await service.update_project(caller, project_id, body)
    return ProjectRead.model_validate(project)


@router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project (owner only)",
)
async def delete_project(project_id: str, caller: Caller, service: Service) -> None:
    await service.delete_project(caller, project_id)
