"""
api/routes/members.py
---------------------
Project membership and organization member endpoints.

GET    /projects/{id}/members            : Members with their user records
POST   /projects/{id}/members            : Owner adds a member
DELETE /projects/{id}/members/{user_id}  : Owner removes a member (never the owner)
GET    /organization/members             : Members of the caller's organization
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from projecthub.core.errors import AuthenticationError
from projecthub.dependencies import Caller, get_membership_service, get_organization_directory
from projecthub.schemas.organization import MembershipWithUser
from projecthub.schemas.project import MemberAdd
from projecthub.services.membership_service import MembershipService
from projecthub.services.organization_directory import OrganizationDirectory

router = APIRouter(tags=["Members"])

Service = Annotated[MembershipService, Depends(get_membership_service)]
Directory = Annotated[OrganizationDirectory, Depends(get_organization_directory)]


@router.get(
    "/projects/{project_id}/members",
    response_model=list[MembershipWithUser],
    summary="List project members",
)
async def list_project_members(
    project_id: str, caller: Caller, service: Service
) -> list[MembershipWithUser]:
    members = await service.list_project_members(caller, project_id)
    return [MembershipWithUser.model_validate(m) for m in members]


@router.post(
    "/projects/{project_id}/members",
    response_model=MembershipWithUser,
    status_code=status.HTTP_201_CREATED,
    summary="Add a project member (owner only)",
)
async def add_project_member(
    project_id: str, body: MemberAdd, caller: Caller, service: Service
) -> MembershipWithUser:
    membership = await service.add_project_member(caller, project_id, body.user_id)
    return MembershipWithUser.model_validate(membership)


@router.delete(
    "/projects/{project_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a project member (owner only)",
)
async def remove_project_member(
    project_id: str, user_id: str, caller: Caller, service: Service
) -> None:
    await service.remove_project_member(caller, project_id, user_id)


@router.get(
    "/organization/members",
    response_model=list[MembershipWithUser],
    summary="List members of the caller's organization",
)
async def list_org_members(caller: Caller, directory: Directory) -> list[MembershipWithUser]:
    if not caller.org_id:
        raise AuthenticationError("Unauthorized")
    members = await directory.list_members(caller.org_id)
    return [MembershipWithUser.model_validate(m) for m in members]
