"""
schemas/project.py
------------------
Pydantic request/response models for projects and project membership.

Naming convention:
  ProjectCreate / ProjectUpdate → inbound request bodies
  ProjectRead                   → bare project row
  ProjectWithOwner              → listing shape (project + owner)
  ProjectDetail                 → single-project shape (owner + documents)
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from projecthub.models.project import ProjectStatus
from projecthub.schemas.document import DocumentRead
from projecthub.schemas.user import UserSummary


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class ProjectCreate(BaseModel):
    name: str = Field(..., max_length=255, examples=["Website relaunch"])
    description: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = Field(
        default=None, description="User id to assign; becomes a project member"
    )

    _blank = field_validator(
        "description", "start_date", "due_date", "assigned_to", mode="before"
    )(_blank_to_none)


class ProjectUpdate(BaseModel):
    """Full replacement of the mutable fields; omitted status means active."""

    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None

    _blank = field_validator(
        "description", "status", "start_date", "due_date", "assigned_to", mode="before"
    )(_blank_to_none)


class ProjectRead(BaseModel):
    id: str
    org_id: str
    name: str
    description: Optional[str] = None
    status: ProjectStatus
    owner_id: str
    assigned_to: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectWithOwner(ProjectRead):
    owner: Optional[UserSummary] = None


class ProjectDetail(ProjectWithOwner):
    documents: list[DocumentRead] = []


class MemberAdd(BaseModel):
    user_id: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def strip_user_id(self):
        self.user_id = self.user_id.strip()
        return self
