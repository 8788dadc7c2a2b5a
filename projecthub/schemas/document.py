"""
schemas/document.py
-------------------
Pydantic models for document metadata.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from projecthub.models.document import DocumentStatus
from projecthub.schemas.user import UserSummary


class DocumentRead(BaseModel):
    id: str
    project_id: str
    name: str
    file_path: str
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    status: DocumentStatus
    uploaded_by: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DocumentWithUploader(DocumentRead):
    uploader: Optional[UserSummary] = None


class DocumentStatusUpdate(BaseModel):
    # Plain str so an unknown status reaches the service and is reported
    # as a ValidationError rather than a request-parsing error.
    status: str


class SignedUrlRead(BaseModel):
    url: str
    expires_in: int
