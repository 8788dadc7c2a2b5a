"""
schemas/note.py
---------------
Pydantic models for project notes.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from projecthub.schemas.user import UserSummary


class NoteCreate(BaseModel):
    content: str = Field(..., max_length=10000)


class NoteWithAuthor(BaseModel):
    id: str
    project_id: str
    user_id: str
    content: str
    created_at: datetime
    author: Optional[UserSummary] = None

    model_config = {"from_attributes": True}
