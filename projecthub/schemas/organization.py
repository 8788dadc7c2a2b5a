"""
schemas/organization.py
-----------------------
Pydantic response model for organization and project memberships.

MembershipWithUser is shared by organization and project member listings;
`role` is only present for organization memberships.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from projecthub.schemas.user import UserSummary


class MembershipWithUser(BaseModel):
    id: str
    user_id: str
    role: Optional[str] = None
    created_at: datetime
    user: Optional[UserSummary] = None

    model_config = {"from_attributes": True}
