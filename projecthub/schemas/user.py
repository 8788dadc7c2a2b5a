"""
schemas/user.py
---------------
Outbound user shapes. Users are never created through the API; these are
the fields other responses embed when they join a user.
"""

from typing import Optional

from pydantic import BaseModel


class UserSummary(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None

    model_config = {"from_attributes": True}
