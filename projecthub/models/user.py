"""
models/user.py
--------------
User ORM model, mirrored from the identity provider.

The primary key is the provider's own user id: it is the value session
tokens carry as `sub`, and every owner / author / uploader column stores it.
Rows are written only by the webhook upsert or the backfill sync and are
never deleted by this service.
"""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from projecthub.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(
        String(320), unique=True, nullable=False, index=True
    )
    first_name: Mapped[Optional[str]] = mapped_column(String(255))
    last_name: Mapped[Optional[str]] = mapped_column(String(255))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(2048))

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.email

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email}>"
