"""
models/organization.py
----------------------
Organization (tenant) and organization-membership ORM models.

Both tables mirror the identity provider. external_org_id is the join key
every tenant-scoped lookup starts from; the internal UUID id is what
projects reference.
"""

from typing import Optional

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from projecthub.db.base import Base, TimestampMixin, generate_uuid

DEFAULT_ORG_ROLE = "member"


class Organization(Base, TimestampMixin):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    external_org_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    members: Mapped[list["OrgMembership"]] = relationship(
        back_populates="organization", cascade="all, delete-orphan"
    )
    projects: Mapped[list["Project"]] = relationship(  # noqa: F821
        "Project", back_populates="organization", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} external_org_id={self.external_org_id}>"


class OrgMembership(Base, TimestampMixin):
    __tablename__ = "org_members"
    __table_args__ = (UniqueConstraint("org_id", "user_id"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    org_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # No FK to users: membership events may arrive before the user event.
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(50), nullable=False, default=DEFAULT_ORG_ROLE
    )

    organization: Mapped[Organization] = relationship(back_populates="members")
    user: Mapped[Optional["User"]] = relationship(  # noqa: F821
        "User",
        primaryjoin="foreign(OrgMembership.user_id) == User.id",
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<OrgMembership org_id={self.org_id} user_id={self.user_id}>"
