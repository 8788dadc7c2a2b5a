"""
models/document.py
------------------
Document metadata. The bytes live in external blob storage under
file_path; the record and the blob are created and deleted together.
"""

from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from projecthub.db.base import Base, TimestampMixin, generate_uuid


class DocumentStatus(str, PyEnum):
    draft = "draft"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class Document(Base, TimestampMixin):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger)
    file_type: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DocumentStatus.draft.value
    )
    uploaded_by: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=False
    )

    project: Mapped["Project"] = relationship("Project", back_populates="documents")  # noqa: F821
    uploader: Mapped["User"] = relationship("User")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Document id={self.id} project_id={self.project_id} status={self.status}>"
