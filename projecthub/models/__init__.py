"""
models/__init__.py
------------------
Re-export all models so create_tables.py (and any migration tooling) can
import Base and discover all tables via a single import:

    from projecthub.models import Base
"""

from projecthub.db.base import Base
from projecthub.models.user import User
from projecthub.models.organization import DEFAULT_ORG_ROLE, Organization, OrgMembership
from projecthub.models.project import Project, ProjectMembership, ProjectStatus
from projecthub.models.document import Document, DocumentStatus
from projecthub.models.note import Note

__all__ = [
    "Base",
    "User",
    "Organization",
    "OrgMembership",
    "DEFAULT_ORG_ROLE",
    "Project",
    "ProjectMembership",
    "ProjectStatus",
    "Document",
    "DocumentStatus",
    "Note",
]
