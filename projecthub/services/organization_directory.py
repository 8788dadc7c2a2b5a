"""
services/organization_directory.py
----------------------------------
Tenant resolution: external organization id → local Organization row.

Every tenant-scoped operation starts here. A miss is expected right after
an organization is created at the identity provider and before its
webhook event has been processed, so the NotFoundError raised is marked
retryable.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from projecthub.core.errors import NotFoundError
from projecthub.core.logging import get_logger
from projecthub.models.organization import Organization, OrgMembership

logger = get_logger(__name__)


class OrganizationDirectory:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find(self, external_org_id: str) -> Organization | None:
        if not external_org_id:
            return None
        result = await self.db.execute(
            select(Organization).where(Organization.external_org_id == external_org_id)
        )
        return result.scalar_one_or_none()

    async def resolve(self, external_org_id: str) -> Organization:
        """Return the mirrored organization or raise a retryable NotFoundError."""
        org = await self.find(external_org_id)
        if org is None:
            logger.info("Organization not mirrored yet", external_org_id=external_org_id)
            raise NotFoundError("Organization not found", retryable=True)
        return org

    async def list_members(self, external_org_id: str) -> list[OrgMembership]:
        """Organization members, newest first, with their user rows joined."""
        org = await self.resolve(external_org_id)
        result = await self.db.execute(
            select(OrgMembership)
            .where(OrgMembership.org_id == org.id)
            .options(selectinload(OrgMembership.user))
            .order_by(OrgMembership.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
