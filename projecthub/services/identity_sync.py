"""
services/identity_sync.py
-------------------------
Backfill: pull organizations, their members and those members' user
records straight from the identity provider's REST API and mirror them
locally.

Used when webhooks were missed (endpoint down longer than the provider's
retry window, or a fresh database). Writes go through the same idempotent
upsert functions as the webhook processor, so running a backfill while
webhooks are flowing is safe.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.config import settings
from projecthub.core.errors import ValidationError
from projecthub.core.logging import get_logger
from projecthub.schemas.webhook import UserEventData
from projecthub.services.organization_directory import OrganizationDirectory
from projecthub.services.webhook_service import (
    StoreWriteError,
    upsert_org_membership,
    upsert_organization,
    upsert_user,
)

logger = get_logger(__name__)

PAGE_SIZE = 100


class IdentityProviderClient:
    """Minimal async client for the provider's backend API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.IDENTITY_API_URL,
            headers={"Authorization": f"Bearer {api_key or settings.IDENTITY_API_KEY}"},
            timeout=10.0,
            transport=transport,
        )

    async def __aenter__(self) -> "IdentityProviderClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _paginate(self, path: str) -> AsyncIterator[Dict[str, Any]]:
        offset = 0
        while True:
            response = await self._client.get(
                path, params={"limit": PAGE_SIZE, "offset": offset}
            )
            response.raise_for_status()
            payload = response.json()
            items = payload.get("data", []) if isinstance(payload, dict) else payload
            for item in items:
                yield item
            if len(items) < PAGE_SIZE:
                return
            offset += PAGE_SIZE

    def organizations(self) -> AsyncIterator[Dict[str, Any]]:
        return self._paginate("/organizations")

    def memberships(self, external_org_id: str) -> AsyncIterator[Dict[str, Any]]:
        return self._paginate(f"/organizations/{external_org_id}/memberships")

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        response = await self._client.get(f"/users/{user_id}")
        response.raise_for_status()
        return response.json()


@dataclass
class SyncReport:
    organizations: int = 0
    users: int = 0
    memberships: int = 0
    errors: List[str] = field(default_factory=list)


async def _sync_members(
    db: AsyncSession,
    client: IdentityProviderClient,
    external_org_id: str,
    local_org_id: str,
    report: SyncReport,
    synced_users: set[str],
) -> None:
    async for membership in client.memberships(external_org_id):
        user_id = (membership.get("public_user_data") or {}).get("user_id")
        if not user_id:
            continue
        try:
            if user_id not in synced_users:
                user = UserEventData.model_validate(await client.get_user(user_id))
                await upsert_user(db, user)
                synced_users.add(user_id)
                report.users += 1
            await upsert_org_membership(db, local_org_id, user_id)
            report.memberships += 1
        except (httpx.HTTPError, StoreWriteError, ValidationError, ValueError) as exc:
            logger.warning("Backfill skipped member", user_id=user_id, error=str(exc))
            report.errors.append(f"{external_org_id}/{user_id}: {exc}")


async def sync_identity(db: AsyncSession, client: IdentityProviderClient) -> SyncReport:
    """
    Mirror every organization and membership the provider knows about.

    Individual failures are recorded in the report and the sync moves on;
    a re-run picks up whatever was skipped. If the organization listing
    itself fails, the report covers what was synced up to that point.
    """
    report = SyncReport()
    directory = OrganizationDirectory(db)
    synced_users: set[str] = set()

    try:
        async for org in client.organizations():
            external_org_id = org.get("id")
            name = org.get("name")
            if not external_org_id or not name:
                report.errors.append(f"organization without id/name: {org!r}")
                continue
            try:
                await upsert_organization(db, external_org_id, name, org.get("slug"))
            except StoreWriteError as exc:
                report.errors.append(f"{external_org_id}: {exc}")
                continue
            report.organizations += 1
            local_org = await directory.resolve(external_org_id)

            try:
                await _sync_members(
                    db, client, external_org_id, local_org.id, report, synced_users
                )
            except httpx.HTTPError as exc:
                logger.warning(
                    "Backfill could not list members",
                    external_org_id=external_org_id,
                    error=str(exc),
                )
                report.errors.append(f"{external_org_id}/memberships: {exc}")
                continue

            logger.info("Organization synced", external_org_id=external_org_id)
    except httpx.HTTPError as exc:
        logger.error("Backfill could not list organizations", error=str(exc))
        report.errors.append(f"organizations: {exc}")

    logger.info(
        "Identity backfill finished",
        organizations=report.organizations,
        users=report.users,
        memberships=report.memberships,
        errors=len(report.errors),
    )
    return report
