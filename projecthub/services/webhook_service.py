"""
services/webhook_service.py
---------------------------
Applies identity-provider webhook events to the local store.

Processing steps, each a possible exit:
  1. Signature verification        → 400 on any failure (fails closed)
  2. Envelope parsing              → 400 on malformed JSON / shape
  3. Dispatch on event type        → idempotent upsert / delete
       user.created|updated                   upsert users by id
       organization.created|updated           upsert organizations by external_org_id
       organizationMembership.created         upsert org_members by (org, user)
       organizationMembership.deleted         delete org_members (absent → no-op)
       anything else                          200, no effect
  4. Store failure                 → 500

The provider delivers at least once and in no particular order. Every
write is a single INSERT .. ON CONFLICT DO UPDATE (or DELETE) keyed on a
natural key, committed on its own, so replays overwrite with identical
data and an *.updated arriving before its *.created simply inserts.
Membership events that race ahead of their organization get a 404 and
are redelivered by the provider.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from fastapi import status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.config import settings
from projecthub.core.errors import (
    NotFoundError,
    SignatureVerificationError,
    ValidationError,
)
from projecthub.core.logging import bind_request_context, get_logger
from projecthub.core.security import verify_webhook
from projecthub.db.base import generate_uuid
from projecthub.models.organization import DEFAULT_ORG_ROLE, Organization, OrgMembership
from projecthub.models.user import User
from projecthub.schemas.webhook import (
    MembershipEventData,
    OrganizationEventData,
    UserEventData,
    WebhookEnvelope,
)
from projecthub.services.organization_directory import OrganizationDirectory

logger = get_logger(__name__)

PROCESSED = "Webhook processed"


@dataclass(frozen=True)
class WebhookOutcome:
    status_code: int
    message: str
    event_type: Optional[str] = None
    handled: bool = False


class StoreWriteError(Exception):
    """A single upsert/delete failed; carries the plain-text response message."""


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _insert_for(db: AsyncSession):
    """Dialect-specific INSERT that supports ON CONFLICT."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


# ── Idempotent writes (shared with the backfill sync) ─────────────────────────

async def upsert_user(db: AsyncSession, data: UserEventData) -> None:
    email = data.primary_email()
    if not email:
        raise ValidationError("No email found")

    values = {
        "id": data.id,
        "email": email,
        "first_name": data.first_name or None,
        "last_name": data.last_name or None,
        "avatar_url": data.image_url or None,
    }
    insert = _insert_for(db)
    stmt = insert(User).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["id"],
        set_={**{k: v for k, v in values.items() if k != "id"}, "updated_at": func.now()},
    )
    await _write(db, stmt, "Error upserting user")
    logger.info("User upserted", user_id=data.id)


async def upsert_organization(
    db: AsyncSession, external_org_id: str, name: str, slug: Optional[str]
) -> None:
    values = {
        "external_org_id": external_org_id,
        "name": name,
        "slug": slug or slugify(name),
    }
    insert = _insert_for(db)
    # The internal id is only generated on first insert and never overwritten.
    stmt = insert(Organization).values(id=generate_uuid(), **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["external_org_id"],
        set_={"name": values["name"], "slug": values["slug"], "updated_at": func.now()},
    )
    await _write(db, stmt, "Error upserting organization")
    logger.info("Organization upserted", external_org_id=external_org_id)


async def upsert_org_membership(db: AsyncSession, org_id: str, user_id: str) -> None:
    insert = _insert_for(db)
    stmt = insert(OrgMembership).values(
        id=generate_uuid(),
        org_id=org_id,
        user_id=user_id,
        role=DEFAULT_ORG_ROLE,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["org_id", "user_id"],
        set_={"role": DEFAULT_ORG_ROLE, "updated_at": func.now()},
    )
    await _write(db, stmt, "Error adding org member")
    logger.info("Org membership upserted", org_id=org_id, user_id=user_id)


async def delete_org_membership(db: AsyncSession, org_id: str, user_id: str) -> bool:
    stmt = delete(OrgMembership).where(
        OrgMembership.org_id == org_id, OrgMembership.user_id == user_id
    )
    result = await _write(db, stmt, "Error removing org member")
    removed = bool(result.rowcount)
    logger.info(
        "Org membership removed" if removed else "Org membership already absent",
        org_id=org_id,
        user_id=user_id,
    )
    return removed


async def _write(db: AsyncSession, stmt, failure_message: str):
    try:
        result = await db.execute(stmt)
        await db.commit()
        return result
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(failure_message, error=str(exc), exc_info=True)
        raise StoreWriteError(failure_message) from exc


# ── Processor ─────────────────────────────────────────────────────────────────

Handler = Callable[["WebhookEventProcessor", Dict[str, Any]], Awaitable[None]]


class WebhookEventProcessor:

    def __init__(
        self,
        db: AsyncSession,
        secret: Optional[str] = None,
        tolerance_seconds: Optional[int] = None,
    ) -> None:
        self.db = db
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds
        self.directory = OrganizationDirectory(db)

    async def process(self, headers: Mapping[str, str], body: bytes) -> WebhookOutcome:
        """Run one envelope through verification, parsing and dispatch."""
        try:
            msg_id = verify_webhook(
                headers=headers,
                body=body,
                secret=self.secret,
                tolerance_seconds=self.tolerance_seconds,
            )
        except SignatureVerificationError as exc:
            if not (settings.WEBHOOK_SECRET if self.secret is None else self.secret):
                logger.error("Webhook secret is not configured")
            logger.warning("Webhook verification failed", reason=exc.reason)
            return WebhookOutcome(status.HTTP_400_BAD_REQUEST, exc.reason)
        bind_request_context(svix_id=msg_id)

        try:
            envelope = WebhookEnvelope.model_validate(json.loads(body))
        except (ValueError, PydanticValidationError) as exc:
            logger.warning("Malformed webhook body", error=str(exc))
            return WebhookOutcome(status.HTTP_400_BAD_REQUEST, "Malformed webhook body")

        event_type = envelope.type
        handler = self.HANDLERS.get(event_type)
        if handler is None:
            logger.info("Webhook event ignored", event_type=event_type)
            return WebhookOutcome(status.HTTP_200_OK, PROCESSED, event_type, handled=False)

        try:
            await handler(self, envelope.data)
        except (ValidationError, PydanticValidationError) as exc:
            reason = exc.reason if isinstance(exc, ValidationError) else "Malformed event data"
            logger.warning("Webhook event rejected", event_type=event_type, reason=reason)
            return WebhookOutcome(status.HTTP_400_BAD_REQUEST, reason, event_type)
        except NotFoundError as exc:
            logger.warning("Webhook event references unknown organization", event_type=event_type)
            return WebhookOutcome(status.HTTP_404_NOT_FOUND, exc.reason, event_type)
        except StoreWriteError as exc:
            return WebhookOutcome(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), event_type)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Error processing webhook", event_type=event_type, error=str(exc), exc_info=True)
            return WebhookOutcome(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "Error processing webhook", event_type
            )

        logger.info("Webhook processed", event_type=event_type)
        return WebhookOutcome(status.HTTP_200_OK, PROCESSED, event_type, handled=True)

    # ── Handlers ──────────────────────────────────────────────────────────────

    async def _on_user(self, data: Dict[str, Any]) -> None:
        await upsert_user(self.db, UserEventData.model_validate(data))

    async def _on_organization(self, data: Dict[str, Any]) -> None:
        org = OrganizationEventData.model_validate(data)
        await upsert_organization(self.db, org.id, org.name, org.slug)

    async def _on_membership_created(self, data: Dict[str, Any]) -> None:
        event = MembershipEventData.model_validate(data)
        org = await self.directory.resolve(event.organization.id)
        await upsert_org_membership(self.db, org.id, event.public_user_data.user_id)

    async def _on_membership_deleted(self, data: Dict[str, Any]) -> None:
        event = MembershipEventData.model_validate(data)
        org = await self.directory.resolve(event.organization.id)
        await delete_org_membership(self.db, org.id, event.public_user_data.user_id)

    HANDLERS: Dict[str, Handler] = {
        "user.created": _on_user,
        "user.updated": _on_user,
        "organization.created": _on_organization,
        "organization.updated": _on_organization,
        "organizationMembership.created": _on_membership_created,
        "organizationMembership.deleted": _on_membership_deleted,
    }
