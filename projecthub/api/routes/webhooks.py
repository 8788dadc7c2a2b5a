"""
api/routes/webhooks.py
----------------------
Identity-provider webhook receiver.

POST /webhooks/identity: Svix-signed event envelope.

Responses are plain text and carry no contract beyond the status code:
  200 processed (including ignored event types)
  400 bad signature / missing headers / malformed body / no email
  404 referenced organization not mirrored yet (provider retries)
  500 store failure
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.db.session import get_db
from projecthub.services.webhook_service import WebhookEventProcessor

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/identity",
    response_class=PlainTextResponse,
    summary="Receive identity-provider events",
)
async def receive_identity_event(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlainTextResponse:
    # Signature covers the raw bytes, so the body is read unparsed.
    body = await request.body()
    outcome = await WebhookEventProcessor(db).process(request.headers, body)
    return PlainTextResponse(outcome.message, status_code=outcome.status_code)
