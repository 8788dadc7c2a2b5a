"""
core/security.py
----------------
Identity-token and webhook-signature utilities.

Design decisions:
  - Session tokens are minted by the external identity provider. We never
    issue credentials; we only verify the provider's signature and read
    `sub` (user id) and the active organization claim.
  - Webhook envelopes follow the Svix scheme:
        signature = base64(HMAC-SHA256(secret, "{id}.{timestamp}.{body}"))
    and the signature header may carry several space-separated "v1,<sig>"
    entries (key rotation). Verification fails closed.
"""

import base64
import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from jose import jwt

from projecthub.core.config import settings
from projecthub.core.errors import SignatureVerificationError

WEBHOOK_ID_HEADER = "svix-id"
WEBHOOK_TIMESTAMP_HEADER = "svix-timestamp"
WEBHOOK_SIGNATURE_HEADER = "svix-signature"

_SECRET_PREFIX = "whsec_"


# ── Identity tokens ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CallerIdentity:
    """The caller as vouched for by the identity provider."""

    user_id: Optional[str]
    org_id: Optional[str] = None


def decode_identity_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a provider-issued session token.

    Raises:
        JWTError: If the token is invalid, expired, or tampered with.

    Returns:
        Raw payload dict.
    """
    options = {"verify_aud": False}
    kwargs: Dict[str, Any] = {}
    if settings.IDENTITY_JWT_ISSUER:
        kwargs["issuer"] = settings.IDENTITY_JWT_ISSUER
    return jwt.decode(
        token,
        settings.IDENTITY_JWT_KEY,
        algorithms=settings.IDENTITY_JWT_ALGORITHMS,
        options=options,
        **kwargs,
    )


def identity_from_claims(payload: Mapping[str, Any]) -> CallerIdentity:
    """
    Map token claims to a CallerIdentity.

    Older session tokens carry the active organization as `org_id`; newer
    ones nest it as {"o": {"id": ...}}.
    """
    org_id = payload.get("org_id")
    if not org_id and isinstance(payload.get("o"), Mapping):
        org_id = payload["o"].get("id")
    return CallerIdentity(user_id=payload.get("sub") or None, org_id=org_id or None)


# ── Webhook signatures ────────────────────────────────────────────────────────

def _secret_bytes(secret: str) -> bytes:
    if secret.startswith(_SECRET_PREFIX):
        return base64.b64decode(secret[len(_SECRET_PREFIX):])
    return secret.encode("utf-8")


def sign_webhook(secret: str, msg_id: str, timestamp: int, body: bytes) -> str:
    """Return the "v1,<signature>" header value for an envelope."""
    to_sign = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_secret_bytes(secret), to_sign, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode("ascii")


def verify_webhook(
    *,
    headers: Mapping[str, str],
    body: bytes,
    secret: Optional[str] = None,
    tolerance_seconds: Optional[int] = None,
    now: Optional[float] = None,
) -> str:
    """
    Verify a webhook envelope and return its message id.

    Raises SignatureVerificationError when the secret is not configured,
    a header is missing, the timestamp is outside the tolerance window, or
    no signature in the header matches.
    """
    secret = settings.WEBHOOK_SECRET if secret is None else secret
    if tolerance_seconds is None:
        tolerance_seconds = settings.WEBHOOK_TOLERANCE_SECONDS

    if not secret:
        raise SignatureVerificationError("Webhook secret is not configured")

    msg_id = headers.get(WEBHOOK_ID_HEADER)
    raw_timestamp = headers.get(WEBHOOK_TIMESTAMP_HEADER)
    signature_header = headers.get(WEBHOOK_SIGNATURE_HEADER)
    if not msg_id or not raw_timestamp or not signature_header:
        raise SignatureVerificationError("Error occurred -- no svix headers")

    try:
        timestamp = int(raw_timestamp)
    except ValueError:
        raise SignatureVerificationError("Invalid signature timestamp")

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        raise SignatureVerificationError("Signature timestamp outside tolerance")

    try:
        expected = sign_webhook(secret, msg_id, timestamp, body).split(",", 1)[1]
    except ValueError:
        raise SignatureVerificationError("Invalid webhook secret")

    for candidate in signature_header.split():
        version, _, value = candidate.partition(",")
        if version == "v1" and hmac.compare_digest(value, expected):
            return msg_id

    raise SignatureVerificationError("Signature does not match")
