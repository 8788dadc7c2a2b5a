import base64
import time

import pytest

from projecthub.core.errors import SignatureVerificationError
from projecthub.core.security import (
    CallerIdentity,
    decode_identity_token,
    identity_from_claims,
    sign_webhook,
    verify_webhook,
)

SECRET = "whsec_" + base64.b64encode(b"unit-secret").decode()
BODY = b'{"type":"user.created","data":{}}'


def _headers(msg_id="msg_1", timestamp=None, signature=None, secret=SECRET, body=BODY):
    timestamp = int(time.time()) if timestamp is None else timestamp
    return {
        "svix-id": msg_id,
        "svix-timestamp": str(timestamp),
        "svix-signature": signature or sign_webhook(secret, msg_id, timestamp, body),
    }


# ── Webhook signatures ────────────────────────────────────────────────────────

def test_valid_signature_returns_message_id():
    assert verify_webhook(headers=_headers(), body=BODY, secret=SECRET) == "msg_1"


def test_signature_from_rotated_key_list_is_accepted():
    good = _headers()["svix-signature"]
    headers = _headers(signature=f"v1,bm90LXRoaXMtb25l {good}")
    assert verify_webhook(headers=headers, body=BODY, secret=SECRET) == "msg_1"


def test_plain_text_secret_is_supported():
    headers = _headers(secret="plain-secret")
    assert verify_webhook(headers=headers, body=BODY, secret="plain-secret") == "msg_1"


@pytest.mark.parametrize("missing", ["svix-id", "svix-timestamp", "svix-signature"])
def test_missing_header_fails(missing):
    headers = _headers()
    del headers[missing]
    with pytest.raises(SignatureVerificationError) as exc:
        verify_webhook(headers=headers, body=BODY, secret=SECRET)
    assert exc.value.reason == "Error occurred -- no svix headers"


def test_tampered_body_fails():
    with pytest.raises(SignatureVerificationError) as exc:
        verify_webhook(headers=_headers(), body=BODY + b" ", secret=SECRET)
    assert exc.value.reason == "Signature does not match"


def test_wrong_secret_fails():
    other = "whsec_" + base64.b64encode(b"someone-else").decode()
    with pytest.raises(SignatureVerificationError):
        verify_webhook(headers=_headers(secret=other), body=BODY, secret=SECRET)


def test_stale_timestamp_fails():
    stale = int(time.time()) - 3600
    with pytest.raises(SignatureVerificationError) as exc:
        verify_webhook(
            headers=_headers(timestamp=stale), body=BODY, secret=SECRET, tolerance_seconds=300
        )
    assert exc.value.reason == "Signature timestamp outside tolerance"


def test_non_numeric_timestamp_fails():
    headers = _headers()
    headers["svix-timestamp"] = "yesterday"
    with pytest.raises(SignatureVerificationError):
        verify_webhook(headers=headers, body=BODY, secret=SECRET)


def test_unconfigured_secret_fails_closed():
    with pytest.raises(SignatureVerificationError) as exc:
        verify_webhook(headers=_headers(), body=BODY, secret="")
    assert exc.value.reason == "Webhook secret is not configured"


# ── Identity tokens ───────────────────────────────────────────────────────────

def test_identity_from_flat_org_claim():
    assert identity_from_claims({"sub": "u1", "org_id": "org_1"}) == CallerIdentity("u1", "org_1")


def test_identity_from_nested_org_claim():
    caller = identity_from_claims({"sub": "u1", "o": {"id": "org_2", "rol": "admin"}})
    assert caller == CallerIdentity("u1", "org_2")


def test_identity_without_org():
    assert identity_from_claims({"sub": "u1"}) == CallerIdentity("u1", None)


def test_decode_identity_token_roundtrip(token_for):
    payload = decode_identity_token(token_for("u_owner"))
    assert payload["sub"] == "u_owner"
    assert payload["org_id"] == "org_1"
