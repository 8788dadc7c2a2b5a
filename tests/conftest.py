import base64
import json
import os
import time

import pytest
import pytest_asyncio
from jose import jwt
from sqlalchemy.pool import StaticPool

# Test environment: must be set before projecthub.core.config is imported.
WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"test-webhook-secret").decode()
JWT_KEY = "test-signing-key"

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["WEBHOOK_SECRET"] = WEBHOOK_SECRET
os.environ["IDENTITY_JWT_KEY"] = JWT_KEY
os.environ["IDENTITY_JWT_ALGORITHMS"] = '["HS256"]'
os.environ["IDENTITY_API_KEY"] = "sk_test"

from projecthub.core.errors import StorageError  # noqa: E402
from projecthub.core.security import CallerIdentity, sign_webhook  # noqa: E402
from projecthub.db.session import build_engine, build_session_factory  # noqa: E402
from projecthub.models import Base, Organization, OrgMembership, User  # noqa: E402
from projecthub.services.invalidation import ViewInvalidator  # noqa: E402
from projecthub.services.storage_service import BlobStorage  # noqa: E402


ORG_ID = "org_1"
OWNER_ID = "u_owner"
MEMBER_ID = "u_member"
OTHER_ID = "u_other"


# =============================================================================
# Fakes
# =============================================================================

class FakeBlobStorage(BlobStorage):
    """In-memory blob store; flip the fail_* flags to simulate outages."""

    def __init__(self) -> None:
        self.objects = {}
        self.deleted = []
        self.fail_upload = False
        self.fail_delete = False

    async def upload(self, data, destination_path, content_type):
        if self.fail_upload:
            raise StorageError("Failed to upload file: unavailable", path=destination_path)
        self.objects[destination_path] = (data, content_type)
        return destination_path

    async def delete(self, path):
        self.deleted.append(path)
        if self.fail_delete:
            raise StorageError("Failed to delete file: unavailable", path=path)
        self.objects.pop(path, None)

    async def signed_url(self, path, ttl_seconds):
        return f"https://blobs.test/{path}?expires={ttl_seconds}"


# =============================================================================
# Database
# =============================================================================

@pytest_asyncio.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def org(db):
    """One mirrored organization with three mirrored users, all members."""
    org = Organization(external_org_id=ORG_ID, name="Acme", slug="acme")
    db.add(org)
    db.add_all(
        [
            User(id=OWNER_ID, email="owner@example.com", first_name="Olive"),
            User(id=MEMBER_ID, email="member@example.com", first_name="Max"),
            User(id=OTHER_ID, email="other@example.com", first_name="Otto"),
        ]
    )
    for user_id in (OWNER_ID, MEMBER_ID, OTHER_ID):
        db.add(OrgMembership(organization=org, user_id=user_id))
    await db.commit()
    return org


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def storage():
    return FakeBlobStorage()


@pytest.fixture
def invalidated():
    return []


@pytest.fixture
def invalidator(invalidated):
    invalidator = ViewInvalidator()
    invalidator.subscribe(invalidated.append)
    return invalidator


@pytest.fixture
def owner():
    return CallerIdentity(OWNER_ID, ORG_ID)


@pytest.fixture
def member():
    return CallerIdentity(MEMBER_ID, ORG_ID)


@pytest.fixture
def other():
    return CallerIdentity(OTHER_ID, ORG_ID)


# =============================================================================
# Tokens and webhook envelopes
# =============================================================================

@pytest.fixture
def token_for():
    def _token(user_id, org_id=ORG_ID):
        claims = {"sub": user_id, "exp": int(time.time()) + 600}
        if org_id:
            claims["org_id"] = org_id
        return jwt.encode(claims, JWT_KEY, algorithm="HS256")

    return _token


@pytest.fixture
def webhook_request():
    """Build (headers, body) for a correctly signed envelope."""
    counter = {"n": 0}

    def _build(event_type=None, data=None, secret=WEBHOOK_SECRET, msg_id=None, body=None):
        counter["n"] += 1
        msg_id = msg_id or f"msg_{counter['n']}"
        if body is None:
            body = json.dumps({"type": event_type, "data": data}).encode()
        timestamp = int(time.time())
        headers = {
            "svix-id": msg_id,
            "svix-timestamp": str(timestamp),
            "svix-signature": sign_webhook(secret, msg_id, timestamp, body),
        }
        return headers, body

    return _build


def user_event(user_id, email="u@example.com", **extra):
    data = {
        "id": user_id,
        "email_addresses": [{"id": "em_1", "email_address": email}] if email else [],
        "primary_email_address_id": "em_1" if email else None,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "image_url": "https://img.test/ada.png",
    }
    data.update(extra)
    return data


def membership_event(external_org_id, user_id):
    return {
        "organization": {"id": external_org_id},
        "public_user_data": {"user_id": user_id},
    }


@pytest.fixture
def events():
    """Payload builders for identity-provider event data."""

    class _Events:
        user = staticmethod(user_event)
        membership = staticmethod(membership_event)

        @staticmethod
        def organization(external_org_id, name="Org", slug=None):
            return {"id": external_org_id, "name": name, "slug": slug}

    return _Events
