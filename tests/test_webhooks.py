import pytest
from sqlalchemy import func, select

from projecthub.models import Organization, OrgMembership, User
from projecthub.services.webhook_service import WebhookEventProcessor


async def _count(db, model, *where):
    result = await db.execute(select(func.count()).select_from(model).where(*where))
    return result.scalar_one()


@pytest.fixture
def processor(db):
    return WebhookEventProcessor(db)


# ── Verification ──────────────────────────────────────────────────────────────

async def test_bad_signature_is_rejected_without_writes(db, processor, webhook_request, events):
    headers, body = webhook_request("user.created", events.user("u1", "ada@example.com"))
    headers["svix-signature"] = "v1,AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="

    outcome = await processor.process(headers, body)

    assert outcome.status_code == 400
    assert await _count(db, User) == 0


async def test_missing_headers_are_rejected(db, processor, webhook_request, events):
    _, body = webhook_request("user.created", events.user("u1", "ada@example.com"))

    outcome = await processor.process({}, body)

    assert outcome.status_code == 400
    assert outcome.message == "Error occurred -- no svix headers"
    assert await _count(db, User) == 0


async def test_malformed_body_is_rejected(processor, webhook_request):
    outcome = await processor.process(*webhook_request(body=b"not json"))

    assert outcome.status_code == 400
    assert outcome.message == "Malformed webhook body"


# ── Users ─────────────────────────────────────────────────────────────────────

async def test_user_created_is_mirrored(db, processor, webhook_request, events):
    outcome = await processor.process(
        *webhook_request("user.created", events.user("u1", "ada@example.com"))
    )

    assert outcome.status_code == 200
    assert outcome.handled
    user = await db.get(User, "u1")
    assert user.email == "ada@example.com"
    assert user.first_name == "Ada"
    assert user.avatar_url == "https://img.test/ada.png"


async def test_user_event_replay_leaves_one_row(db, processor, webhook_request, events):
    headers, body = webhook_request("user.created", events.user("u1", "ada@example.com"))

    first = await processor.process(headers, body)
    second = await processor.process(headers, body)

    assert first.status_code == second.status_code == 200
    assert await _count(db, User) == 1


async def test_user_updated_before_created_inserts(db, processor, webhook_request, events):
    outcome = await processor.process(
        *webhook_request("user.updated", events.user("u1", "late@example.com"))
    )

    assert outcome.status_code == 200
    assert (await db.get(User, "u1")).email == "late@example.com"


async def test_user_updated_overwrites_fields(db, processor, webhook_request, events):
    await processor.process(*webhook_request("user.created", events.user("u1", "a@example.com")))
    await processor.process(
        *webhook_request(
            "user.updated", events.user("u1", "b@example.com", first_name="Augusta")
        )
    )

    result = await db.execute(
        select(User).where(User.id == "u1").execution_options(populate_existing=True)
    )
    user = result.scalar_one()
    assert user.email == "b@example.com"
    assert user.first_name == "Augusta"


async def test_primary_email_is_preferred(db, processor, webhook_request, events):
    data = events.user("u1", "first@example.com")
    data["email_addresses"].append({"id": "em_2", "email_address": "primary@example.com"})
    data["primary_email_address_id"] = "em_2"

    await processor.process(*webhook_request("user.created", data))

    assert (await db.get(User, "u1")).email == "primary@example.com"


async def test_user_without_email_is_rejected(db, processor, webhook_request, events):
    outcome = await processor.process(*webhook_request("user.created", events.user("u1", None)))

    assert outcome.status_code == 400
    assert outcome.message == "No email found"
    assert await _count(db, User) == 0


async def test_store_failure_is_500_and_session_recovers(db, processor, webhook_request, events):
    await processor.process(*webhook_request("user.created", events.user("u1", "ada@example.com")))

    # Same email under another id violates the unique email constraint.
    failed = await processor.process(
        *webhook_request("user.created", events.user("u2", "ada@example.com"))
    )
    next_event = await processor.process(
        *webhook_request("organization.created", events.organization("org_9", "Big Co"))
    )

    assert failed.status_code == 500
    assert failed.message == "Error upserting user"
    assert next_event.status_code == 200
    assert await _count(db, User) == 1
    assert await _count(db, Organization) == 1


# ── Organizations and memberships ─────────────────────────────────────────────

async def test_organization_created_is_mirrored_with_slug(db, processor, webhook_request, events):
    outcome = await processor.process(
        *webhook_request("organization.created", events.organization("org_9", "Big Co", "big-co"))
    )

    assert outcome.status_code == 200
    org = (
        await db.execute(select(Organization).where(Organization.external_org_id == "org_9"))
    ).scalar_one()
    assert org.name == "Big Co"
    assert org.slug == "big-co"
    assert org.id != "org_9"


def test_organization_columns_are_provider_fields_only():
    assert set(Organization.__table__.c.keys()) == {
        "id", "external_org_id", "name", "slug", "created_at", "updated_at"
    }


async def test_organization_without_slug_gets_one(db, processor, webhook_request, events):
    await processor.process(
        *webhook_request("organization.created", events.organization("org_9", "Big Co!"))
    )

    org = (
        await db.execute(select(Organization).where(Organization.external_org_id == "org_9"))
    ).scalar_one()
    assert org.slug == "big-co"


async def test_organization_update_keeps_internal_id(db, processor, webhook_request, events):
    await processor.process(
        *webhook_request("organization.created", events.organization("org_9", "Old"))
    )
    before = (
        await db.execute(select(Organization.id).where(Organization.external_org_id == "org_9"))
    ).scalar_one()

    await processor.process(
        *webhook_request("organization.updated", events.organization("org_9", "New"))
    )

    rows = (
        await db.execute(
            select(Organization.id, Organization.name).where(
                Organization.external_org_id == "org_9"
            )
        )
    ).all()
    assert rows == [(before, "New")]


async def test_membership_before_organization_then_redelivered(
    db, processor, webhook_request, events
):
    membership = webhook_request(
        "organizationMembership.created", events.membership("org_42", "u1")
    )

    early = await processor.process(*membership)
    assert early.status_code == 404
    assert await _count(db, OrgMembership) == 0

    created = await processor.process(
        *webhook_request("organization.created", events.organization("org_42", "Answer"))
    )
    assert created.status_code == 200

    retried = await processor.process(*membership)
    replayed = await processor.process(*membership)

    assert retried.status_code == replayed.status_code == 200
    org = (
        await db.execute(select(Organization).where(Organization.external_org_id == "org_42"))
    ).scalar_one()
    assert await _count(
        db, OrgMembership, OrgMembership.org_id == org.id, OrgMembership.user_id == "u1"
    ) == 1


async def test_membership_for_unknown_user_is_recorded(db, processor, webhook_request, events):
    await processor.process(
        *webhook_request("organization.created", events.organization("org_9", "Org"))
    )

    outcome = await processor.process(
        *webhook_request("organizationMembership.created", events.membership("org_9", "ghost"))
    )

    assert outcome.status_code == 200
    membership = (await db.execute(select(OrgMembership))).scalar_one()
    assert membership.user_id == "ghost"
    assert membership.role == "member"


async def test_membership_deleted_removes_row(db, processor, webhook_request, events):
    await processor.process(
        *webhook_request("organization.created", events.organization("org_9", "Org"))
    )
    await processor.process(
        *webhook_request("organizationMembership.created", events.membership("org_9", "u1"))
    )

    outcome = await processor.process(
        *webhook_request("organizationMembership.deleted", events.membership("org_9", "u1"))
    )

    assert outcome.status_code == 200
    assert await _count(db, OrgMembership) == 0


async def test_membership_deleted_when_absent_is_a_no_op(db, processor, webhook_request, events):
    await processor.process(
        *webhook_request("organization.created", events.organization("org_9", "Org"))
    )

    outcome = await processor.process(
        *webhook_request("organizationMembership.deleted", events.membership("org_9", "u1"))
    )

    assert outcome.status_code == 200
    assert await _count(db, OrgMembership) == 0


async def test_membership_deleted_for_unknown_org_is_not_found(processor, webhook_request, events):
    outcome = await processor.process(
        *webhook_request("organizationMembership.deleted", events.membership("org_x", "u1"))
    )
    assert outcome.status_code == 404


# ── Dispatch ──────────────────────────────────────────────────────────────────

async def test_unhandled_event_type_is_acknowledged(db, processor, webhook_request):
    outcome = await processor.process(*webhook_request("session.created", {"id": "sess_1"}))

    assert outcome.status_code == 200
    assert outcome.event_type == "session.created"
    assert not outcome.handled
    assert await _count(db, User) == 0


async def test_event_with_missing_fields_is_rejected(processor, webhook_request):
    outcome = await processor.process(
        *webhook_request("organization.created", {"id": "org_9"})
    )
    assert outcome.status_code == 400
