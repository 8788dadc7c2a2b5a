import httpx
import pytest
from sqlalchemy import func, select

from projecthub.models import Organization, OrgMembership, User
from projecthub.services.identity_sync import IdentityProviderClient, sync_identity

USERS = {
    "u1": {
        "id": "u1",
        "email_addresses": [{"id": "em_1", "email_address": "u1@example.com"}],
        "primary_email_address_id": "em_1",
        "first_name": "Uno",
    },
    "u3": {
        "id": "u3",
        "email_addresses": [],
        "first_name": "No Mail",
    },
}


def provider_api(request: httpx.Request) -> httpx.Response:
    assert request.headers["Authorization"] == "Bearer sk_test"
    path = request.url.path
    if path == "/v1/organizations":
        return httpx.Response(
            200, json={"data": [{"id": "org_1", "name": "Acme", "slug": "acme"}], "total_count": 1}
        )
    if path == "/v1/organizations/org_1/memberships":
        return httpx.Response(
            200,
            json={
                "data": [
                    {"public_user_data": {"user_id": "u1"}},
                    {"public_user_data": {"user_id": "u2"}},
                    {"public_user_data": {"user_id": "u3"}},
                ]
            },
        )
    user_id = path.rsplit("/", 1)[-1]
    if path.startswith("/v1/users/") and user_id in USERS:
        return httpx.Response(200, json=USERS[user_id])
    return httpx.Response(404, json={"errors": [{"message": "not found"}]})


@pytest.fixture
async def client():
    async with IdentityProviderClient(
        base_url="https://api.test/v1",
        api_key="sk_test",
        transport=httpx.MockTransport(provider_api),
    ) as client:
        yield client


async def _count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def test_backfill_mirrors_organizations_users_and_memberships(db, client):
    report = await sync_identity(db, client)

    assert report.organizations == 1
    assert report.users == 1
    assert report.memberships == 1
    assert len(report.errors) == 2

    org = (await db.execute(select(Organization))).scalar_one()
    assert org.external_org_id == "org_1"
    assert (await db.get(User, "u1")).email == "u1@example.com"
    membership = (await db.execute(select(OrgMembership))).scalar_one()
    assert (membership.org_id, membership.user_id) == (org.id, "u1")


async def test_backfill_is_idempotent(db, client):
    await sync_identity(db, client)
    await sync_identity(db, client)

    assert await _count(db, Organization) == 1
    assert await _count(db, User) == 1
    assert await _count(db, OrgMembership) == 1


async def test_pagination_follows_offsets():
    offsets = []

    def handler(request):
        offset = int(request.url.params["offset"])
        offsets.append(offset)
        size = 100 if offset == 0 else 3
        data = [{"id": f"org_{offset + i}", "name": "Org"} for i in range(size)]
        return httpx.Response(200, json={"data": data})

    async with IdentityProviderClient(
        base_url="https://api.test/v1", api_key="k", transport=httpx.MockTransport(handler)
    ) as client:
        ids = [org["id"] async for org in client.organizations()]

    assert offsets == [0, 100]
    assert len(ids) == 103


async def test_membership_listing_failure_skips_only_that_organization(db):
    def handler(request):
        path = request.url.path
        if path == "/v1/organizations":
            return httpx.Response(
                200, json={"data": [{"id": "org_a", "name": "A"}, {"id": "org_b", "name": "B"}]}
            )
        if path == "/v1/organizations/org_a/memberships":
            return httpx.Response(503)
        if path == "/v1/organizations/org_b/memberships":
            return httpx.Response(200, json={"data": [{"public_user_data": {"user_id": "u1"}}]})
        return httpx.Response(200, json=USERS["u1"])

    async with IdentityProviderClient(
        base_url="https://api.test/v1", api_key="k", transport=httpx.MockTransport(handler)
    ) as client:
        report = await sync_identity(db, client)

    assert report.organizations == 2
    assert report.memberships == 1
    assert len(report.errors) == 1
    assert report.errors[0].startswith("org_a/memberships")
    membership = (await db.execute(select(OrgMembership))).scalar_one()
    org_b = (
        await db.execute(select(Organization).where(Organization.external_org_id == "org_b"))
    ).scalar_one()
    assert membership.org_id == org_b.id


async def test_organization_listing_failure_returns_partial_report(db):
    def handler(request):
        path = request.url.path
        if path == "/v1/organizations":
            if request.url.params["offset"] != "0":
                return httpx.Response(502)
            data = [{"id": f"org_{i}", "name": "Org"} for i in range(100)]
            return httpx.Response(200, json={"data": data})
        return httpx.Response(200, json={"data": []})

    async with IdentityProviderClient(
        base_url="https://api.test/v1", api_key="k", transport=httpx.MockTransport(handler)
    ) as client:
        report = await sync_identity(db, client)

    assert report.organizations == 100
    assert report.errors and report.errors[-1].startswith("organizations")
    assert await _count(db, Organization) == 100
