"""Agent workflow tests — registration, admin review, public directory.

Learn: The approval transition must be unreachable for anyone whose
role, as read from the users table on that request, is not admin. The
demotion test proves the role is not cached in the session token.
"""

import re

import pytest
from sqlalchemy import select

from homekrypto.db.models import Property

JANE = {
    "email": "Jane.Doe@Realty.com",
    "firstName": "Jane",
    "lastName": "Doe",
    "company": "Doe Realty",
    "city": "Austin",
    "state": "TX",
    "country": "United States",
    "specializations": ["Luxury", "Luxury ", "Condos"],
    "yearsExperience": 12,
}


async def _register_agent(client, **overrides) -> dict:
    r = await client.post("/api/agents/register", json={**JANE, **overrides})
    assert r.status_code == 201, r.text
    return r.json()["agent"]


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_agent(client, notifier):
    agent = await _register_agent(client)
    assert agent["email"] == "jane.doe@realty.com"
    assert agent["status"] == "pending"
    assert agent["isApproved"] is False
    assert agent["specializations"] == ["Luxury", "Condos"]
    assert re.fullmatch(
        r"http://localhost:5000/agent/jane-doe-austin-[a-z0-9]{6}",
        agent["referralLink"],
    )

    assert notifier.of_kind("agent_welcome")[0].to == "jane.doe@realty.com"
    assert notifier.of_kind("admin_new_agent")[0].to == "admin@homekrypto.com"


@pytest.mark.asyncio
async def test_register_agent_duplicate_email(client):
    await _register_agent(client)
    r = await client.post("/api/agents/register", json={**JANE, "email": "JANE.DOE@realty.com"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_register_agent_without_city_has_no_referral_link(client):
    agent = await _register_agent(client, email="nocity@x.com", city=None)
    assert agent["referralLink"] is None


@pytest.mark.asyncio
async def test_pending_agents_not_public(client):
    await _register_agent(client)
    r = await client.get("/api/agents")
    assert r.status_code == 200
    assert r.json() == []


# ═══════════════════════════════════════════════════════════
# Access control
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_approve_requires_admin_role(client, accounts):
    agent = await _register_agent(client)
    _, token = await accounts.create("plain@x.com", role="user")

    r = await client.patch(
        f"/api/admin/agents/{agent['id']}/approve", headers=accounts.headers(token)
    )
    assert r.status_code == 403
    assert r.json()["message"] == "Admin access required"

    r = await client.get(f"/api/admin/agents/{agent['id']}", headers=accounts.headers(token))
    assert r.status_code == 403

    _, admin_token = await accounts.admin()
    r = await client.get(
        f"/api/admin/agents/{agent['id']}", headers=accounts.headers(admin_token)
    )
    assert r.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_admin_routes_require_session(client):
    client.cookies.clear()
    r = await client.get("/api/admin/agents")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_demoted_admin_loses_access_immediately(client, accounts):
    admin_id, token = await accounts.admin()
    r = await client.get("/api/admin/agents", headers=accounts.headers(token))
    assert r.status_code == 200

    await accounts.set_role(admin_id, "user")

    # Same token, role re-read from the database
    r = await client.get("/api/admin/agents", headers=accounts.headers(token))
    assert r.status_code == 403


# ═══════════════════════════════════════════════════════════
# Approve / deny
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_approve_publishes_page(client, accounts, notifier):
    agent = await _register_agent(client)
    admin_id, token = await accounts.admin()

    r = await client.patch(
        f"/api/admin/agents/{agent['id']}/approve", headers=accounts.headers(token)
    )
    assert r.status_code == 200
    body = r.json()
    assert body["agent"]["status"] == "approved"
    assert body["agent"]["isApproved"] is True
    assert body["agent"]["approvedBy"] == admin_id
    assert body["page"]["slug"] == "united-states/jane-doe"
    assert body["url"] == "http://localhost:5000/agents/united-states/jane-doe"

    approved = notifier.of_kind("agent_approved")
    assert len(approved) == 1
    assert body["url"] in approved[0].html

    r = await client.get("/api/agents")
    assert [a["email"] for a in r.json()] == ["jane.doe@realty.com"]

    r = await client.get("/api/agent-page/united-states/jane-doe")
    assert r.status_code == 200
    page = r.json()
    assert page["agent"]["firstName"] == "Jane"
    assert page["title"].startswith("Jane Doe - Real Estate Agent in Austin")
    assert "rejectionReason" not in page["agent"]


@pytest.mark.asyncio
async def test_approve_twice_is_noop(client, accounts, notifier):
    agent = await _register_agent(client)
    _, token = await accounts.admin()
    url = f"/api/admin/agents/{agent['id']}/approve"

    first = await client.patch(url, headers=accounts.headers(token))
    second = await client.patch(url, headers=accounts.headers(token))
    assert second.status_code == 200
    assert second.json()["page"]["id"] == first.json()["page"]["id"]
    assert len(notifier.of_kind("agent_approved")) == 1


@pytest.mark.asyncio
async def test_slug_collision_gets_numeric_suffix(client, accounts):
    first = await _register_agent(client)
    second = await _register_agent(client, email="other.jane@x.com", city="Dallas")
    third = await _register_agent(client, email="third.jane@x.com", city="Houston")
    _, token = await accounts.admin()

    slugs = []
    for agent in (first, second, third):
        r = await client.patch(
            f"/api/admin/agents/{agent['id']}/approve", headers=accounts.headers(token)
        )
        slugs.append(r.json()["page"]["slug"])

    assert slugs == [
        "united-states/jane-doe",
        "united-states/jane-doe-2",
        "united-states/jane-doe-3",
    ]
    r = await client.get("/api/agent-page/united-states/jane-doe-2")
    assert r.json()["agent"]["email"] == "other.jane@x.com"


@pytest.mark.asyncio
async def test_deny_with_default_reason(client, accounts, notifier):
    agent = await _register_agent(client)
    _, token = await accounts.admin()

    r = await client.patch(
        f"/api/admin/agents/{agent['id']}/deny", headers=accounts.headers(token)
    )
    assert r.status_code == 200
    denied = r.json()["agent"]
    assert denied["status"] == "denied"
    assert denied["isApproved"] is False
    assert denied["rejectionReason"] == "Application does not meet current requirements"
    assert notifier.of_kind("agent_denied")[0].to == "jane.doe@realty.com"

    # Still on record for audit
    r = await client.get("/api/admin/agents?status=denied", headers=accounts.headers(token))
    assert [a["id"] for a in r.json()] == [agent["id"]]


@pytest.mark.asyncio
async def test_deny_with_reason_then_reapprove(client, accounts):
    agent = await _register_agent(client)
    _, token = await accounts.admin()

    r = await client.patch(
        f"/api/admin/agents/{agent['id']}/deny",
        json={"reason": "License could not be verified"},
        headers=accounts.headers(token),
    )
    assert r.json()["agent"]["rejectionReason"] == "License could not be verified"

    r = await client.patch(
        f"/api/admin/agents/{agent['id']}/approve", headers=accounts.headers(token)
    )
    assert r.status_code == 200
    assert r.json()["agent"]["status"] == "approved"
    assert r.json()["agent"]["rejectionReason"] is None


@pytest.mark.asyncio
async def test_denying_approved_agent_hides_page(client, accounts):
    agent = await _register_agent(client)
    _, token = await accounts.admin()
    await client.patch(
        f"/api/admin/agents/{agent['id']}/approve", headers=accounts.headers(token)
    )
    await client.patch(
        f"/api/admin/agents/{agent['id']}/deny", headers=accounts.headers(token)
    )

    r = await client.get("/api/agent-page/united-states/jane-doe")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_approve_unknown_agent(client, accounts):
    _, token = await accounts.admin()
    r = await client.patch("/api/admin/agents/9999/approve", headers=accounts.headers(token))
    assert r.status_code == 404
    assert r.json()["message"] == "Agent not found"


# ═══════════════════════════════════════════════════════════
# Activation / deletion
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_deactivate_and_reactivate(client, accounts):
    agent = await _register_agent(client)
    _, token = await accounts.admin()
    await client.patch(
        f"/api/admin/agents/{agent['id']}/approve", headers=accounts.headers(token)
    )

    r = await client.patch(
        f"/api/admin/agents/{agent['id']}",
        json={"isActive": False},
        headers=accounts.headers(token),
    )
    assert r.status_code == 200
    assert r.json()["agent"]["isActive"] is False
    assert (await client.get("/api/agents")).json() == []
    assert (await client.get("/api/agent-page/united-states/jane-doe")).status_code == 404

    r = await client.patch(
        f"/api/admin/agents/{agent['id']}",
        json={"isActive": True},
        headers=accounts.headers(token),
    )
    assert r.json()["agent"]["isActive"] is True
    assert (await client.get("/api/agent-page/united-states/jane-doe")).status_code == 200


@pytest.mark.asyncio
async def test_cannot_toggle_pending_agent(client, accounts):
    agent = await _register_agent(client)
    _, token = await accounts.admin()
    r = await client.patch(
        f"/api/admin/agents/{agent['id']}",
        json={"isActive": False},
        headers=accounts.headers(token),
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_delete_agent(client, accounts, notifier, session_factory):
    agent = await _register_agent(client)
    _, token = await accounts.admin()
    await client.patch(
        f"/api/admin/agents/{agent['id']}/approve", headers=accounts.headers(token)
    )
    r = await client.post(
        "/api/properties",
        json={
            "id": "austin-loft",
            "name": "Austin Loft",
            "location": "Austin, TX",
            "description": "Downtown loft",
            "pricePerNight": "250.00",
            "totalShares": 52,
            "sharePrice": "4000.00",
            "maxGuests": 4,
            "bedrooms": 2,
            "bathrooms": 1,
            "agentId": agent["id"],
        },
        headers=accounts.headers(token),
    )
    assert r.status_code == 201

    r = await client.delete(f"/api/admin/agents/{agent['id']}", headers=accounts.headers(token))
    assert r.status_code == 200
    assert notifier.of_kind("agent_removed")[0].to == "jane.doe@realty.com"

    r = await client.get(f"/api/admin/agents/{agent['id']}", headers=accounts.headers(token))
    assert r.status_code == 404
    assert (await client.get("/api/agent-page/united-states/jane-doe")).status_code == 404

    async with session_factory() as s:
        prop = await s.scalar(select(Property).where(Property.id == "austin-loft"))
    assert prop is not None
    assert prop.agent_id is None


# ═══════════════════════════════════════════════════════════
# Stats and directory
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_agent_stats(client, accounts):
    a = await _register_agent(client)
    b = await _register_agent(client, email="b@x.com", firstName="Bob")
    await _register_agent(client, email="c@x.com", firstName="Cat")
    _, token = await accounts.admin()
    await client.patch(f"/api/admin/agents/{a['id']}/approve", headers=accounts.headers(token))
    await client.patch(f"/api/admin/agents/{b['id']}/deny", headers=accounts.headers(token))

    r = await client.get("/api/admin/agents/stats", headers=accounts.headers(token))
    assert r.json() == {
        "totalAgents": 3,
        "pendingAgents": 1,
        "approvedAgents": 1,
        "deniedAgents": 1,
    }


@pytest.mark.asyncio
async def test_search_and_countries(client, accounts):
    jane = await _register_agent(client)
    pierre = await _register_agent(
        client,
        email="pierre@x.com",
        firstName="Pierre",
        lastName="Martin",
        company="Paris Immobilier",
        city="Paris",
        state=None,
        country="France",
    )
    _, token = await accounts.admin()
    for agent in (jane, pierre):
        await client.patch(
            f"/api/admin/agents/{agent['id']}/approve", headers=accounts.headers(token)
        )

    r = await client.get("/api/agents/countries")
    assert r.json() == [
        {"country": "France", "count": 1},
        {"country": "United States", "count": 1},
    ]

    r = await client.get("/api/agents/search", params={"q": "immob"})
    assert [a["email"] for a in r.json()] == ["pierre@x.com"]

    r = await client.get("/api/agents/search", params={"country": "united states"})
    assert [a["email"] for a in r.json()] == ["jane.doe@realty.com"]

    r = await client.get("/api/agent-page/france/pierre-martin")
    assert r.status_code == 200
