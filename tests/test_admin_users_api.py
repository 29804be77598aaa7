"""Admin user management tests."""

import pytest
from sqlalchemy import select

from homekrypto.db.models import Agent, User, UserSession


@pytest.mark.asyncio
async def test_list_users_with_approval_counts(client, accounts):
    admin_id, token = await accounts.admin()
    user_id, _ = await accounts.create("someone@x.com")
    r = await client.post(
        "/api/agents/register",
        json={"email": "agent@x.com", "firstName": "A", "lastName": "Gent"},
    )
    await client.patch(
        f"/api/admin/agents/{r.json()['agent']['id']}/approve",
        headers=accounts.headers(token),
    )

    r = await client.get("/api/admin/users", headers=accounts.headers(token))
    assert r.status_code == 200
    counts = {u["id"]: u["agentCount"] for u in r.json()}
    assert counts == {admin_id: 1, user_id: 0}


@pytest.mark.asyncio
async def test_list_users_requires_admin(client, accounts):
    _, token = await accounts.create("plain@x.com")
    r = await client.get("/api/admin/users", headers=accounts.headers(token))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_delete_user(client, accounts, notifier, session_factory):
    _, token = await accounts.admin()
    user_id, user_token = await accounts.create("gone@x.com")

    r = await client.delete(f"/api/admin/users/{user_id}", headers=accounts.headers(token))
    assert r.status_code == 200
    assert r.json() == {"message": "User deleted successfully", "agentCount": 0}
    assert notifier.of_kind("admin_user_deleted")[0].to == "admin@homekrypto.com"

    async with session_factory() as s:
        assert await s.get(User, user_id) is None
        sessions = await s.scalars(select(UserSession).where(UserSession.user_id == user_id))
        assert list(sessions) == []

    r = await client.get("/api/auth/me", headers=accounts.headers(user_token))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_admin_targets_cannot_be_deleted(client, accounts):
    _, token = await accounts.admin()
    other_id, _ = await accounts.create("other-admin@x.com", role="admin")

    r = await client.delete(f"/api/admin/users/{other_id}", headers=accounts.headers(token))
    assert r.status_code == 403
    assert r.json()["message"] == "Admin accounts cannot be deleted"


@pytest.mark.asyncio
async def test_cannot_delete_self(client, accounts):
    admin_id, token = await accounts.admin()
    r = await client.delete(f"/api/admin/users/{admin_id}", headers=accounts.headers(token))
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_deleting_approver_keeps_agents(client, accounts, session_factory):
    _, root = await accounts.admin()
    former_id, former = await accounts.create("former@x.com", role="admin")

    r = await client.post(
        "/api/agents/register",
        json={"email": "kept@x.com", "firstName": "Kept", "lastName": "Agent"},
    )
    agent_id = r.json()["agent"]["id"]
    await client.patch(
        f"/api/admin/agents/{agent_id}/approve", headers=accounts.headers(former)
    )

    # Demote, then delete
    r = await client.patch(
        f"/api/admin/users/{former_id}/role",
        json={"role": "user"},
        headers=accounts.headers(root),
    )
    assert r.status_code == 200
    assert r.json()["role"] == "user"

    r = await client.delete(f"/api/admin/users/{former_id}", headers=accounts.headers(root))
    assert r.status_code == 200
    assert r.json()["agentCount"] == 1

    async with session_factory() as s:
        agent = await s.get(Agent, agent_id)
    assert agent.status == "approved"
    assert agent.approved_by is None


@pytest.mark.asyncio
async def test_change_role(client, accounts):
    _, token = await accounts.admin()
    user_id, user_token = await accounts.create("promote@x.com")

    r = await client.patch(
        f"/api/admin/users/{user_id}/role",
        json={"role": "admin"},
        headers=accounts.headers(token),
    )
    assert r.status_code == 200

    # Takes effect on the user's existing session
    r = await client.get("/api/admin/users", headers=accounts.headers(user_token))
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_admin_cannot_demote_self(client, accounts):
    admin_id, token = await accounts.admin()
    r = await client.patch(
        f"/api/admin/users/{admin_id}/role",
        json={"role": "user"},
        headers=accounts.headers(token),
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_invalid_role(client, accounts):
    _, token = await accounts.admin()
    user_id, _ = await accounts.create("x@x.com")
    r = await client.patch(
        f"/api/admin/users/{user_id}/role",
        json={"role": "superuser"},
        headers=accounts.headers(token),
    )
    assert r.status_code == 400
