"""Health endpoint tests."""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from homekrypto.db import engine as db_engine


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Database reachable, Redis never started in tests."""
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["server"] == "ok"
    assert data["database"] == "ok"
    assert data["redis"] == "unavailable"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_degraded_without_database(client, tmp_path, monkeypatch):
    broken = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nope.db'}"
    )
    monkeypatch.setattr(db_engine, "engine", broken)

    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["database"] == "error"
    await broken.dispose()
