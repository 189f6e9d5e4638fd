"""Tests for the quota and monitor API routes."""

import pytest

from conftest import ACCOUNT, bearer
from renderq.services.clock import utcnow


@pytest.mark.asyncio
async def test_quota_balance_for_new_account(client):
    r = await client.get("/api/v1/quota", headers=bearer())
    assert r.status_code == 200
    data = r.json()
    assert data["account_id"] == ACCOUNT
    assert data["total_units"] == 150
    assert data["consumed_units"] == 0
    assert data["thresholds"] == {"units": False, "images": False, "video": False}


@pytest.mark.asyncio
async def test_authorize_preview(client, seed_balance):
    await seed_balance(total=100, consumed=100, now=utcnow())
    r = await client.get("/api/v1/quota/authorize", params={"units": 10}, headers=bearer())
    assert r.json()["allowed"] is True
    r = await client.get("/api/v1/quota/authorize", params={"units": 11}, headers=bearer())
    assert r.json()["allowed"] is False


@pytest.mark.asyncio
async def test_admin_credit(client):
    admin = bearer("admin_1", roles=["admin"])
    r = await client.post(f"/api/v1/admin/quota/{ACCOUNT}/credit", json={"units": 50}, headers=admin)
    assert r.status_code == 200
    assert r.json()["total_units"] == 200

    r = await client.get("/api/v1/quota", headers=bearer())
    assert r.json()["total_units"] == 200


@pytest.mark.asyncio
async def test_credit_requires_admin(client):
    r = await client.post(f"/api/v1/admin/quota/{ACCOUNT}/credit", json={"units": 50}, headers=bearer(roles=["operator"]))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "AUTHORIZATION_ERROR"


@pytest.mark.asyncio
async def test_credit_rejects_non_positive_units(client):
    admin = bearer("admin_1", roles=["admin"])
    r = await client.post(f"/api/v1/admin/quota/{ACCOUNT}/credit", json={"units": 0}, headers=admin)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_monitor_account_scope(client):
    await client.post(
        "/api/v1/orders",
        json={"brief": {"items": [{"kind": "image", "prompt": "p", "count": 3}]}},
        headers=bearer(),
    )
    r = await client.get("/api/v1/monitor", headers=bearer())
    assert r.status_code == 200
    data = r.json()
    assert data["scope"] == "account"
    assert data["counts"]["queued"] == 3
    assert data["stuck"]["count"] == 0
    assert len(data["recent"]) == 3


@pytest.mark.asyncio
async def test_global_monitor_requires_operator(client):
    r = await client.get("/api/v1/monitor", params={"scope": "global"}, headers=bearer())
    assert r.status_code == 403

    r = await client.get("/api/v1/monitor", params={"scope": "global"}, headers=bearer("ops_1", roles=["operator"]))
    assert r.status_code == 200
    assert r.json()["scope"] == "global"
    assert r.json()["account_id"] is None


@pytest.mark.asyncio
async def test_stream_without_redis_sends_connected_event(client):
    r = await client.get("/api/v1/stream/events", headers=bearer())
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert '"type": "connected"' in r.text
