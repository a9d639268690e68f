"""Tests for the HTTP endpoints."""

from __future__ import annotations

import json

import pytest


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["connections"] == 0
    assert data["devices"] == 0
    assert "uptime" in data
    assert data["pps"] == 0


@pytest.mark.asyncio
async def test_stats_empty(client):
    resp = await client.get("/api/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["samples_accepted"] == 0
    assert data["buffers"] == {"recent_data": 0, "alerts": 0, "snapshot_cache": 0}
    assert data["active"] == {"connections": 0, "devices": 0}


@pytest.mark.asyncio
async def test_stats_after_traffic(client, register_device, send, make_sample):
    conn, _ = await register_device()
    await send(conn, make_sample())
    await send(conn, "garbage")

    data = (await client.get("/api/stats")).json()
    assert data["samples_accepted"] == 1
    assert data["malformed_messages"] == 1
    assert data["buffers"]["recent_data"] == 1
    assert data["active"] == {"connections": 1, "devices": 1}


@pytest.mark.asyncio
async def test_devices_listing(client, register_device, send, make_sample):
    conn, _ = await register_device("D1", "Lab")
    await send(conn, make_sample(timestamp=1))

    resp = await client.get("/api/devices")
    assert resp.status_code == 200
    devices = resp.json()["devices"]
    assert len(devices) == 1
    assert devices[0]["device_id"] == "D1"
    assert devices[0]["location"] == "Lab"
    assert devices[0]["status"] == "connected"
    assert devices[0]["last_data"]["timestamp"] == 1


@pytest.mark.asyncio
async def test_device_data_unknown_is_404(client):
    resp = await client.get("/api/device/nope/data")
    assert resp.status_code == 404
    assert resp.json() == {"error": "device not found"}


@pytest.mark.asyncio
async def test_device_data_limit(client, register_device, send, make_sample):
    conn, _ = await register_device()
    for i in range(1, 6):
        await send(conn, make_sample(timestamp=i))

    resp = await client.get("/api/device/D1/data", params={"limit": 2})
    assert resp.status_code == 200
    data = resp.json()
    assert data["device_id"] == "D1"
    assert [r["timestamp"] for r in data["data"]] == [4, 5]

    # Zero and negative limits fall back to the default of 100
    for limit in (0, -3):
        resp = await client.get("/api/device/D1/data", params={"limit": limit})
        assert resp.status_code == 200
        assert [r["timestamp"] for r in resp.json()["data"]] == [1, 2, 3, 4, 5]

    resp = await client.get("/api/device/D1/data", params={"limit": "lots"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_recent_data(client, register_device, send, make_sample):
    conn, _ = await register_device()
    await send(conn, make_sample(timestamp="a"))
    await send(conn, make_sample(timestamp="b"))

    records = (await client.get("/api/recent-data")).json()["recent_data"]
    assert [r["timestamp"] for r in records] == ["a", "b"]
    assert records[0]["type"] == "sensor_data"


@pytest.mark.asyncio
async def test_history_data_range(client, register_device, send, make_sample):
    conn, _ = await register_device()
    for i in range(1, 11):
        await send(conn, make_sample(timestamp=i))

    resp = await client.get("/api/history-data", params={"from": "2", "to": "6", "limit": 3})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total_count"] == 5
    assert data["returned_count"] == 3
    assert [r["timestamp"] for r in data["history_data"]] == [4, 5, 6]


@pytest.mark.asyncio
async def test_history_data_non_positive_limit_uses_default(client, register_device, send, make_sample):
    conn, _ = await register_device()
    for i in range(1, 4):
        await send(conn, make_sample(timestamp=i))

    data = (await client.get("/api/history-data", params={"limit": 0})).json()
    assert data["total_count"] == 3
    assert data["returned_count"] == 3


@pytest.mark.asyncio
async def test_clear_cache_writes_backup(client, store, register_device, send, make_sample):
    conn, _ = await register_device()
    for i in range(1, 4):
        await send(conn, make_sample(timestamp=i))

    resp = await client.post("/api/clear-cache")
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "cache cleared"

    backup = store.path.parent / data["backup"]
    assert [r["timestamp"] for r in json.loads(backup.read_text())] == [1, 2, 3]
    assert not store.path.exists()

    history = (await client.get("/api/history-data")).json()
    assert history["total_count"] == 0


@pytest.mark.asyncio
async def test_clear_cache_failure(client, hub, monkeypatch):
    from quakehub.exceptions import PersistenceFailure

    def broken_clear(timestamp_ms):
        raise PersistenceFailure("read-only")

    monkeypatch.setattr(hub.snapshot, "clear", broken_clear)
    resp = await client.post("/api/clear-cache")
    assert resp.status_code == 500
    assert resp.json() == {"error": "failed to clear cache"}


@pytest.mark.asyncio
async def test_test_earthquake_unregistered_device_dropped(client, hub):
    resp = await client.post("/api/test/earthquake", json={})
    assert resp.status_code == 200
    data = resp.json()
    assert data["magnitude"] == 4.5
    assert data["accepted"] is False
    assert data["is_earthquake"] is False
    assert len(hub.recent_data) == 0


@pytest.mark.asyncio
async def test_test_earthquake_registered_device(client, hub, register_device, dashboard):
    _, device_peer = await register_device("test_device")
    _, watcher = await dashboard()
    device_peer.sent.clear()

    resp = await client.post("/api/test/earthquake", json={"magnitude": 100})
    data = resp.json()
    assert data["accepted"] is True
    assert data["is_earthquake"] is True

    assert len(watcher.of_type("sensor_data")) == 1
    assert len(watcher.of_type("earthquake_alert")) == 1
    # Synthetic samples are not acknowledged
    assert device_peer.of_type("data_received") == []

    alerts = (await client.get("/api/alerts")).json()["alerts"]
    assert len(alerts) == 1
    assert alerts[0]["device_id"] == "test_device"


@pytest.mark.asyncio
async def test_test_earthquake_bad_bodies(client):
    resp = await client.post("/api/test/earthquake", content=b"{oops",
                             headers={"content-type": "application/json"})
    assert resp.status_code == 400

    resp = await client.post("/api/test/earthquake", json={"magnitude": "huge"})
    assert resp.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b'{"magnitude": NaN}', b'{"magnitude": "Infinity"}', b'{"magnitude": 1e400}'])
async def test_test_earthquake_non_finite_magnitude(client, hub, register_device, body):
    await register_device("test_device")
    resp = await client.post("/api/test/earthquake", content=body,
                             headers={"content-type": "application/json"})
    assert resp.status_code in (400, 422)
    assert len(hub.recent_data) == 0
