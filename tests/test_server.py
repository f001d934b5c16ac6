"""Tests for the FastAPI server."""

import json

import pytest
from httpx import ASGITransport, AsyncClient

import keepchat_sync.server as srv
from keepchat_sync.backends.json_store import JsonSnapshotStore
from keepchat_sync.serialize import snapshot_to_dict
from keepchat_sync.server import app
from keepchat_sync.status import SyncStatusStore


@pytest.fixture(autouse=True)
def reset_server_state(coordinator, tmp_path):
    """Point the server at temp-backed stores for each test."""
    srv._coordinator = coordinator
    srv._status = SyncStatusStore(tmp_path / "status.json")
    yield
    srv._coordinator = None
    srv._status = None


@pytest.fixture
def client():
    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


def _payload(local, cloud, **extra):
    return {"local": snapshot_to_dict(local), "cloud": snapshot_to_dict(cloud), **extra}


@pytest.mark.asyncio
async def test_classify_data_conflict(client, edited_pair):
    async with client:
        resp = await client.post("/api/conflicts/classify", json=_payload(*edited_pair))
    assert resp.status_code == 200
    data = resp.json()
    assert data["has_conflict"] is True
    assert data["conflict_type"] == "data_conflict"
    assert data["severity"] == "high"
    assert data["data_conflict"]["modified_overlap"][0]["id"] == "msg-1"
    assert data["assessment"]["can_auto_merge"] is False
    assert data["recommended_strategies"] == ["keep_local", "keep_cloud", "manual_merge"]


@pytest.mark.asyncio
async def test_classify_uses_request_baseline(client, local_ahead_pair):
    async with client:
        resp = await client.post(
            "/api/conflicts/classify", json=_payload(*local_ahead_pair, last_synced_version=2)
        )
    assert resp.json()["conflict_type"] == "concurrent_modification"


@pytest.mark.asyncio
async def test_classify_rejects_bad_snapshot(client):
    async with client:
        resp = await client.post("/api/conflicts/classify", json={"local": {"messages": []}, "cloud": None})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_assess_and_strategies(client, local_ahead_pair):
    async with client:
        assess = await client.post("/api/conflicts/assess", json=_payload(*local_ahead_pair))
        strategies = await client.post("/api/conflicts/strategies", json=_payload(*local_ahead_pair))
    assert assess.json()["can_auto_merge"] is True
    assert assess.json()["strategy"] == "append_local"
    assert strategies.json() == ["keep_local", "manual_merge"]


@pytest.mark.asyncio
async def test_resolve_keep_cloud(client, edited_pair):
    async with client:
        resp = await client.post("/api/conflicts/resolve", json=_payload(*edited_pair, strategy="keep_cloud"))
        backups = await client.get("/api/backups", params={"session_id": "sess-1"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["resolved_session"]["messages"][0]["content"] == "Modified"
    assert data["resolved_session"]["meta"]["version"]["number"] == 4

    listing = backups.json()
    assert listing["total"] == 1
    assert listing["backups"][0]["backup_id"] == data["backup_id"]
    assert "session" not in listing["backups"][0]

    assert srv._status.last_synced_version("sess-1").number == 4


@pytest.mark.asyncio
async def test_resolve_requires_strategy(client, edited_pair):
    async with client:
        resp = await client.post("/api/conflicts/resolve", json=_payload(*edited_pair))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_resolve_unknown_strategy(client, edited_pair):
    async with client:
        resp = await client.post("/api/conflicts/resolve", json=_payload(*edited_pair, strategy="coin_flip"))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "unknown_resolution_strategy"


@pytest.mark.asyncio
async def test_resolve_without_conflict(client, make_snapshot, shared_messages):
    snapshot = make_snapshot(shared_messages)
    async with client:
        resp = await client.post("/api/conflicts/resolve", json=_payload(snapshot, snapshot, strategy="keep_local"))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "no_conflict_to_resolve"


@pytest.mark.asyncio
async def test_manual_merge_returns_preview(client, edited_pair):
    async with client:
        resp = await client.post("/api/conflicts/resolve", json=_payload(*edited_pair, strategy="manual_merge"))
    assert resp.status_code == 200
    data = resp.json()
    assert data["requires_user_input"] is True
    assert data["merge_preview"]["version"]["number"] == 4
    assert data["merge_preview"]["local"]["messages"][0]["content"] == "Original"


@pytest.mark.asyncio
async def test_backup_restore_and_export(client, edited_pair):
    async with client:
        resolved = await client.post(
            "/api/conflicts/resolve", json=_payload(*edited_pair, strategy="keep_local")
        )
        backup_id = resolved.json()["backup_id"]
        restored = await client.get(f"/api/backups/{backup_id}")
        md = await client.get(f"/api/backups/{backup_id}/export")
        raw = await client.get(f"/api/backups/{backup_id}/export", params={"format": "json"})
        missing = await client.get("/api/backups/backup-000000000000")

    assert restored.json()["messages"][0]["content"] == "Modified"
    assert md.headers["content-type"].startswith("text/markdown")
    assert "# Session sess-1" in md.text
    assert json.loads(raw.text)["meta"]["session_id"] == "sess-1"
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_purge_and_history(client, edited_pair):
    async with client:
        await client.post("/api/conflicts/resolve", json=_payload(*edited_pair, strategy="keep_local"))
        purge = await client.delete("/api/backups/expired")
        history = await client.get("/api/history", params={"session_id": "sess-1"})
    assert purge.json() == {"deleted_count": 0, "deleted": []}
    entries = history.json()
    assert len(entries) == 1
    assert entries[0]["resolution_strategy"] == "keep_local"
    assert entries[0]["backup_created"] is True


@pytest.mark.asyncio
async def test_session_conflict_from_stores(client, tmp_path, monkeypatch, local_ahead_pair):
    monkeypatch.setenv("KEEPCHAT_LOCAL_DIR", str(tmp_path / "local"))
    monkeypatch.setenv("KEEPCHAT_CLOUD_DIR", str(tmp_path / "cloud"))
    local, cloud = local_ahead_pair
    JsonSnapshotStore("local", tmp_path / "local").save_snapshot(local)
    JsonSnapshotStore("cloud", tmp_path / "cloud").save_snapshot(cloud)

    async with client:
        found = await client.get("/api/sessions/sess-1/conflict")
        missing = await client.get("/api/sessions/nope/conflict")
    assert found.status_code == 200
    assert found.json()["conflict_type"] == "data_conflict"
    assert found.json()["assessment"]["strategy"] == "append_local"
    assert missing.status_code == 404
