# pyright: reportUnknownMemberType=false
# pyright: reportUnknownVariableType=false

from __future__ import annotations

from typing import cast
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from docsync.main import app
from docsync.services.sync_engine import SyncEngine


def _random_email(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}@example.com"


def _register(client: TestClient) -> dict[str, str]:
    resp = client.post(
        "/api/auth/register",
        json={"email": _random_email("sync"), "password": "password123"},
    )
    assert resp.status_code == 201, resp.text
    token = cast(dict[str, object], resp.json()).get("token")
    assert isinstance(token, str) and token != ""
    return {"Authorization": f"Bearer {token}"}


def _save(
    client: TestClient,
    headers: dict[str, str],
    *,
    thread_id: str,
    content: object,
    version: int = 1,
    data_type: str = "document",
    force: bool = False,
) -> dict[str, object]:
    resp = client.post(
        "/api/sync",
        headers=headers,
        json={
            "threadId": thread_id,
            "dataType": data_type,
            "content": content,
            "version": version,
            "force": force,
        },
    )
    assert resp.status_code == 200, resp.text
    return cast(dict[str, object], resp.json())


def test_save_then_load_round_trip() -> None:
    with TestClient(app) as client:
        headers = _register(client)

        body = _save(client, headers, thread_id="thread-1", content={"blocks": ["hello"]})
        assert body["success"] is True
        assert body["message"] == "Data synced successfully"
        assert body["version"] == 1
        updated_at = body.get("updatedAt")
        assert isinstance(updated_at, str) and updated_at.endswith("Z")

        resp = client.get("/api/sync/thread-1", headers=headers)
        assert resp.status_code == 200, resp.text
        loaded = cast(dict[str, object], resp.json())
        assert loaded["success"] is True
        assert loaded["data"] == {"blocks": ["hello"]}
        assert loaded["version"] == 1
        assert loaded["dataType"] == "document"


def test_stale_save_returns_409_with_server_state() -> None:
    with TestClient(app) as client:
        headers = _register(client)
        _ = _save(client, headers, thread_id="t", content={"v": 4}, version=4)

        resp = client.post(
            "/api/sync",
            headers=headers,
            json={"threadId": "t", "dataType": "document", "content": {"v": 3}, "version": 3},
        )
        assert resp.status_code == 409
        body = cast(dict[str, object], resp.json())
        assert body["success"] is False
        assert body["conflict"] is True
        assert body["serverVersion"] == 4
        assert body["serverData"] == {"v": 4}
        server_updated_at = body.get("serverUpdatedAt")
        assert isinstance(server_updated_at, str) and server_updated_at.endswith("Z")

        forced = _save(client, headers, thread_id="t", content={"v": 3}, version=3, force=True)
        assert forced["version"] == 3


def test_save_validation_errors_are_400() -> None:
    with TestClient(app) as client:
        headers = _register(client)

        resp = client.post("/api/sync", headers=headers, json={"threadId": "t"})
        assert resp.status_code == 400
        body = cast(dict[str, object], resp.json())
        assert body["success"] is False
        assert body["error"] == "Missing required fields: threadId, dataType, content"

        resp = client.post(
            "/api/sync",
            headers=headers,
            json={"threadId": "t", "dataType": "slides", "content": {}},
        )
        assert resp.status_code == 400
        assert cast(dict[str, object], resp.json())["error"] == (
            "Invalid dataType. Must be: spreadsheet, document, or both"
        )

        resp = client.post(
            "/api/sync",
            headers=headers,
            json={"threadId": "t", "dataType": "document", "content": {}, "version": "abc"},
        )
        assert resp.status_code == 400
        assert "details" in cast(dict[str, object], resp.json())


def test_load_missing_thread_is_404() -> None:
    with TestClient(app) as client:
        headers = _register(client)
        resp = client.get("/api/sync/nope", headers=headers)
        assert resp.status_code == 404
        assert cast(dict[str, object], resp.json()) == {"success": False, "error": "Data not found"}


def test_history_restore_and_delete_flow() -> None:
    with TestClient(app) as client:
        headers = _register(client)
        _ = _save(client, headers, thread_id="t", content={"v": 1}, version=1)
        _ = _save(client, headers, thread_id="t", content={"v": 2}, version=2)

        resp = client.get("/api/sync/t/history", headers=headers)
        assert resp.status_code == 200, resp.text
        data = cast(dict[str, object], cast(dict[str, object], resp.json())["data"])
        current = cast(dict[str, object], data["current"])
        assert current["content"] == {"v": 2}
        history = cast(list[dict[str, object]], data["history"])
        assert len(history) == 1
        assert history[0]["backup_reason"] == "before_overwrite"
        assert cast(str, history[0]["created_at"]).endswith("Z")
        assert history[0]["seq"] == 1
        backup_id = history[0]["id"]

        resp = client.post("/api/sync/t/restore", headers=headers, json={"backupId": backup_id})
        assert resp.status_code == 200, resp.text
        restored = cast(dict[str, object], resp.json())
        assert restored["message"] == "Data restored successfully"
        assert restored["version"] == 2
        restored_at = restored.get("restoredAt")
        assert isinstance(restored_at, str) and restored_at.endswith("Z")

        loaded = cast(dict[str, object], client.get("/api/sync/t", headers=headers).json())
        assert loaded["data"] == {"v": 1}

        resp = client.delete("/api/sync/t", headers=headers)
        assert resp.status_code == 200
        deleted = cast(dict[str, object], resp.json())
        assert deleted["deleted"] is True
        assert deleted["message"] == "Data deleted successfully"

        assert client.get("/api/sync/t", headers=headers).status_code == 404

        resp = client.get("/api/sync/t/history?limit=5", headers=headers)
        data = cast(dict[str, object], cast(dict[str, object], resp.json())["data"])
        assert data["current"] is None
        reasons = [h["backup_reason"] for h in cast(list[dict[str, object]], data["history"])]
        assert reasons == ["before_delete", "before_restore", "before_overwrite"]

        again = cast(dict[str, object], client.delete("/api/sync/t", headers=headers).json())
        assert again["deleted"] is False
        assert again["message"] == "Nothing to delete"


def test_history_limit_out_of_range_is_400() -> None:
    with TestClient(app) as client:
        headers = _register(client)
        assert client.get("/api/sync/t/history?limit=0", headers=headers).status_code == 400
        assert client.get("/api/sync/t/history?limit=101", headers=headers).status_code == 400


def test_restore_requires_backup_id_and_ownership() -> None:
    with TestClient(app) as client:
        owner = _register(client)
        other = _register(client)
        _ = _save(client, owner, thread_id="t", content={"v": 1})
        _ = _save(client, owner, thread_id="t", content={"v": 2})

        history = cast(
            dict[str, object], client.get("/api/sync/t/history", headers=owner).json()
        )
        backup_id = cast(list[dict[str, object]], cast(dict[str, object], history["data"])["history"])[
            0
        ]["id"]

        resp = client.post("/api/sync/t/restore", headers=owner, json={})
        assert resp.status_code == 400
        assert cast(dict[str, object], resp.json())["error"] == "backupId is required"

        resp = client.post("/api/sync/t/restore", headers=other, json={"backupId": backup_id})
        assert resp.status_code == 404
        assert cast(dict[str, object], resp.json())["error"] == "Backup not found"


def test_stats_route_is_not_a_thread_id() -> None:
    with TestClient(app) as client:
        headers = _register(client)
        _ = _save(client, headers, thread_id="a", content={"v": 1}, data_type="document")
        _ = _save(client, headers, thread_id="b", content=[[1, 2]], data_type="spreadsheet")
        _ = _save(client, headers, thread_id="a", content={"v": 2}, version=2, data_type="document")

        resp = client.get("/api/sync/stats", headers=headers)
        assert resp.status_code == 200, resp.text
        data = cast(dict[str, object], cast(dict[str, object], resp.json())["data"])
        assert data["threadCount"] == 2
        assert data["backupCount"] == 1
        storage = cast(dict[str, object], data["storageStats"])
        assert storage["thread_count"] == 2
        assert storage["document_count"] == 1
        assert storage["spreadsheet_count"] == 1


def test_documents_are_isolated_per_user() -> None:
    with TestClient(app) as client:
        alice = _register(client)
        bob = _register(client)
        _ = _save(client, alice, thread_id="shared-name", content={"owner": "alice"})

        assert client.get("/api/sync/shared-name", headers=bob).status_code == 404
        _ = _save(client, bob, thread_id="shared-name", content={"owner": "bob"})

        a = cast(dict[str, object], client.get("/api/sync/shared-name", headers=alice).json())
        b = cast(dict[str, object], client.get("/api/sync/shared-name", headers=bob).json())
        assert a["data"] == {"owner": "alice"}
        assert b["data"] == {"owner": "bob"}


def test_sync_requires_bearer_token() -> None:
    with TestClient(app) as client:
        resp = client.get("/api/sync/t")
        assert resp.status_code == 401
        assert cast(dict[str, object], resp.json())["error"] == "Access token required"

        resp = client.get("/api/sync/t", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 403
        assert cast(dict[str, object], resp.json())["error"] == "Invalid or expired token"


def test_falsy_content_is_missing_but_empty_containers_are_not() -> None:
    with TestClient(app) as client:
        headers = _register(client)

        for content in ("", 0, False):
            resp = client.post(
                "/api/sync",
                headers=headers,
                json={"threadId": "t", "dataType": "document", "content": content},
            )
            assert resp.status_code == 400, content
            assert cast(dict[str, object], resp.json())["error"] == (
                "Missing required fields: threadId, dataType, content"
            )

        assert _save(client, headers, thread_id="obj", content={})["version"] == 1
        assert _save(client, headers, thread_id="arr", content=[])["version"] == 1


def test_store_failure_on_load_is_500_with_message(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(*_args: object, **_kwargs: object) -> None:
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    with TestClient(app) as client:
        headers = _register(client)
        monkeypatch.setattr(SyncEngine, "_current", _boom)

        resp = client.get("/api/sync/t", headers=headers)
        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "error": "Internal server error while retrieving data",
        }
