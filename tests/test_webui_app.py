from __future__ import annotations

import importlib
from pathlib import Path

from fastapi.testclient import TestClient

from hueshare.store import CATEGORIES, TAGS, StoreError

API = "/hueshare/api/v1"
ORG = "org-1"
BASE = f"{API}/organizations/{ORG}/sharing-tags"


def _build_app(tmp_path: Path, monkeypatch, **env):
    monkeypatch.setenv("WEB_BASE_PATH", "/hueshare")
    monkeypatch.setenv("HUESHARE_STORE", "sqlite")
    monkeypatch.setenv("HUESHARE_DB_PATH", str(tmp_path / "taxonomy.db"))
    monkeypatch.setenv("HUESHARE_COMMIT_WORKERS", "1")
    monkeypatch.delenv("HUESHARE_START_EDITING", raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    app_module = importlib.import_module("hueshare.webui_server.app")
    importlib.reload(app_module)
    return app_module.create_app()


def test_edit_commit_and_lookup_flow(tmp_path: Path, monkeypatch):
    app = _build_app(tmp_path, monkeypatch)

    with TestClient(app) as client:
        health = client.get(f"{API}/health")
        assert health.status_code == 200
        assert health.json()["ok"] is True
        assert health.json()["store"] == "sqlite"

        state = client.get(BASE).json()
        assert state["categories"] == []
        assert state["editing"] is False

        assert client.get(f"{BASE}/tag-lookup").json() == {"items": []}

        assert client.post(f"{BASE}/editing", json={"editing": True}).json()["editing"] is True

        created = client.post(f"{BASE}/categories", json={"name": "Colors"})
        assert created.status_code == 201
        colors_temp = created.json()["item"]["id"]
        assert colors_temp.startswith("temp-")
        assert created.json()["state"]["selected_category_id"] == colors_temp

        child = client.post(f"{BASE}/categories", json={"name": "Warm", "parent_id": colors_temp})
        assert child.status_code == 201

        warm_tag = client.post(f"{BASE}/tags", json={"name": "Warm"})
        assert warm_tag.json()["item"]["category_id"] == colors_temp
        red = client.post(
            f"{BASE}/tags",
            json={"name": "Red", "pendingParentTags": [warm_tag.json()["item"]["id"]]},
        )
        assert red.status_code == 201
        assert red.json()["item"]["displayParentTags"] == ["Warm"]
        assert red.json()["state"]["has_pending_changes"] is True

        committed = client.post(f"{BASE}/commit")
        assert committed.status_code == 200
        body = committed.json()
        assert body["state"]["has_pending_changes"] is False
        assert body["report"]["counts"]["categories_created"] == 2
        assert body["report"]["counts"]["tag_edges_created"] == 1
        levels = {row["name"]: row["level"] for row in body["state"]["categories"]}
        assert levels == {"Colors": 0, "Warm": 1}

        red_id = body["report"]["tag_ids"][red.json()["item"]["id"]]
        warm_id = body["report"]["tag_ids"][warm_tag.json()["item"]["id"]]
        assert client.get(f"{BASE}/tags/{red_id}/parents").json()["items"] == [warm_id]

        lookup = client.get(f"{BASE}/tag-lookup").json()["items"]
        assert [row["label"] for row in lookup] == ["Colors: Red", "Colors: Warm"]


def test_validation_selection_and_discard(tmp_path: Path, monkeypatch):
    app = _build_app(tmp_path, monkeypatch, HUESHARE_START_EDITING="true")

    with TestClient(app) as client:
        assert client.post(f"{BASE}/categories", json={"name": "   "}).status_code == 422
        assert client.post(f"{BASE}/tags", json={"name": "Orphan"}).status_code == 422
        assert client.post(f"{BASE}/select", json={"category_id": "nope"}).status_code == 404

        created = client.post(f"{BASE}/categories", json={"name": "Draft"}).json()["item"]
        renamed = client.put(f"{BASE}/categories/{created['id']}", json={"name": "Renamed"})
        assert renamed.status_code == 200
        assert renamed.json()["item"]["isNew"] is True

        discarded = client.post(f"{BASE}/discard")
        assert discarded.status_code == 200
        assert discarded.json()["has_pending_changes"] is False
        assert discarded.json()["categories"] == []

        services = app.state.services
        assert services.store.select_all(CATEGORIES, ORG) == []


def test_commit_failure_keeps_buffer(tmp_path: Path, monkeypatch):
    app = _build_app(tmp_path, monkeypatch, HUESHARE_START_EDITING="1")

    with TestClient(app) as client:
        client.post(f"{BASE}/categories", json={"name": "Doomed"})
        store = app.state.services.store

        def _broken_insert(collection, record, tenant):
            raise StoreError("backend offline", collection=collection, operation="insert", status_code=503)

        monkeypatch.setattr(store, "insert", _broken_insert)

        failed = client.post(f"{BASE}/commit")
        assert failed.status_code == 502
        assert failed.json()["detail"].startswith("Saving changes failed:")
        assert "backend offline" in failed.json()["detail"]

        state = client.get(BASE).json()
        assert state["has_pending_changes"] is True
        assert [row["name"] for row in state["pending_changes"]["categories"]] == ["Doomed"]


def test_unknown_and_foreign_ids_are_rejected(tmp_path: Path, monkeypatch):
    app = _build_app(tmp_path, monkeypatch, HUESHARE_START_EDITING="true")

    with TestClient(app) as client:
        store = app.state.services.store
        shapes = store.insert(CATEGORIES, {"name": "Shapes"}, "org-2")["id"]
        round_ = store.insert(TAGS, {"name": "Round", "category_id": shapes}, "org-2")["id"]
        colors = store.insert(CATEGORIES, {"name": "Colors"}, ORG)["id"]

        assert client.put(f"{BASE}/categories/{shapes}", json={"name": "Mine"}).status_code == 404
        assert client.delete(f"{BASE}/categories/{shapes}").status_code == 404
        assert client.put(f"{BASE}/tags/{round_}", json={"name": "Mine"}).status_code == 404
        assert client.delete(f"{BASE}/tags/temp-unknown").status_code == 404

        foreign_category = client.post(f"{BASE}/tags", json={"name": "Square", "category_id": shapes})
        assert foreign_category.status_code == 422
        foreign_parent = client.post(
            f"{BASE}/tags",
            json={"name": "Square", "category_id": colors, "pendingParentTags": [round_]},
        )
        assert foreign_parent.status_code == 422

        assert client.get(BASE).json()["has_pending_changes"] is False
        assert [row["name"] for row in store.select_all(CATEGORIES, "org-2")] == ["Shapes"]
        assert [row["name"] for row in store.select_all(TAGS, "org-2")] == ["Round"]


def test_failed_first_load_does_not_keep_empty_session(tmp_path: Path, monkeypatch):
    app = _build_app(tmp_path, monkeypatch)

    with TestClient(app) as client:
        store = app.state.services.store
        store.insert(CATEGORIES, {"name": "Colors"}, ORG)
        real_select_all = store.select_all
        calls: list[str] = []

        def _flaky_select_all(collection, tenant, **kwargs):
            calls.append(collection)
            if len(calls) == 1:
                raise StoreError("backend offline", collection=collection, operation="select")
            return real_select_all(collection, tenant, **kwargs)

        monkeypatch.setattr(store, "select_all", _flaky_select_all)

        assert client.get(BASE).status_code == 502
        state = client.get(BASE).json()
        assert [row["name"] for row in state["categories"]] == ["Colors"]
