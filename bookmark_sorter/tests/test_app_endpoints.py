import time

from fastapi.testclient import TestClient


def _patch_classifier(monkeypatch, app_module, answer="News"):
    prompts = []

    async def fake_classify(prompt, config):
        prompts.append((prompt, config))
        return answer

    monkeypatch.setattr(app_module.orchestrator, "_classify", fake_classify)
    return prompts


def test_healthcheck(sorter_env):
    app_module = sorter_env["app"]

    with TestClient(app_module.app) as client:
        assert client.get("/healthz").json() == {"status": "ok"}


def test_manual_classification_flow(sorter_env, monkeypatch):
    app_module = sorter_env["app"]
    prompts = _patch_classifier(monkeypatch, app_module)

    with TestClient(app_module.app) as client:
        response = client.post(
            "/api/classify",
            json={"url": "https://example.com/a", "title": "A page", "extract": False},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["category"] == "News"
        assert body["created"] is True

        folders = client.get("/api/folders").json()
        assert [folder["title"] for folder in folders["folders"]] == ["News"]

        tree = client.get("/api/bookmarks/tree").json()
        assert tree["children"][0]["children"][0]["url"] == "https://example.com/a"

        history = client.get("/api/history").json()
        assert [(item["title"], item["category"], item["status"]) for item in history] == [
            ("A page", "News", "success")
        ]

        cleared = client.delete("/api/history").json()
        assert cleared == {"ok": True, "removed": 1}
        assert client.get("/api/history").json() == []

    assert len(prompts) == 1
    assert prompts[0][1].provider_id == "default"


def test_classify_rejects_empty_url(sorter_env):
    app_module = sorter_env["app"]

    with TestClient(app_module.app) as client:
        response = client.post("/api/classify", json={"url": ""})
        assert response.status_code == 422


def test_notifications_reach_the_triggering_surface(sorter_env, monkeypatch):
    app_module = sorter_env["app"]
    _patch_classifier(monkeypatch, app_module, answer="Reading")

    with TestClient(app_module.app) as client:
        with client.websocket_connect("/ws/notifications?surface=popup") as ws:
            assert ws.receive_json() == {"type": "hello", "surface": "popup"}
            response = client.post(
                "/api/classify",
                json={"url": "https://example.com/b", "title": "B", "surface": "popup", "extract": False},
            )
            assert response.json()["success"] is True
            assert ws.receive_json() == {
                "type": "SHOW_TOAST",
                "message": "Bookmarked to Reading",
                "status": "success",
            }


def test_config_round_trip_hides_api_key(sorter_env):
    app_module = sorter_env["app"]

    with TestClient(app_module.app) as client:
        initial = client.get("/api/config").json()
        assert initial["llm_provider"] == "default"
        assert initial["has_api_key"] is False

        response = client.put(
            "/api/config",
            json={
                "llm_provider": "deepseek",
                "api_key": "sk-secret",
                "folder_policy": "medium",
                "enable_smart_rename": True,
                "language": "en",
                "disabled_domains": ["intranet.local"],
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["llm_provider"] == "deepseek"
        assert body["has_api_key"] is True
        assert body["folder_policy"] == "medium"
        assert body["disabled_domains"] == ["intranet.local"]
        assert "api_key" not in body
        assert "sk-secret" not in response.text


def test_config_rejects_doubao_without_model(sorter_env):
    app_module = sorter_env["app"]

    with TestClient(app_module.app) as client:
        response = client.put("/api/config", json={"llm_provider": "doubao", "language": "en"})
        assert response.status_code == 400


def test_page_snapshot_is_bounded(sorter_env, monkeypatch):
    app_module = sorter_env["app"]
    monkeypatch.setattr(app_module.S, "EXTRACT_BODY_CHARS", 12)

    with TestClient(app_module.app) as client:
        response = client.post(
            "/api/pages",
            json={"url": "https://example.com/c", "description": "d", "body": "lots   of\n\nwhitespace here"},
        )
        assert response.status_code == 200
        assert response.json()["body_excerpt"] == "lots of whit"


def test_bookmark_management_endpoints(sorter_env):
    app_module = sorter_env["app"]

    with TestClient(app_module.app) as client:
        client.put(
            "/api/config",
            json={"llm_provider": "default", "language": "en", "disabled_domains": ["example.org"]},
        )
        created = client.post("/api/bookmarks", json={"url": "https://example.org/x", "title": "X"}).json()
        root_id = created["parent_id"]

        renamed = client.patch(f"/api/bookmarks/{created['id']}", json={"title": "Better X"})
        assert renamed.json()["title"] == "Better X"

        assert client.patch(f"/api/bookmarks/{created['id']}", json={}).status_code == 400
        assert client.post(f"/api/bookmarks/{created['id']}/move", json={"parent_id": 9999}).status_code == 404
        assert client.post(f"/api/bookmarks/{created['id']}/move", json={"parent_id": root_id}).status_code == 200
        assert client.delete(f"/api/folders/{root_id}").status_code == 400

        assert client.delete(f"/api/bookmarks/{created['id']}").json() == {"ok": True}
        assert client.delete(f"/api/bookmarks/{created['id']}").status_code == 404
        assert client.get("/api/bookmarks/tree").json()["children"] == []


def test_natively_created_bookmark_is_filed_in_the_background(sorter_env, monkeypatch):
    app_module = sorter_env["app"]
    prompts = _patch_classifier(monkeypatch, app_module, answer="Reading")
    url = "https://example.com/native"

    with TestClient(app_module.app) as client:
        client.post("/api/pages", json={"url": url, "description": "long read", "body": "text"})
        created = client.post("/api/bookmarks", json={"url": url, "title": "Native"}).json()
        assert created["parent_id"] == client.get("/api/folders").json()["root_id"]

        deadline = time.monotonic() + 5
        tree = client.get("/api/bookmarks/tree").json()
        while time.monotonic() < deadline and not any(node.get("children") for node in tree["children"]):
            time.sleep(0.02)
            tree = client.get("/api/bookmarks/tree").json()

        [reading] = tree["children"]
        assert [(child["id"], child["url"]) for child in reading["children"]] == [(created["id"], url)]

    assert len(prompts) == 1


def test_config_reports_an_unknown_configured_provider(sorter_env, monkeypatch):
    app_module = sorter_env["app"]
    monkeypatch.setattr(app_module.S, "LLM_PROVIDER", "mystery")

    with TestClient(app_module.app) as client:
        response = client.get("/api/config")

    assert response.status_code == 500
    assert "mystery" in response.json()["detail"]
