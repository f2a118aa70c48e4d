"""HTTP routes through FastAPI's TestClient with canned upstream clients"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeUpstream, sse
from servers.app import app
from servers.routers import chat as chat_routes
from servers.routers import projects as project_routes
from xhsnova.exceptions import UpstreamError
from xhsnova.relay import DONE_FRAME


class FakeDifyClient:
    def __init__(self, chunks=(), error=None):
        self.chunks = list(chunks)
        self.error = error
        self.calls = []
        self.upstreams = []

    async def open_chat_stream(self, query, conversation_id, user):
        self.calls.append({"query": query, "conversation_id": conversation_id, "user": user})
        if self.error is not None:
            raise self.error
        upstream = FakeUpstream(self.chunks)
        self.upstreams.append(upstream)
        return upstream


class FakeBluechatClient:
    def __init__(self, chunks=()):
        self.chunks = list(chunks)
        self.requests = []

    async def open_stream(self, request):
        self.requests.append(request)
        return FakeUpstream(self.chunks)


class FakeDeepSeekClient:
    async def complete(self, user_message, system_prompt=None):
        return {"content": "这是一篇笔记", "role": "assistant", "raw": {"prompt": user_message}}


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setattr(chat_routes.chat_service, "db", db)
    monkeypatch.setattr(project_routes.project_service, "db", db)
    return TestClient(app)


def use_dify(monkeypatch, fake):
    monkeypatch.setattr(chat_routes.chat_service, "dify_client", fake)
    return fake


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_project_and_card_routes(client):
    created = client.post("/api/projects", json={"title": "露营穿搭", "user_id": "u1"}).json()
    project_id = created["id"]

    assert [p["id"] for p in client.get("/api/projects", params={"user_id": "u1"}).json()["projects"]] == [project_id]
    assert client.patch(f"/api/projects/{project_id}", json={"title": "秋季露营"}).json()["title"] == "秋季露营"

    card = client.post(f"/api/projects/{project_id}/cards", json={"title": "清单", "content": "帐篷"}).json()
    updated = client.patch(f"/api/projects/{project_id}/cards/{card['id']}", json={"content": "帐篷 睡袋"}).json()
    assert updated["content"] == "帐篷 睡袋"

    project = client.get(f"/api/projects/{project_id}").json()
    assert [c["title"] for c in project["cards"]] == ["清单"]

    assert client.delete(f"/api/projects/{project_id}/cards/{card['id']}").json()["success"]
    assert client.delete(f"/api/projects/{project_id}/cards/{card['id']}").status_code == 404

    assert client.delete(f"/api/projects/{project_id}").json()["success"]
    assert client.get(f"/api/projects/{project_id}").status_code == 404


def test_patch_with_null_fields_keeps_stored_values(client, project):
    response = client.patch(f"/api/projects/{project['id']}", json={"title": None})
    assert response.status_code == 200
    assert response.json()["title"] == project["title"]

    card = client.post(f"/api/projects/{project['id']}/cards", json={"title": "清单", "content": "帐篷"}).json()
    response = client.patch(
        f"/api/projects/{project['id']}/cards/{card['id']}",
        json={"content": None, "card_order": None, "title": "新清单"}
    )
    assert response.status_code == 200
    assert response.json()["content"] == "帐篷"
    assert response.json()["title"] == "新清单"


def test_chat_stream_relays_and_persists(client, project, db, monkeypatch):
    turn = [
        {"event": "message", "answer": "<new_xhs_card title=\"标题\">正文</new_xhs_card>", "conversation_id": "conv-9"},
        {"event": "future_event", "value": 1},
        {"event": "message_end", "conversation_id": "conv-9"},
    ]
    dify = use_dify(monkeypatch, FakeDifyClient([sse(frame) for frame in turn]))
    reference_card = db.create_card(project["id"], title="旧稿", content="旧稿正文")

    response = client.post("/api/chat/stream", json={
        "project_id": project["id"],
        "core_instruction": "帮我写一篇",
        "system_messages": ["你是助手", "语气活泼"],
        "references": [
            {"card_id": reference_card["id"], "card_friendly_title": "旧稿", "type": "full_card", "user_remark": "参考语气"},
            {"card_id": "missing", "type": "text_snippet", "snippet_content": "不会出现"},
        ],
    })

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.text == "".join(sse(frame) for frame in turn) + DONE_FRAME
    assert dify.upstreams[0].closed

    [call] = dify.calls
    assert call["user"] == f"project_{project['id']}"
    assert call["conversation_id"] == ""
    assert call["query"].startswith("你是助手\n\n语气活泼\n\n用户当前请求：帮我写一篇")
    assert "用户备注：\"参考语气\"" in call["query"]
    assert "旧稿正文" in call["query"]
    assert "不会出现" not in call["query"]

    assert [m["role"] for m in db.get_messages(project["id"])] == ["user", "assistant"]
    assert db.get_project(project["id"])["conversation_id"] == "conv-9"
    assert db.find_card_by_title(project["id"], "标题")["content"] == "正文"


def test_upstream_failure_returns_json_500(client, project, monkeypatch):
    use_dify(monkeypatch, FakeDifyClient(error=UpstreamError("Dify", 502, "bad gateway")))

    response = client.post("/api/chat/stream", json={"project_id": project["id"], "core_instruction": "写"})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["error"] == "Dify API error: 502 - bad gateway"


def test_chat_stream_rejects_unknown_project_and_blank_instruction(client, project, monkeypatch):
    dify = use_dify(monkeypatch, FakeDifyClient())

    assert client.post("/api/chat/stream", json={"project_id": "nope", "core_instruction": "写"}).status_code == 404
    assert client.post("/api/chat/stream", json={"project_id": project["id"], "core_instruction": "  "}).status_code == 400
    assert dify.calls == []


def test_bluechat_accepts_selected_ids(client, monkeypatch):
    frames = [sse({"keywords": ["防晒"]}), sse({"keyword": "防晒", "cards": []})]
    fake = FakeBluechatClient(frames)
    monkeypatch.setattr(chat_routes.chat_service, "bluechat_client", fake)

    response = client.post("/api/bluechat/stream", json={
        "stage": "STAGE_2",
        "query": "防晒",
        "user_id": "u1",
        "session_id": "s1",
        "selected_ids": ["n1", "n2"],
    })

    assert response.status_code == 200
    assert response.text == "".join(frames) + DONE_FRAME
    assert fake.requests[0]["ids"] == ["n1", "n2"]
    assert fake.requests[0]["stage"] == "STAGE_2"


def test_deepseek_completion_is_stored(client, project, db, monkeypatch):
    monkeypatch.setattr(chat_routes.chat_service, "deepseek_client", FakeDeepSeekClient())

    response = client.post("/api/chat/deepseek", json={"project_id": project["id"], "core_instruction": "写一篇"})

    assert response.status_code == 200
    assert response.json()["content"] == "这是一篇笔记"
    messages = db.get_messages(project["id"])
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[1]["llm_raw_output"] == {"prompt": "写一篇"}


def test_canvas_routes(client, project, db):
    db.bulk_create_canvas_items(project["id"], [{"external_id": "n1", "title": "一", "keyword": "防晒"}])
    db.bulk_create_insights(project["id"], [{"title": "总结", "content": "..."}])

    canvas = client.get(f"/api/projects/{project['id']}/canvas").json()
    assert canvas["keywords"] == ["防晒"]
    assert canvas["phase"] == "settled"
    assert [i["title"] for i in canvas["insights"]] == ["总结"]

    cleared = client.delete(f"/api/projects/{project['id']}/canvas").json()
    assert cleared["canvas_items_deleted"] == 1
    assert client.get(f"/api/projects/{project['id']}/insights").json()["insights"] == []
