"""Persistence gateway against a scratch SQLite file"""

import pytest

from xhsnova.exceptions import DatabaseError, ProjectNotFoundError


def test_project_crud(db):
    project = db.create_project("夏日防晒", user_id="u1", user_background={"city": "上海"})
    assert project["conversation_id"] is None
    assert project["user_background"] == {"city": "上海"}

    assert [p["id"] for p in db.list_projects("u1")] == [project["id"]]
    assert db.list_projects("someone-else") == []

    updated = db.update_project(project["id"], title="夏日防晒指南", ignored="x")
    assert updated["title"] == "夏日防晒指南"

    db.update_project_conversation_id(project["id"], "conv-42")
    assert db.get_project(project["id"])["conversation_id"] == "conv-42"

    assert db.delete_project(project["id"])
    assert db.get_project(project["id"]) is None
    with pytest.raises(ProjectNotFoundError):
        db.require_project(project["id"])


def test_card_crud_and_title_lookup(db, project):
    first = db.create_card(project["id"], title="标题A", content="one", card_order=2)
    second = db.create_card(project["id"], title="标题B", content="two", card_order=1)

    assert [c["id"] for c in db.list_cards(project["id"])] == [second["id"], first["id"]]
    assert db.find_card_by_title(project["id"], "标题A")["id"] == first["id"]
    assert db.find_card_by_title(project["id"], "标题") is None

    assert db.update_card_by_title(project["id"], "标题A", "changed")["content"] == "changed"
    assert db.update_card_by_title(project["id"], "不存在", "x") is None

    assert db.get_card(first["id"], project_id="other-project") is None
    assert db.delete_card(first["id"])
    assert not db.delete_card(first["id"])


def test_messages_keep_raw_output(db, project):
    db.create_message(project["id"], "user", "写一篇笔记")
    reply = db.create_message(
        project["id"], "assistant", "[新卡片已创建]",
        llm_raw_output={"original_content": "<new_xhs_card>...</new_xhs_card>"}
    )

    messages = db.get_messages(project["id"])
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[1]["llm_raw_output"]["original_content"].startswith("<new_xhs_card>")
    assert [m["id"] for m in db.get_messages(project["id"], limit=1)] == [reply["id"]]


def test_canvas_items_and_insights(db, project):
    saved = db.bulk_create_canvas_items(project["id"], [
        {"external_id": "n1", "title": "笔记1", "keyword": "防晒", "tags": ["防晒", "夏天"], "like_count": None},
        {"external_id": "n2", "title": "笔记2", "keyword": "补水"},
    ])
    assert [item["external_id"] for item in saved] == ["n1", "n2"]
    assert saved[0]["tags"] == ["防晒", "夏天"]
    assert saved[0]["like_count"] == 0
    assert saved[1]["platform"] == "xiaohongshu"
    assert db.bulk_create_canvas_items(project["id"], []) == []

    db.bulk_create_insights(project["id"], [{"title": "趋势", "content": "清爽型更受欢迎"}])
    assert [i["type"] for i in db.list_insights(project["id"])] == ["insight"]

    assert db.delete_canvas_items(project["id"]) == 2
    assert db.delete_insights(project["id"]) == 1
    assert db.list_canvas_items(project["id"]) == []


def test_deleting_project_cascades(db, project):
    db.create_card(project["id"], title="t")
    db.create_message(project["id"], "user", "hi")
    db.delete_project(project["id"])
    assert db.list_cards(project["id"]) == []
    assert db.get_messages(project["id"]) == []


def test_foreign_key_violation_is_wrapped(db):
    with pytest.raises(DatabaseError):
        db.create_card("no-such-project", title="orphan")
