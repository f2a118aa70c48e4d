"""Relay forwarding and end-of-turn persistence with a canned upstream"""

import asyncio
import json

import pytest

from conftest import FakeUpstream, sse
from xhsnova.config import NEW_CARD_PLACEHOLDER
from xhsnova.database import Database
from xhsnova.exceptions import DatabaseError, StreamTransportError
from xhsnova.relay import DONE_FRAME, ChatRelay, forward_events

TOOL_OUTPUT = {
    "keyword": "防晒",
    "cards": [{"id": "note-1", "title": "防晒实测", "author": "小红薯", "like_count": 88}],
    "insights": [{"title": "趋势", "text": "清爽型更受欢迎"}],
}

TURN = [
    {"event": "agent_thought", "thought": "先搜索一下", "conversation_id": "conv-new"},
    {"event": "tool_calls", "tool_calls": [{"tool_name": "search", "tool_output": json.dumps(TOOL_OUTPUT, ensure_ascii=False)}]},
    {"event": "agent_message", "answer": "给你写好了：<new_xhs_card title=\"防晒", "conversation_id": "conv-new"},
    {"event": "future_event", "data": {"anything": True}},
    {"event": "agent_message", "answer": "笔记\">内容正文</new_xhs_card>", "conversation_id": "conv-new"},
    {"event": "message_end", "conversation_id": "conv-new"},
]


async def collect(frames, stop_after=None):
    out = []
    async for frame in frames:
        out.append(frame)
        if stop_after is not None and len(out) >= stop_after:
            break
    return out


def run_relay(db, project_id, chunks, previous_conversation_id=None, **kwargs):
    upstream = FakeUpstream(chunks, **kwargs)
    relay = ChatRelay(db, project_id, previous_conversation_id)
    frames = asyncio.run(collect(relay.stream(upstream)))
    return relay, upstream, frames


def test_full_turn_is_forwarded_and_persisted(db, project):
    relay, upstream, frames = run_relay(db, project["id"], [sse(frame) for frame in TURN])

    assert frames == [sse(frame) for frame in TURN] + [DONE_FRAME]
    assert upstream.closed

    assert db.get_project(project["id"])["conversation_id"] == "conv-new"

    card = db.find_card_by_title(project["id"], "防晒笔记")
    assert card["content"] == "内容正文"

    [message] = db.get_messages(project["id"])
    assert message["role"] == "assistant"
    assert message["content"] == f"给你写好了：{NEW_CARD_PLACEHOLDER}"
    assert message["associated_card_id"] == card["id"]

    raw = message["llm_raw_output"]
    assert raw["original_content"].endswith("内容正文</new_xhs_card>")
    assert raw["processing_summary"]["total_events"] == len(TURN)
    assert raw["processing_summary"]["cards_created"] == 1
    assert raw["thoughts_log"][0]["thought"] == "先搜索一下"

    [item] = db.list_canvas_items(project["id"])
    assert (item["external_id"], item["keyword"], item["like_count"]) == ("note-1", "防晒", 88)
    assert [i["content"] for i in db.list_insights(project["id"])] == ["清爽型更受欢迎"]


def test_chunking_does_not_change_output(db, project):
    body = "".join(sse(frame) for frame in TURN).encode("utf-8")
    chunks = [body[i:i + 7] for i in range(0, len(body), 7)]

    _, _, frames = run_relay(db, project["id"], chunks)

    assert frames == [sse(frame) for frame in TURN] + [DONE_FRAME]


def test_known_conversation_id_is_not_rewritten(db, project):
    db.update_project_conversation_id(project["id"], "conv-old")
    before = db.get_project(project["id"])["updated_at"]
    chunks = [sse({"event": "message", "answer": "hi", "conversation_id": "conv-old"}),
              sse({"event": "message_end", "conversation_id": "conv-old"})]

    run_relay(db, project["id"], chunks, previous_conversation_id="conv-old")

    assert db.get_project(project["id"])["updated_at"] == before


def test_frames_after_message_end_are_not_forwarded(db, project):
    chunks = [sse({"event": "message_end", "conversation_id": "c"}), sse({"event": "message", "answer": "late"})]
    _, upstream, frames = run_relay(db, project["id"], chunks)

    assert frames == [chunks[0], DONE_FRAME]
    assert upstream.pulled == 1
    assert upstream.closed


def test_stream_without_message_end_persists_nothing(db, project):
    chunks = [sse({"event": "message", "answer": "partial"}), "data: [DONE]\n\n"]
    relay, upstream, frames = run_relay(db, project["id"], chunks)

    assert frames == [chunks[0], DONE_FRAME]
    assert not relay.finalized
    assert db.get_messages(project["id"]) == []
    assert upstream.closed


def test_update_of_missing_card_still_stores_message(db, project):
    chunks = [
        sse({"event": "message", "answer": '<update_xhs_card card_ref_id="幽灵">x</update_xhs_card>'}),
        sse({"event": "message_end"}),
    ]
    run_relay(db, project["id"], chunks)

    [message] = db.get_messages(project["id"])
    assert message["associated_card_id"] is None
    assert message["llm_raw_output"]["processing_summary"]["directives_skipped"] == 1


def test_transport_error_propagates_and_releases_upstream(db, project):
    upstream = FakeUpstream([sse({"event": "message", "answer": "a"})], error=StreamTransportError("connection reset"))
    relay = ChatRelay(db, project["id"])
    received = []

    async def consume():
        async for frame in relay.stream(upstream):
            received.append(frame)

    with pytest.raises(StreamTransportError):
        asyncio.run(consume())

    assert received == [sse({"event": "message", "answer": "a"})]
    assert upstream.closed
    assert db.get_messages(project["id"]) == []


def test_client_disconnect_releases_upstream(db, project):
    upstream = FakeUpstream([sse(frame) for frame in TURN])
    relay = ChatRelay(db, project["id"])

    async def disconnect_early():
        frames = relay.stream(upstream)
        first = await frames.__anext__()
        await frames.aclose()
        return first

    first = asyncio.run(disconnect_early())

    assert first == sse(TURN[0])
    assert upstream.closed
    assert upstream.pulled == 1
    assert not relay.finalized


def test_closing_before_first_frame_releases_upstream(db, project):
    chat_upstream = FakeUpstream([sse(frame) for frame in TURN])
    research_upstream = FakeUpstream([sse({"keywords": ["防晒"]})])
    relay = ChatRelay(db, project["id"])

    async def close_unstarted():
        await relay.stream(chat_upstream).aclose()
        await forward_events(research_upstream).aclose()

    asyncio.run(close_unstarted())

    assert chat_upstream.closed and chat_upstream.pulled == 0
    assert research_upstream.closed and research_upstream.pulled == 0
    assert not relay.finalized
    assert db.get_messages(project["id"]) == []


class FailingMessageStore(Database):
    def create_message(self, *args, **kwargs):
        raise DatabaseError("disk full")


def test_persistence_failure_becomes_error_frame(tmp_path):
    db = FailingMessageStore(tmp_path / "nova.db")
    db.initialize_schema()
    project = db.create_project("p")

    _, upstream, frames = run_relay(db, project["id"], [sse({"event": "message_end"})])

    assert frames == [
        sse({"event": "message_end"}),
        sse({"type": "error", "error": "disk full"}),
        DONE_FRAME,
    ]
    assert upstream.closed


def test_forward_events_relays_research_stream():
    chunks = [
        sse({"keywords": ["春季护肤", "防晒"]}),
        sse({"keyword": "防晒", "cards": []}),
        "data: [DONE]\n\n",
    ]
    upstream = FakeUpstream(chunks)
    seen = []

    frames = asyncio.run(collect(forward_events(upstream, on_event=seen.append)))

    assert frames == chunks[:2] + [DONE_FRAME]
    assert [event.kind for event in seen] == ["keywords", "cards"]
    assert upstream.closed
