"""Line buffering and SSE decoding"""

import asyncio

from conftest import sse
from xhsnova.streaming import (
    AnswerEvent,
    CardsEvent,
    InsightEvent,
    KeywordsEvent,
    LineBuffer,
    MessageEndEvent,
    SSEDecoder,
    StateInfoEvent,
    UnknownEvent,
    aiter_events,
    classify_event,
    iter_events,
    split_lines,
)

FRAMES = [
    {"event": "message", "answer": "春季护肤✨", "conversation_id": "conv-1"},
    {"event": "future_event", "payload": {"nested": [1, 2, 3]}},
    {"event": "message_end", "conversation_id": "conv-1"},
]
BODY = "".join(sse(frame) for frame in FRAMES).encode("utf-8")


def raws(events):
    return [event.raw for event in events]


def test_split_lines_keeps_remainder():
    lines, remainder = split_lines("da", "ta: 1\ndata: 2\r\nda")
    assert lines == ["data: 1", "data: 2"]
    assert remainder == "da"


def test_every_split_point_decodes_the_same_events():
    expected = raws(iter_events([BODY]))
    assert expected == FRAMES

    # Cuts land mid-line, inside the "data: " prefix and inside multi-byte characters
    for cut in range(1, len(BODY)):
        assert raws(iter_events([BODY[:cut], BODY[cut:]])) == expected, f"split at byte {cut}"


def test_byte_at_a_time_stream():
    chunks = [BODY[i:i + 1] for i in range(len(BODY))]
    assert raws(iter_events(chunks)) == FRAMES


def test_multibyte_character_split_is_not_corrupted():
    buffer = LineBuffer()
    encoded = "data: 护肤\n".encode("utf-8")
    # "护" is three bytes; split inside it
    cut = len("data: ".encode("utf-8")) + 1
    assert buffer.feed(encoded[:cut]) == []
    assert buffer.feed(encoded[cut:]) == ["data: 护肤"]


def test_done_sentinel_ends_stream_once():
    body = sse({"event": "message", "answer": "a"}) + "data: [DONE]\n\n" + sse({"event": "message", "answer": "b"})
    events = list(iter_events([body.encode("utf-8")]))
    assert raws(events) == [{"event": "message", "answer": "a"}]

    decoder = SSEDecoder()
    assert decoder.decode_line("data: [DONE]") is None
    assert decoder.done
    assert decoder.decode_line('data: {"event": "message"}') is None
    assert decoder.decode_line("data: [DONE]") is None


def test_final_line_without_newline_is_flushed():
    body = b'data: {"event": "message", "answer": "tail"}'
    events = list(iter_events([body]))
    assert len(events) == 1
    assert events[0].answer == "tail"


def test_malformed_json_is_skipped():
    buffer = LineBuffer()
    decoder = SSEDecoder()
    lines = buffer.feed('data: {not json\n\ndata: {"event": "message", "answer": "ok"}\n\n')
    events = decoder.decode_lines(lines)
    assert [event.answer for event in events] == ["ok"]
    assert decoder.skipped == 1


def test_non_data_lines_and_blank_payloads_ignored():
    body = "event: ping\n: keep-alive\ndata: \n\r\n" + sse({"event": "message", "answer": "x"}).replace("\n", "\r\n")
    events = list(iter_events([body]))
    assert raws(events) == [{"event": "message", "answer": "x"}]


def test_classify_event_variants():
    assert isinstance(classify_event({"event": "agent_message", "answer": "hi"}), AnswerEvent)
    assert isinstance(classify_event({"event": "message_end"}), MessageEndEvent)
    assert isinstance(classify_event({"type": "state_info", "state": "searching"}), StateInfoEvent)
    assert isinstance(classify_event({"keywords": ["春季护肤", "防晒"]}), KeywordsEvent)
    assert isinstance(classify_event({"keyword": "防晒", "cards": []}), CardsEvent)
    assert isinstance(classify_event(["not", "an", "object"]), UnknownEvent)

    insight = classify_event({"type": "keyword_insight", "keyword": "防晒", "answerText": "多涂"})
    assert isinstance(insight, InsightEvent)
    assert insight.is_keyword_insight
    assert insight.title == "防晒"
    assert insight.text == "多涂"


def test_unknown_event_forwarded_verbatim():
    event = classify_event({"event": "future_event", "x": "值"})
    assert isinstance(event, UnknownEvent)
    assert event.to_sse() == 'data: {"event": "future_event", "x": "值"}\n\n'


def test_async_decoding_pulls_one_chunk_at_a_time():
    pulled = []

    async def chunks():
        for i, frame in enumerate(FRAMES):
            pulled.append(i)
            yield sse(frame).encode("utf-8")

    async def consume():
        seen = []
        async for event in aiter_events(chunks()):
            # Only the chunk holding this event has been requested
            seen.append((event.raw, len(pulled)))
        return seen

    seen = asyncio.run(consume())
    assert seen == [(frame, i + 1) for i, frame in enumerate(FRAMES)]
