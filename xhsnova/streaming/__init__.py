"""Streaming primitives: line buffering, SSE decoding and the event model."""

from .line_buffer import LineBuffer, split_lines
from .decoder import SSEDecoder, iter_events, aiter_events, DATA_PREFIX
from .events import (
    StreamEvent,
    AnswerEvent,
    MessageEndEvent,
    AgentThoughtEvent,
    ToolCallsEvent,
    KeywordsEvent,
    CardsEvent,
    InsightEvent,
    StateInfoEvent,
    UnknownEvent,
    classify_event,
    encode_sse_frame
)

__all__ = [
    "LineBuffer", "split_lines",
    "SSEDecoder", "iter_events", "aiter_events", "DATA_PREFIX",
    "StreamEvent", "AnswerEvent", "MessageEndEvent", "AgentThoughtEvent",
    "ToolCallsEvent", "KeywordsEvent", "CardsEvent", "InsightEvent",
    "StateInfoEvent", "UnknownEvent", "classify_event", "encode_sse_frame"
]
