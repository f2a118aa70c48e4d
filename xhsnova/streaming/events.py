"""
Stream event model.

Every decoded SSE payload becomes one StreamEvent variant. The variant is
chosen from the `event` / `type` discriminator (or, for the research
service, from the payload shape). Each variant keeps the raw payload so the
relay can forward it byte-for-byte equivalent, and anything unrecognized
lands in UnknownEvent instead of being dropped.
"""

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional


def encode_sse_frame(payload: Any) -> str:
    """Serialize a payload as one outbound `data: <json>` frame."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@dataclass
class StreamEvent:
    """Base class for decoded stream events."""

    kind: ClassVar[str] = "base"
    raw: Any = field(default_factory=dict)

    @property
    def discriminator(self) -> Optional[str]:
        if isinstance(self.raw, dict):
            return self.raw.get("event") or self.raw.get("type")
        return None

    def get(self, key: str, default: Any = None) -> Any:
        if isinstance(self.raw, dict):
            return self.raw.get(key, default)
        return default

    def to_sse(self) -> str:
        return encode_sse_frame(self.raw)


@dataclass
class AnswerEvent(StreamEvent):
    """A token / answer fragment (`message` or `agent_message`)."""

    kind: ClassVar[str] = "answer"

    @property
    def answer(self) -> str:
        return self.get("answer") or ""

    @property
    def conversation_id(self) -> Optional[str]:
        return self.get("conversation_id")


@dataclass
class MessageEndEvent(StreamEvent):
    """End of the assistant turn; carries the conversation id."""

    kind: ClassVar[str] = "message_end"

    @property
    def conversation_id(self) -> Optional[str]:
        return self.get("conversation_id")


@dataclass
class AgentThoughtEvent(StreamEvent):
    kind: ClassVar[str] = "agent_thought"

    @property
    def thought(self) -> str:
        return self.get("thought") or ""


@dataclass
class ToolCallsEvent(StreamEvent):
    kind: ClassVar[str] = "tool_calls"

    @property
    def tool_calls(self) -> List[Dict]:
        return self.get("tool_calls") or []


@dataclass
class KeywordsEvent(StreamEvent):
    """Research service announced the keyword list for the canvas."""

    kind: ClassVar[str] = "keywords"

    @property
    def keywords(self) -> List[str]:
        return list(self.get("keywords") or [])


@dataclass
class CardsEvent(StreamEvent):
    """Scraped cards belonging to one keyword."""

    kind: ClassVar[str] = "cards"

    @property
    def keyword(self) -> str:
        return self.get("keyword") or ""

    @property
    def cards(self) -> List[Dict]:
        return list(self.get("cards") or [])


@dataclass
class InsightEvent(StreamEvent):
    """`insight` or `keyword_insight` payload."""

    kind: ClassVar[str] = "insight"

    @property
    def is_keyword_insight(self) -> bool:
        return self.get("type") == "keyword_insight"

    @property
    def title(self) -> Optional[str]:
        if self.is_keyword_insight:
            return self.get("keyword")
        return self.get("title")

    @property
    def text(self) -> str:
        if self.is_keyword_insight:
            return self.get("answerText") or ""
        return self.get("text") or self.get("content") or ""


@dataclass
class StateInfoEvent(StreamEvent):
    kind: ClassVar[str] = "state_info"


@dataclass
class UnknownEvent(StreamEvent):
    """Opaque payload with an unrecognized discriminator; forwarded untouched."""

    kind: ClassVar[str] = "unknown"


def classify_event(payload: Any) -> StreamEvent:
    """Map a decoded JSON payload to its StreamEvent variant."""
    if not isinstance(payload, dict):
        return UnknownEvent(raw=payload)

    event_name = payload.get("event")
    event_type = payload.get("type")

    if event_name == "message_end":
        return MessageEndEvent(raw=payload)
    if event_name in ("message", "agent_message"):
        return AnswerEvent(raw=payload)
    if event_name == "agent_thought":
        return AgentThoughtEvent(raw=payload)
    if event_name == "tool_calls":
        return ToolCallsEvent(raw=payload)
    if event_type == "state_info":
        return StateInfoEvent(raw=payload)
    if event_type in ("insight", "keyword_insight"):
        return InsightEvent(raw=payload)
    if payload.get("keyword") and payload.get("cards") is not None:
        return CardsEvent(raw=payload)
    if payload.get("keywords") is not None and not event_type:
        return KeywordsEvent(raw=payload)
    return UnknownEvent(raw=payload)
