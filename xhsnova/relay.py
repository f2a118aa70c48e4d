"""
Relay Forwarder

Bridges an upstream SSE stream to the browser. Every decoded event is
re-serialized and forwarded as its own frame in arrival order, while the
relay accumulates the assistant's full answer, the conversation id, agent
thoughts, tool calls and any canvas material found along the way.

When the upstream signals the end of the assistant turn the relay persists:
1. the conversation id (if newly assigned)
2. collected canvas items and insights
3. card directives found in the answer, applied in text order
4. one assistant message with directive markup replaced by placeholders

The pump is strictly pull-based: one chunk is read, its events forwarded,
then the next chunk is requested. Frames are handed out through RelayFrames,
which owns the upstream, so the connection is released on every exit path,
including a client that goes away before the first frame was pulled.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from .config import SSE_DONE_SENTINEL
from .directives import apply_directives, extract_directives, render_display_text
from .exceptions import NovaError
from .logging_config import get_logger
from .streaming import (
    AgentThoughtEvent,
    AnswerEvent,
    InsightEvent,
    MessageEndEvent,
    SSEDecoder,
    StreamEvent,
    ToolCallsEvent,
    aiter_events,
    encode_sse_frame,
)

logger = get_logger(__name__)

DONE_FRAME = f"data: {SSE_DONE_SENTINEL}\n\n"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def canvas_items_from_cards(keyword: str, cards: List[Dict]) -> List[Dict]:
    """Shape research-service cards as canvas_items records."""
    return [
        {
            "external_id": card.get("id"),
            "type": "canvas",
            "title": card.get("title"),
            "content": card.get("content") or "",
            "keyword": keyword,
            "author": card.get("author"),
            "author_avatar": card.get("author_avatar"),
            "like_count": card.get("like_count") or 0,
            "collect_count": card.get("collect_count") or 0,
            "comment_count": card.get("comment_count") or 0,
            "share_count": card.get("share_count") or 0,
            "cover_url": card.get("cover_url"),
            "url": card.get("url"),
            "platform": card.get("platform") or "xiaohongshu",
            "ip_location": card.get("ip_location"),
            "tags": card.get("tags") or [],
            "create_time": card.get("create_time"),
        }
        for card in cards
    ]


def _keyword_insight(payload: Dict) -> Dict:
    return {
        "external_id": payload.get("id") or f"keyword_insight_{uuid.uuid4().hex}",
        "type": "keyword_insight",
        "title": payload.get("keyword"),
        "content": payload.get("answerText"),
    }


@dataclass
class RelayAccumulator:
    """Per-request state built up while the stream is forwarded."""
    previous_conversation_id: str = ""
    conversation_id: str = ""
    full_text: str = ""
    all_events: List[Dict] = field(default_factory=list)
    thoughts: List[Dict] = field(default_factory=list)
    tool_calls: List[Dict] = field(default_factory=list)
    canvas_data: List[Dict] = field(default_factory=list)
    insights_data: List[Dict] = field(default_factory=list)

    def __post_init__(self):
        if not self.conversation_id:
            self.conversation_id = self.previous_conversation_id

    def observe(self, event: StreamEvent) -> None:
        self.all_events.append({"timestamp": _timestamp(), "event": event.raw})

        if isinstance(event, AnswerEvent):
            self.full_text += event.answer
            if event.conversation_id:
                self.conversation_id = event.conversation_id
        elif isinstance(event, MessageEndEvent):
            if event.conversation_id:
                self.conversation_id = event.conversation_id
        elif isinstance(event, AgentThoughtEvent):
            if event.thought:
                self.thoughts.append({"timestamp": _timestamp(), "thought": event.thought})
        elif isinstance(event, ToolCallsEvent):
            if event.tool_calls:
                self.tool_calls.append({"timestamp": _timestamp(), "tools": event.tool_calls})
                for tool in event.tool_calls:
                    self._collect_tool_output(tool)
        elif isinstance(event, InsightEvent) and event.is_keyword_insight and event.text:
            self.insights_data.append(_keyword_insight(event.raw))

    def _collect_tool_output(self, tool: Dict) -> None:
        raw_output = tool.get("tool_output") if isinstance(tool, dict) else None
        if not raw_output:
            return
        try:
            output = json.loads(raw_output) if isinstance(raw_output, str) else raw_output
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse tool output as JSON: {e}")
            return
        if not isinstance(output, dict):
            return

        if output.get("keyword") and output.get("cards"):
            logger.info(f"Found canvas cards for keyword {output['keyword']!r}: {len(output['cards'])}")
            self.canvas_data.extend(canvas_items_from_cards(output["keyword"], output["cards"]))

        for insight in output.get("insights") or []:
            self.insights_data.append({
                "external_id": insight.get("id") or f"insight_{uuid.uuid4().hex}",
                "type": "insight",
                "title": insight.get("title"),
                "content": insight.get("text") or insight.get("content") or "",
            })

        if output.get("type") == "keyword_insight" and output.get("answerText"):
            self.insights_data.append(_keyword_insight(output))

    @property
    def conversation_changed(self) -> bool:
        return bool(self.conversation_id) and self.conversation_id != self.previous_conversation_id


class RelayFrames:
    """
    Async iterator of outbound frames that owns its upstream.

    An async generator that was never started skips its `finally` block when
    closed, so closing here also closes the upstream directly.
    """

    def __init__(self, frames: AsyncIterator[str], upstream):
        self._frames = frames
        self.upstream = upstream

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        return await self._frames.__anext__()

    async def aclose(self) -> None:
        try:
            await self._frames.aclose()
        finally:
            await self.upstream.close()


class ChatRelay:
    """Forwards one assistant turn and persists its results."""

    def __init__(self, gateway, project_id: str, previous_conversation_id: Optional[str] = None):
        self.gateway = gateway
        self.project_id = project_id
        self.accumulator = RelayAccumulator(previous_conversation_id=previous_conversation_id or "")
        self.finalized = False
        self.assistant_message: Optional[Dict] = None

    def stream(self, upstream) -> RelayFrames:
        """
        Outbound SSE frames for an open upstream stream.

        Args:
            upstream: object exposing `chunks()` (async byte iterator) and `close()`
        """
        return RelayFrames(self._pump(upstream), upstream)

    async def _pump(self, upstream) -> AsyncIterator[str]:
        decoder = SSEDecoder()
        events = aiter_events(upstream.chunks(), decoder)
        try:
            async for event in events:
                yield event.to_sse()
                self.accumulator.observe(event)

                if isinstance(event, MessageEndEvent):
                    logger.info(
                        f"Response completed: {len(self.accumulator.full_text)} chars, "
                        f"{len(self.accumulator.all_events)} events"
                    )
                    error_frame = self._finalize_safely()
                    if error_frame:
                        yield error_frame
                    break

            yield DONE_FRAME
        except Exception as e:
            logger.error(f"Error reading stream for project {self.project_id}: {e}", exc_info=True)
            raise
        finally:
            await events.aclose()
            await upstream.close()
            logger.info(f"Stream completed: {len(self.accumulator.all_events)} events processed")

    def _finalize_safely(self) -> Optional[str]:
        try:
            self.finalize()
        except NovaError as e:
            logger.error(f"Failed to persist assistant turn: {e.message}", exc_info=True)
            return encode_sse_frame({"type": "error", "error": e.message})
        return None

    def finalize(self) -> Dict:
        """Persist everything collected for this turn. Runs at most once."""
        if self.finalized:
            return self.assistant_message
        self.finalized = True
        acc = self.accumulator

        if acc.conversation_changed:
            self.gateway.update_project_conversation_id(self.project_id, acc.conversation_id)

        saved_canvas = []
        if acc.canvas_data:
            logger.info(f"Saving canvas items to database: {len(acc.canvas_data)}")
            saved_canvas = self.gateway.bulk_create_canvas_items(self.project_id, acc.canvas_data)

        saved_insights = []
        if acc.insights_data:
            logger.info(f"Saving insights to database: {len(acc.insights_data)}")
            saved_insights = self.gateway.bulk_create_insights(self.project_id, acc.insights_data)

        directives = extract_directives(acc.full_text)
        outcome = apply_directives(self.gateway, self.project_id, directives)

        llm_raw_output = {
            "original_content": acc.full_text,
            "processing_summary": {
                "total_events": len(acc.all_events),
                "thoughts_count": len(acc.thoughts),
                "tool_calls_count": len(acc.tool_calls),
                "conversation_id": acc.conversation_id,
                "cards_created": len(outcome.created),
                "cards_updated": len(outcome.updated),
                "directives_skipped": len(outcome.skipped),
                "canvas_items_saved": len(saved_canvas),
                "insights_saved": len(saved_insights),
            },
            "complete_event_log": acc.all_events,
            "thoughts_log": acc.thoughts,
            "tool_calls_log": acc.tool_calls,
        }

        self.assistant_message = self.gateway.create_message(
            self.project_id,
            role="assistant",
            content=render_display_text(acc.full_text, directives),
            llm_raw_output=llm_raw_output,
            associated_card_id=outcome.associated_card_id
        )
        logger.info(f"AI message stored for project {self.project_id}")
        return self.assistant_message


def forward_events(upstream, on_event=None) -> RelayFrames:
    """
    Forward an upstream stream without persistence (research service relay).

    Args:
        upstream: object exposing `chunks()` and `close()`
        on_event: optional callback invoked with each event after it is forwarded
    """
    return RelayFrames(_forward(upstream, on_event), upstream)


async def _forward(upstream, on_event) -> AsyncIterator[str]:
    events = aiter_events(upstream.chunks())
    count = 0
    try:
        async for event in events:
            yield event.to_sse()
            count += 1
            if on_event is not None:
                on_event(event)
        yield DONE_FRAME
    except Exception as e:
        logger.error(f"Error reading {getattr(upstream, 'service', 'upstream')} stream: {e}", exc_info=True)
        raise
    finally:
        await events.aclose()
        await upstream.close()
        logger.info(f"Relay completed: {count} events forwarded")
