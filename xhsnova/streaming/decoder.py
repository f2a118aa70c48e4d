"""
SSE frame decoding.

Turns complete lines into StreamEvents. Only `data: ` lines carry events;
`[DONE]` ends the stream and malformed JSON is logged and skipped so one
bad frame never aborts the rest of the stream.
"""

import json
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, List, Optional, Union

from ..config import SSE_DONE_SENTINEL
from ..logging_config import get_logger
from .events import StreamEvent, classify_event
from .line_buffer import LineBuffer

logger = get_logger(__name__)

DATA_PREFIX = "data: "


class SSEDecoder:
    """Stateful line decoder; once `[DONE]` is seen it emits nothing more."""

    def __init__(self):
        self.done = False
        self.skipped = 0

    def decode_line(self, line: str) -> Optional[StreamEvent]:
        """
        Decode one complete line.

        Returns:
            The decoded event, or None for non-data lines, empty payloads,
            malformed JSON, the termination sentinel and anything after it.
        """
        if self.done or not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):].strip()
        if payload == SSE_DONE_SENTINEL:
            self.done = True
            return None
        if not payload:
            return None

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            self.skipped += 1
            logger.warning(f"Failed to parse SSE data: {payload[:200]!r} ({e})")
            return None

        return classify_event(data)

    def decode_lines(self, lines: Iterable[str]) -> List[StreamEvent]:
        events = []
        for line in lines:
            event = self.decode_line(line)
            if event is not None:
                events.append(event)
            if self.done:
                break
        return events


def iter_events(chunks: Iterable[Union[bytes, str]]) -> Iterator[StreamEvent]:
    """Decode a synchronous sequence of raw chunks into events."""
    buffer = LineBuffer()
    decoder = SSEDecoder()
    for chunk in chunks:
        yield from decoder.decode_lines(buffer.feed(chunk))
        if decoder.done:
            return
    yield from decoder.decode_lines(buffer.flush())


async def aiter_events(
    chunks: AsyncIterable[Union[bytes, str]],
    decoder: Optional[SSEDecoder] = None
) -> AsyncIterator[StreamEvent]:
    """
    Decode an async byte stream into events.

    Pull-based: the next chunk is only requested after every event from the
    current one has been consumed by the caller.

    Args:
        chunks: Raw transport chunks (e.g. aiohttp `response.content.iter_any()`)
        decoder: Optional decoder instance so callers can inspect `done` afterwards
    """
    buffer = LineBuffer()
    decoder = decoder or SSEDecoder()
    async for chunk in chunks:
        for event in decoder.decode_lines(buffer.feed(chunk)):
            yield event
        if decoder.done:
            return
    for event in decoder.decode_lines(buffer.flush()):
        yield event
