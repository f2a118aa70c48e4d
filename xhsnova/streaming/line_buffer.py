"""
Line buffering for streamed HTTP bodies.

Transport chunks carry no line boundaries, so text after the last newline
is held back until a later chunk completes it. Bytes are decoded with an
incremental UTF-8 decoder so a multi-byte character split across two
chunks is never corrupted.
"""

import codecs
from typing import List, Tuple, Union


def split_lines(buffer: str, chunk: str) -> Tuple[List[str], str]:
    """
    Append a chunk to the running buffer and split off complete lines.

    Args:
        buffer: Text left over from previous chunks (possibly empty)
        chunk: Newly decoded text

    Returns:
        (complete lines in arrival order, new remainder buffer)
    """
    parts = (buffer + chunk).split("\n")
    remainder = parts.pop()
    return [_strip_cr(line) for line in parts], remainder


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


class LineBuffer:
    """Accumulates raw chunks and yields complete newline-terminated lines."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._buffer

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        """Add a chunk and return every line it completed."""
        if isinstance(chunk, (bytes, bytearray)):
            text = self._decoder.decode(bytes(chunk))
        else:
            text = chunk
        lines, self._buffer = split_lines(self._buffer, text)
        return lines

    def flush(self) -> List[str]:
        """
        Finish the stream.

        Providers do not always end with a trailing newline, so a non-empty
        remainder is returned as a final line instead of being dropped.
        """
        tail = self._decoder.decode(b"", final=True)
        lines, remainder = split_lines(self._buffer, tail)
        self._buffer = ""
        if remainder:
            lines.append(_strip_cr(remainder))
        return lines
