from __future__ import annotations

import logging
import re
from typing import AsyncIterable, AsyncIterator, List

from .block_parser import BlockParser
from .model import CinematicBlock

logger = logging.getLogger(__name__)

SEGMENT_BOUNDARY = "\n\n"
# A bracket tag whose body has started but not closed; its body may span blank lines.
UNCLOSED_TAG = re.compile(r"\[(?:GENRE|TONE|SUMMARY|EMOTION|TENSION):[^\]]*$", re.IGNORECASE)


class StreamingBlockParser:
    """Incremental front end for :class:`BlockParser`.

    Text deltas are buffered until a blank-line boundary appears; only the
    completed segment is parsed, so every block is emitted once and in text
    order. ``close`` parses whatever is left in the buffer.
    """

    def __init__(self, parser: BlockParser) -> None:
        self.parser = parser
        self._buffer = ""
        self._parts: List[str] = []
        self._closed = False

    @property
    def raw_text(self) -> str:
        return "".join(self._parts)

    def feed(self, delta: str) -> List[CinematicBlock]:
        if self._closed:
            raise RuntimeError("feed() called after close()")
        if not delta:
            return []
        self._parts.append(delta)
        self._buffer += delta

        limit = len(self._buffer)
        unclosed = UNCLOSED_TAG.search(self._buffer)
        if unclosed is not None:
            limit = unclosed.start()
        boundary = self._buffer.rfind(SEGMENT_BOUNDARY, 0, limit)
        if boundary == -1:
            return []
        completed = self._buffer[:boundary]
        self._buffer = self._buffer[boundary + len(SEGMENT_BOUNDARY):]
        return self.parser.parse(completed)

    def close(self) -> List[CinematicBlock]:
        if self._closed:
            return []
        self._closed = True
        remainder, self._buffer = self._buffer, ""
        return self.parser.parse(remainder)

    async def parse_stream(self, deltas: AsyncIterable[str]) -> AsyncIterator[CinematicBlock]:
        count = 0
        async for delta in deltas:
            for block in self.feed(delta):
                count += 1
                yield block
        for block in self.close():
            count += 1
            yield block
        logger.debug("Stream produced %d block(s) from %d chars", count, len(self.raw_text))
