from __future__ import annotations

import logging

from cinematifier.segmenter.paragraphs import split_paragraphs

from .model import Chunk, ChunkPlan

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 3500
PARAGRAPH_SEPARATOR = "\n\n"


class ChunkPlanner:
    """Pack a chapter's paragraphs into model-sized context windows."""

    def __init__(self, max_chars: int = DEFAULT_MAX_CHARS) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars

    def plan(self, text: str) -> ChunkPlan:
        chunks: list[Chunk] = []
        current: list[str] = []
        current_chars = 0

        def flush() -> None:
            nonlocal current, current_chars
            if not current:
                return
            body = PARAGRAPH_SEPARATOR.join(current)
            chunks.append(
                Chunk(
                    index=len(chunks),
                    text=body,
                    char_count=len(body),
                    paragraph_count=len(current),
                )
            )
            current = []
            current_chars = 0

        for paragraph in split_paragraphs(text):
            projected = current_chars + len(PARAGRAPH_SEPARATOR) + len(paragraph) if current else len(paragraph)
            if current and projected > self.max_chars:
                flush()
                projected = len(paragraph)
            if projected > self.max_chars:
                logger.debug(
                    "Paragraph of %d chars exceeds chunk budget %d; keeping it whole",
                    len(paragraph),
                    self.max_chars,
                )
            current.append(paragraph)
            current_chars = projected

        flush()
        logger.debug("Planned %d chunk(s) with budget %d", len(chunks), self.max_chars)
        return ChunkPlan(chunks=chunks, max_chars=self.max_chars)
