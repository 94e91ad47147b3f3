from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from cinematifier.chunker.model import Chunk
from cinematifier.memory.model import ContextWindow

from .prompts import (
    CHUNK_TEMPLATE,
    CINEMATIFICATION_SYSTEM_PROMPT,
    PREVIOUS_CONTEXT_TEMPLATE,
    RELATED_CONTEXT_TEMPLATE,
)


class ChunkPrompt(BaseModel):
    system: str
    user: str


class ChunkPromptBuilder:
    def __init__(self, system_prompt: str = CINEMATIFICATION_SYSTEM_PROMPT) -> None:
        self.system_prompt = system_prompt

    def build(
        self,
        chunk: Chunk,
        context: Optional[ContextWindow] = None,
        *,
        total_chunks: int = 1,
        chapter_title: Optional[str] = None,
        first_chunk: Optional[bool] = None,
    ) -> ChunkPrompt:
        is_first = chunk.index == 0 if first_chunk is None else first_chunk
        sections: list[str] = []

        header = f"SECTION {chunk.index + 1} OF {total_chunks}"
        if chapter_title:
            header += f" of \"{chapter_title}\""
        sections.append(header)

        if context is not None and context.previous_summary:
            sections.append(PREVIOUS_CONTEXT_TEMPLATE.format(summary=context.previous_summary))
        if context is not None and context.related:
            items = "\n".join(f"- {summary}" for summary in context.related)
            sections.append(RELATED_CONTEXT_TEMPLATE.format(items=items))
        if not is_first:
            sections.append("This continues an earlier section: do not append a [GENRE: ...] tag.")

        sections.append(CHUNK_TEMPLATE.format(text=chunk.text))
        return ChunkPrompt(system=self.system_prompt, user="\n\n".join(sections))
