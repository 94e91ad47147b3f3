from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class Chunk(BaseModel):
    index: int
    text: str
    char_count: int
    paragraph_count: int = Field(default=1)

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class ChunkPlan(BaseModel):
    chunks: List[Chunk]
    max_chars: int

    def __len__(self) -> int:
        return len(self.chunks)

    @property
    def texts(self) -> List[str]:
        return [chunk.text for chunk in self.chunks]
