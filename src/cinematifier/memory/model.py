from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from pydantic import BaseModel, Field


@dataclass
class ChunkEmbedding:
    """A chunk summary with the embedding of the chunk it describes."""

    id: str
    text: str
    embedding: np.ndarray = field(repr=False, compare=False)

    def __post_init__(self) -> None:
        self.embedding = np.asarray(self.embedding, dtype=np.float32)


class ContextWindow(BaseModel):
    previous_summary: Optional[str] = None
    related: List[str] = Field(default_factory=list, description="Long-range summaries, most similar first")

    @property
    def is_empty(self) -> bool:
        return not self.previous_summary and not self.related
