from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np

from .embeddings import Embedder, HashingEmbedder, retrieve_relevant
from .model import ChunkEmbedding, ContextWindow

logger = logging.getLogger(__name__)


class ContextMemory:
    """Cross-chunk continuity for one cinematification run.

    Keeps the most recent chunk summary plus an append-only list of earlier
    summaries keyed by the embedding of the chunk they describe. Embedding
    failures only cost long-range recall; they are logged and never raised.
    """

    def __init__(self, embedder: Optional[Embedder] = None, top_k: int = 2) -> None:
        self.embedder = embedder or HashingEmbedder()
        self.top_k = top_k
        self.previous_summary: Optional[str] = None
        self.history: List[ChunkEmbedding] = []
        self._pending: Dict[str, np.ndarray] = {}

    async def _embed(self, text: str) -> Optional[np.ndarray]:
        try:
            return await self.embedder.embed(text)
        except Exception as exc:  # noqa: BLE001 - memory is best-effort
            logger.warning("Embedding failed; skipping long-range context (%s)", exc)
            return None

    async def recall(self, chunk_text: str) -> ContextWindow:
        related: List[str] = []
        embedding = await self._embed(chunk_text)
        if embedding is not None:
            self._pending[chunk_text] = embedding
            # The rolling summary is already in the window; don't repeat it.
            candidates = [item for item in self.history if item.text != self.previous_summary]
            related = retrieve_relevant(embedding, candidates, self.top_k)
        return ContextWindow(previous_summary=self.previous_summary, related=related)

    async def remember(self, chunk_id: str, chunk_text: str, summary: Optional[str]) -> None:
        embedding = self._pending.pop(chunk_text, None)
        if not summary:
            return
        self.previous_summary = summary
        if embedding is None:
            embedding = await self._embed(chunk_text)
        if embedding is None:
            return
        self.history.append(ChunkEmbedding(id=chunk_id, text=summary, embedding=embedding))
        logger.debug("Stored summary for %s (%d in memory)", chunk_id, len(self.history))
