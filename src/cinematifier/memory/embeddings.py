from __future__ import annotations

import abc
import hashlib
import logging
import re
from typing import List, Optional, Sequence

import httpx
import numpy as np

from cinematifier.providers.circuit_breaker import CircuitBreaker

from .model import ChunkEmbedding

logger = logging.getLogger(__name__)

TOKEN = re.compile(r"[a-z0-9']+")


class Embedder(abc.ABC):
    """Turns text into a fixed-length float32 vector."""

    @abc.abstractmethod
    async def embed(self, text: str) -> np.ndarray:
        raise NotImplementedError


class HashingEmbedder(Embedder):
    """Local bag-of-words feature hashing; deterministic across processes."""

    def __init__(self, dimensions: int = 256) -> None:
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.dimensions = dimensions

    async def embed(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimensions, dtype=np.float32)
        for token in TOKEN.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimensions
            vector[index] += 1.0 if digest[4] & 1 else -1.0
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector
        return vector / norm


class RemoteEmbedder(Embedder):
    """OpenAI-compatible ``/v1/embeddings`` endpoint, guarded by a circuit breaker."""

    def __init__(
        self,
        url: str,
        model: str,
        *,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
        timeout: float = 30.0,
    ) -> None:
        self.url = url
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker(f"embeddings:{url}")
        self._http = http_client

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    async def embed(self, text: str) -> np.ndarray:
        return await self.breaker.call(lambda: self._request(text))

    async def _request(self, text: str) -> np.ndarray:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        response = await self.http.post(
            self.url,
            headers=headers,
            json={"input": text, "model": self.model},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        try:
            return np.asarray(data["data"][0]["embedding"], dtype=np.float32)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ValueError(f"Unexpected embeddings response: {exc}") from exc


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    denominator = np.linalg.norm(a) * np.linalg.norm(b)
    if denominator == 0:
        return 0.0
    return float(np.dot(a, b) / denominator)


def retrieve_relevant(
    query: Sequence[float],
    history: Sequence[ChunkEmbedding],
    top_k: int = 2,
) -> List[str]:
    """Texts of the ``top_k`` history entries most similar to ``query``, best first."""
    if not history or top_k <= 0:
        return []
    query = np.asarray(query, dtype=np.float32)
    matrix = np.stack([item.embedding for item in history])
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)
    # Stable sort keeps insertion order among equal scores.
    order = np.argsort(-scores, kind="stable")[:top_k]
    return [history[index].text for index in order]
