from __future__ import annotations

import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50
DEFAULT_TTL_SECONDS = 30 * 60


def make_cache_key(provider: str, prompt: str) -> str:
    """Key on the full prompt hash plus length and both ends, so near-identical long prompts differ."""
    prompt_hash = hashlib.sha256(prompt.encode("utf-8")).hexdigest()
    material = "\x1f".join((provider, prompt_hash, str(len(prompt)), prompt[:32], prompt[-32:]))
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    value: str
    stored_at: float


class ResponseCache:
    """Bounded LRU of provider responses with a fixed time-to-live."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, touch=False) is not None

    def get(self, key: str, *, touch: bool = True) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() - entry.stored_at > self.ttl:
            del self._entries[key]
            self.misses += 1
            return None
        if touch:
            self._entries.move_to_end(key)
            self.hits += 1
        return entry.value

    def set(self, key: str, value: str) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %s", evicted[:12])

    def clear(self) -> None:
        self._entries.clear()
