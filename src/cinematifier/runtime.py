from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict

from cinematifier.parser.model import BlockIdGenerator
from cinematifier.providers.cache import DEFAULT_MAX_ENTRIES, DEFAULT_TTL_SECONDS, ResponseCache
from cinematifier.providers.circuit_breaker import CircuitBreakerRegistry
from cinematifier.providers.rate_limit import RateLimiterRegistry


@dataclass
class ResilienceContext:
    """Process-wide state shared by every cinematification run.

    Build one at application start and pass it to the client and the
    orchestrator. Tests create a fresh instance per case.
    """

    cache: ResponseCache
    limiters: RateLimiterRegistry
    breakers: CircuitBreakerRegistry
    ids: BlockIdGenerator
    in_flight: Dict[str, "asyncio.Future[str]"] = field(default_factory=dict)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @classmethod
    def create(
        cls,
        *,
        cache_entries: int = DEFAULT_MAX_ENTRIES,
        cache_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        epoch_ms: int | None = None,
    ) -> "ResilienceContext":
        return cls(
            cache=ResponseCache(max_entries=cache_entries, ttl=cache_ttl, clock=clock),
            limiters=RateLimiterRegistry(clock=clock, sleep=sleep),
            breakers=CircuitBreakerRegistry(clock=clock),
            ids=BlockIdGenerator(epoch_ms=epoch_ms),
            sleep=sleep,
        )
