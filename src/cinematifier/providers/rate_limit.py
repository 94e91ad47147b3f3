from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Dict, Optional

from .model import MODEL_PRESETS, ProviderName

logger = logging.getLogger(__name__)

BURST_WINDOW_SECONDS = 10


class TokenBucket:
    """Continuous-refill token bucket sized to ~10 seconds of a provider's request rate."""

    def __init__(
        self,
        rpm: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rpm <= 0:
            raise ValueError("rpm must be positive")
        self.rpm = rpm
        self.refill_rate = rpm / 60.0
        self.max_tokens = max(1, math.ceil(self.refill_rate * BURST_WINDOW_SECONDS))
        self.tokens = float(self.max_tokens)
        self._clock = clock
        self._sleep = sleep
        self._last_refill = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def try_acquire(self) -> bool:
        self._refill()
        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False

    async def acquire(self) -> float:
        """Wait until a token is available and take it; returns the seconds spent waiting."""
        waited = 0.0
        while not self.try_acquire():
            delay = (1 - self.tokens) / self.refill_rate
            logger.debug("Rate limit reached; waiting %.2fs", delay)
            await self._sleep(delay)
            waited += delay
        return waited


class RateLimiterRegistry:
    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        overrides: Optional[Dict[ProviderName, int]] = None,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._overrides = dict(overrides or {})
        self._buckets: Dict[ProviderName, TokenBucket] = {}

    def for_provider(self, provider: ProviderName) -> TokenBucket:
        bucket = self._buckets.get(provider)
        if bucket is None:
            rpm = self._overrides.get(provider, MODEL_PRESETS[provider].rate_limit_rpm)
            bucket = TokenBucket(rpm, clock=self._clock, sleep=self._sleep)
            self._buckets[provider] = bucket
        return bucket
