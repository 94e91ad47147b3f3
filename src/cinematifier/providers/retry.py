"""
Retry with exponential backoff for classified provider errors.

Only rate limits, network failures, timeouts and model unavailability are
retried; everything else surfaces on the first failure.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from .errors import ProviderError, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.5  # seconds
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = False
    jitter_range: Tuple[float, float] = (0.5, 1.5)

    def delay_for(self, attempt: int, error: ProviderError) -> float:
        """
        Seconds to wait after the failed ``attempt`` (0-indexed).

        The exponential schedule never waits less than the error's
        ``retry_after`` hint; the result is capped at ``max_delay``.
        """
        delay = self.base_delay * (self.exponential_base ** attempt)
        if error.retry_after is not None:
            delay = max(delay, error.retry_after)
        if self.jitter:
            delay *= random.uniform(*self.jitter_range)
        return min(delay, self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    provider: str,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    last_error: Optional[ProviderError] = None
    for attempt in range(policy.max_attempts):
        try:
            return await fn()
        except Exception as exc:  # noqa: BLE001 - classified below, then re-raised
            error = classify_error(exc, provider)
            last_error = error
            if not error.retryable:
                logger.warning("%s failed with non-retryable %s error: %s", provider, error.kind.value, error)
                if error is exc:
                    raise
                raise error from exc
            if attempt + 1 >= policy.max_attempts:
                logger.error("All %d attempts to %s failed. Last error: %s", policy.max_attempts, provider, error)
                if error is exc:
                    raise
                raise error from exc

            delay = policy.delay_for(attempt, error)
            logger.warning(
                "Attempt %d/%d to %s failed (%s). Retrying in %.2fs...",
                attempt + 1,
                policy.max_attempts,
                provider,
                error.kind.value,
                delay,
            )
            await sleep(delay)

    raise last_error or RuntimeError("Retry logic failed unexpectedly")
