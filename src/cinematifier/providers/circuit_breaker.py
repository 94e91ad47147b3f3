from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitOpenError(RuntimeError):
    """Raised without calling the wrapped operation while the breaker is open."""


@dataclass(frozen=True)
class CircuitSnapshot:
    state: CircuitState
    failures: int
    successes: int
    last_failure: Optional[float]
    next_attempt: Optional[float]


class CircuitBreaker:
    """Stop calling a failing dependency until ``reset_timeout`` has passed.

    After ``failure_threshold`` consecutive failures the breaker opens. Once
    the timeout elapses a single trial call is let through (half-open); a failed
    trial re-opens the breaker, and ``success_threshold`` successful trials
    close it again.
    """

    def __init__(
        self,
        name: str = "default",
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        success_threshold: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.success_threshold = success_threshold
        self._clock = clock
        self._trial_in_flight = False
        self.reset()

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._last_failure: Optional[float] = None
        self._next_attempt: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    def snapshot(self) -> CircuitSnapshot:
        return CircuitSnapshot(
            state=self._state,
            failures=self._failures,
            successes=self._successes,
            last_failure=self._last_failure,
            next_attempt=self._next_attempt,
        )

    def _admit(self) -> None:
        if self._state is CircuitState.OPEN:
            if self._next_attempt is not None and self._clock() < self._next_attempt:
                raise CircuitOpenError(f"Circuit '{self.name}' is open")
            logger.info("Circuit '%s' half-open; allowing trial call", self.name)
            self._state = CircuitState.HALF_OPEN
            self._successes = 0
        if self._state is CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(f"Circuit '{self.name}' is half-open with a trial call in flight")
            self._trial_in_flight = True

    def _on_success(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            self._successes += 1
            if self._successes >= self.success_threshold:
                logger.info("Circuit '%s' closed", self.name)
                self._state = CircuitState.CLOSED
                self._failures = 0
                self._successes = 0
                self._last_failure = None
                self._next_attempt = None
        else:
            self._failures = 0

    def _on_failure(self) -> None:
        now = self._clock()
        self._failures += 1
        self._last_failure = now
        if self._state is CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
            logger.warning("Circuit '%s' opened after %d failure(s)", self.name, self._failures)
            self._state = CircuitState.OPEN
            self._successes = 0
            self._next_attempt = now + self.reset_timeout

    @asynccontextmanager
    async def guard(self) -> AsyncIterator[None]:
        """Record the outcome of the enclosed block; raises CircuitOpenError instead of entering it."""
        self._admit()
        probing = self._state is CircuitState.HALF_OPEN
        try:
            yield
        except Exception:
            self._on_failure()
            raise
        else:
            self._on_success()
        finally:
            if probing:
                self._trial_in_flight = False

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        async with self.guard():
            return await fn()


class CircuitBreakerRegistry:
    def __init__(self, **defaults: object) -> None:
        self._defaults = defaults
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, **self._defaults)  # type: ignore[arg-type]
            self._breakers[name] = breaker
        return breaker
