from __future__ import annotations

import asyncio

import pytest

from cinematifier.providers.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitState,
)


async def _fail() -> None:
    raise RuntimeError("provider down")


async def _ok() -> str:
    return "ok"


async def _trip(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await breaker.call(_fail)


@pytest.mark.asyncio
async def test_opens_after_threshold_and_rejects_calls(clock):
    breaker = CircuitBreaker("openai", clock=clock)
    await _trip(breaker, 4)
    assert breaker.state is CircuitState.CLOSED
    await _trip(breaker, 1)
    assert breaker.state is CircuitState.OPEN

    calls = []

    async def tracked() -> str:
        calls.append(1)
        return "ok"

    with pytest.raises(CircuitOpenError):
        await breaker.call(tracked)
    assert calls == []
    assert breaker.snapshot().next_attempt == clock.now + 30.0


@pytest.mark.asyncio
async def test_success_resets_failure_count(clock):
    breaker = CircuitBreaker("openai", clock=clock)
    await _trip(breaker, 4)
    assert await breaker.call(_ok) == "ok"
    await _trip(breaker, 4)
    assert breaker.state is CircuitState.CLOSED


@pytest.mark.asyncio
async def test_half_open_closes_after_two_successful_trials(clock):
    breaker = CircuitBreaker("gemini", clock=clock)
    await _trip(breaker, 5)
    clock.advance(30)
    assert await breaker.call(_ok) == "ok"
    assert breaker.state is CircuitState.HALF_OPEN
    assert await breaker.call(_ok) == "ok"
    assert breaker.state is CircuitState.CLOSED
    assert breaker.snapshot().failures == 0


@pytest.mark.asyncio
async def test_failed_trial_reopens(clock):
    breaker = CircuitBreaker("gemini", clock=clock)
    await _trip(breaker, 5)
    clock.advance(31)
    await _trip(breaker, 1)
    assert breaker.state is CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        await breaker.call(_ok)


@pytest.mark.asyncio
async def test_only_one_trial_in_flight(clock):
    breaker = CircuitBreaker("groq", clock=clock)
    await _trip(breaker, 5)
    clock.advance(30)

    release = asyncio.Event()

    async def slow() -> str:
        await release.wait()
        return "trial"

    trial = asyncio.create_task(breaker.call(slow))
    await asyncio.sleep(0)
    with pytest.raises(CircuitOpenError):
        await breaker.call(_ok)
    release.set()
    assert await trial == "trial"
    assert await breaker.call(_ok) == "ok"
    assert breaker.state is CircuitState.CLOSED


def test_registry_returns_shared_breakers(clock):
    registry = CircuitBreakerRegistry(failure_threshold=2, clock=clock)
    breaker = registry.get("openai")
    assert registry.get("openai") is breaker
    assert registry.get("gemini") is not breaker
    assert breaker.failure_threshold == 2
