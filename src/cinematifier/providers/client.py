from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, AsyncIterator, List, Optional

import httpx

from .adapters import ProviderAdapter, get_adapter
from .cache import make_cache_key
from .errors import ErrorKind, ProviderError, classify_error
from .model import ProviderConfig
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy, with_retry

if TYPE_CHECKING:
    from cinematifier.runtime import ResilienceContext

logger = logging.getLogger(__name__)


class ResilientProviderClient:
    """Single entry point for model calls.

    Every call goes cache -> in-flight dedup -> rate limiter -> circuit breaker
    -> retry -> adapter request. Identical concurrent prompts share one
    request; successful responses are cached.
    """

    def __init__(
        self,
        context: "ResilienceContext",
        http_client: Optional[httpx.AsyncClient] = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        self.context = context
        self.retry_policy = retry_policy
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "ResilientProviderClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @staticmethod
    def cache_key(prompt: str, config: ProviderConfig, system: Optional[str] = None) -> str:
        material = prompt if system is None else f"{system}\n\n{prompt}"
        return make_cache_key(f"{config.provider.value}:{config.resolved_model}", material)

    async def call(self, prompt: str, config: ProviderConfig, *, system: Optional[str] = None) -> str:
        key = self.cache_key(prompt, config, system)
        cached = self.context.cache.get(key)
        if cached is not None:
            logger.info("Cache hit for %s prompt (%d chars)", config.provider.value, len(prompt))
            return cached

        pending = self.context.in_flight.get(key)
        if pending is None:
            # Registered before the first await so concurrent callers find it.
            pending = asyncio.ensure_future(self._fetch(prompt, config, system, key))
            self.context.in_flight[key] = pending
            pending.add_done_callback(lambda done: self._settle(key, done))
        else:
            logger.debug("Joining in-flight %s request", config.provider.value)
        return await asyncio.shield(pending)

    def _settle(self, key: str, done: "asyncio.Future[str]") -> None:
        if self.context.in_flight.get(key) is done:
            del self.context.in_flight[key]
        if not done.cancelled():
            done.exception()  # mark retrieved; awaiting callers still receive it

    async def _fetch(self, prompt: str, config: ProviderConfig, system: Optional[str], key: str) -> str:
        adapter = get_adapter(config.provider)
        provider = config.provider.value
        await self.context.limiters.for_provider(config.provider).acquire()
        breaker = self.context.breakers.get(provider)

        async def attempt() -> str:
            return await self._request(adapter, prompt, config, system)

        text = await breaker.call(
            lambda: with_retry(attempt, provider, self.retry_policy, sleep=self.context.sleep)
        )
        self.context.cache.set(key, text)
        return text

    async def _request(
        self,
        adapter: ProviderAdapter,
        prompt: str,
        config: ProviderConfig,
        system: Optional[str],
    ) -> str:
        request = adapter.prepare(prompt, config, system=system)
        response = await self.http.post(
            request.url, headers=request.headers, json=request.body, timeout=config.timeout
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(
                "response body is not valid JSON", ErrorKind.INVALID_RESPONSE, adapter.name.value
            ) from exc
        return adapter.parse_response(payload)

    async def stream(
        self, prompt: str, config: ProviderConfig, *, system: Optional[str] = None
    ) -> AsyncIterator[str]:
        """Yield text deltas as they arrive.

        Retries only happen before the first delta; once text has been
        yielded a failure propagates. The full text is cached on completion.
        A caller that finds the same prompt already in flight receives the
        finished text as one delta instead of opening a second stream.
        """
        key = self.cache_key(prompt, config, system)
        cached = self.context.cache.get(key)
        if cached is not None:
            logger.info("Cache hit for %s prompt (%d chars)", config.provider.value, len(prompt))
            yield cached
            return

        if not config.preset.supports_streaming:
            yield await self.call(prompt, config, system=system)
            return

        pending = self.context.in_flight.get(key)
        if pending is not None:
            logger.debug("Joining in-flight %s stream", config.provider.value)
            yield await asyncio.shield(pending)
            return

        # Registered before the first await so concurrent callers find it.
        leader: "asyncio.Future[str]" = asyncio.get_running_loop().create_future()
        self.context.in_flight[key] = leader
        leader.add_done_callback(lambda done: self._settle(key, done))
        parts: List[str] = []
        try:
            async for delta in self._stream_upstream(prompt, config, system, parts):
                yield delta
            text = "".join(parts)
            self.context.cache.set(key, text)
            leader.set_result(text)
        except Exception as exc:
            leader.set_exception(exc)
            raise
        finally:
            if not leader.done():
                leader.set_exception(
                    ProviderError("stream closed before completion", ErrorKind.UNKNOWN, config.provider.value)
                )

    async def _stream_upstream(
        self,
        prompt: str,
        config: ProviderConfig,
        system: Optional[str],
        parts: List[str],
    ) -> AsyncIterator[str]:
        adapter = get_adapter(config.provider)
        provider = config.provider.value
        await self.context.limiters.for_provider(config.provider).acquire()
        breaker = self.context.breakers.get(provider)

        async with breaker.guard():
            attempt = 0
            while True:
                try:
                    async for delta in self._stream_once(adapter, prompt, config, system):
                        parts.append(delta)
                        yield delta
                    break
                except Exception as exc:  # noqa: BLE001 - classified and re-raised
                    error = classify_error(exc, provider)
                    if parts or not error.retryable or attempt + 1 >= self.retry_policy.max_attempts:
                        if error is exc:
                            raise
                        raise error from exc
                    delay = self.retry_policy.delay_for(attempt, error)
                    logger.warning(
                        "Stream attempt %d/%d to %s failed (%s). Retrying in %.2fs...",
                        attempt + 1,
                        self.retry_policy.max_attempts,
                        provider,
                        error.kind.value,
                        delay,
                    )
                    await self.context.sleep(delay)
                    attempt += 1

            if not "".join(parts).strip():
                raise ProviderError("empty streamed response", ErrorKind.INVALID_RESPONSE, provider)

    async def _stream_once(
        self,
        adapter: ProviderAdapter,
        prompt: str,
        config: ProviderConfig,
        system: Optional[str],
    ) -> AsyncIterator[str]:
        request = adapter.prepare(prompt, config, system=system, stream=True)
        async with self.http.stream(
            "POST", request.url, headers=request.headers, json=request.body, timeout=config.timeout
        ) as response:
            if response.is_error:
                await response.aread()
                response.raise_for_status()
            async for line in response.aiter_lines():
                delta = adapter.parse_stream_line(line)
                if delta:
                    yield delta
