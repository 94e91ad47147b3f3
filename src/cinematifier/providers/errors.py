from __future__ import annotations

import asyncio
from enum import Enum
from typing import Optional

import httpx


class ErrorKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    NETWORK = "network"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"
    MODEL_UNAVAILABLE = "model_unavailable"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset(
    {ErrorKind.RATE_LIMIT, ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.MODEL_UNAVAILABLE}
)

# Seconds to wait before retrying when the provider gives no Retry-After hint.
DEFAULT_RETRY_AFTER = {
    ErrorKind.RATE_LIMIT: 5.0,
    ErrorKind.NETWORK: 2.0,
    ErrorKind.TIMEOUT: 1.0,
    ErrorKind.MODEL_UNAVAILABLE: 10.0,
}


class ConfigurationError(RuntimeError):
    """Raised when a run cannot start, e.g. no credentials for the selected provider."""


class ProviderError(RuntimeError):
    """A provider failure classified once at the client boundary."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        provider: str,
        *,
        retry_after: Optional[float] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.provider = provider
        self.retry_after = retry_after if retry_after is not None else DEFAULT_RETRY_AFTER.get(kind)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        return f"[{self.provider}:{self.kind.value}] {self.args[0]}"


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _kind_for_status(status: int) -> ErrorKind:
    if status == 429:
        return ErrorKind.RATE_LIMIT
    if status in (401, 403):
        return ErrorKind.AUTH
    if status in (408, 504):
        return ErrorKind.TIMEOUT
    if status >= 500:
        return ErrorKind.MODEL_UNAVAILABLE
    return ErrorKind.UNKNOWN


def _kind_for_message(message: str) -> ErrorKind:
    lowered = message.lower()
    if "429" in lowered or "rate limit" in lowered:
        return ErrorKind.RATE_LIMIT
    if "401" in lowered or "403" in lowered or "unauthorized" in lowered or "api key" in lowered:
        return ErrorKind.AUTH
    if "network" in lowered or "econnrefused" in lowered or "connection" in lowered:
        return ErrorKind.NETWORK
    if "timeout" in lowered or "timed out" in lowered or "aborted" in lowered:
        return ErrorKind.TIMEOUT
    if "503" in lowered or "unavailable" in lowered:
        return ErrorKind.MODEL_UNAVAILABLE
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException, provider: str) -> ProviderError:
    """Map any failure raised while talking to ``provider`` onto the error taxonomy."""
    if isinstance(exc, ProviderError):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        body = response.text[:200] if response.content else ""
        return ProviderError(
            f"HTTP {response.status_code}: {body or response.reason_phrase}",
            _kind_for_status(response.status_code),
            provider,
            retry_after=_parse_retry_after(response),
            status_code=response.status_code,
        )
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return ProviderError(str(exc) or "request timed out", ErrorKind.TIMEOUT, provider)
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return ProviderError(str(exc) or "network error", ErrorKind.NETWORK, provider)
    if isinstance(exc, ValueError):
        # json.JSONDecodeError and pydantic ValidationError both land here.
        return ProviderError(f"unparsable response: {exc}", ErrorKind.INVALID_RESPONSE, provider)

    message = str(exc) or exc.__class__.__name__
    return ProviderError(message, _kind_for_message(message), provider)
