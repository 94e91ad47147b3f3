"""Per-provider request/response shapes.

Each adapter knows one provider's endpoint, headers, request body and how to
pull plain text out of its response envelope. The client picks the adapter
from :data:`ADAPTERS`, which covers every :class:`ProviderName`.
"""

from __future__ import annotations

import abc
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from anthropic.types import Message

from .errors import ErrorKind, ProviderError
from .model import DEFAULT_OLLAMA_URL, ProviderConfig, ProviderName

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a screenplay adapter. Follow the formatting rules exactly."


@dataclass(frozen=True)
class PreparedRequest:
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]


class ProviderAdapter(abc.ABC):
    name: ProviderName

    @abc.abstractmethod
    def endpoint(self, config: ProviderConfig) -> str:
        raise NotImplementedError

    def stream_endpoint(self, config: ProviderConfig) -> str:
        return self.endpoint(config)

    def auth_headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {}

    def headers(self, config: ProviderConfig) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if not config.proxy_url:
            headers.update(self.auth_headers(config))
        return headers

    @abc.abstractmethod
    def build_request(self, prompt: str, system: str, config: ProviderConfig) -> Dict[str, Any]:
        raise NotImplementedError

    def build_stream_request(self, prompt: str, system: str, config: ProviderConfig) -> Dict[str, Any]:
        body = self.build_request(prompt, system, config)
        body["stream"] = True
        return body

    @abc.abstractmethod
    def extract_text(self, payload: Mapping[str, Any]) -> Optional[str]:
        raise NotImplementedError

    def parse_stream_line(self, line: str) -> Optional[str]:
        """Return the text delta carried by one line of a streamed response, if any."""
        raise NotImplementedError(f"{self.name.value} responses are not streamed")

    def parse_response(self, payload: Any) -> str:
        if not isinstance(payload, Mapping):
            raise ProviderError("response body is not a JSON object", ErrorKind.INVALID_RESPONSE, self.name.value)
        try:
            text = self.extract_text(payload)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderError(
                f"unexpected response shape: {exc}", ErrorKind.INVALID_RESPONSE, self.name.value
            ) from exc
        if not text or not text.strip():
            raise ProviderError("empty response", ErrorKind.INVALID_RESPONSE, self.name.value)
        return text

    def prepare(
        self,
        prompt: str,
        config: ProviderConfig,
        *,
        system: Optional[str] = None,
        stream: bool = False,
    ) -> PreparedRequest:
        system = system or DEFAULT_SYSTEM_PROMPT
        if stream:
            body = self.build_stream_request(prompt, system, config)
            url = self.stream_endpoint(config)
        else:
            body = self.build_request(prompt, system, config)
            url = self.endpoint(config)
        if config.proxy_url:
            url = f"{config.proxy_url.rstrip('/')}/api/ai/{self.name.value}"
        return PreparedRequest(url=url, headers=self.headers(config), body=body)


def _sse_data(line: str) -> Optional[Any]:
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == "[DONE]":
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping undecodable stream line: %.80s", data)
        return None


class GeminiAdapter(ProviderAdapter):
    name = ProviderName.GEMINI
    base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    def endpoint(self, config: ProviderConfig) -> str:
        return f"{self.base_url}/{config.resolved_model}:generateContent"

    def stream_endpoint(self, config: ProviderConfig) -> str:
        return f"{self.base_url}/{config.resolved_model}:streamGenerateContent?alt=sse"

    def auth_headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {"x-goog-api-key": config.api_key or ""}

    def build_request(self, prompt: str, system: str, config: ProviderConfig) -> Dict[str, Any]:
        return {
            "system_instruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": config.resolved_temperature,
                "maxOutputTokens": config.resolved_max_tokens,
            },
        }

    def build_stream_request(self, prompt: str, system: str, config: ProviderConfig) -> Dict[str, Any]:
        # Gemini selects streaming by endpoint, not by a body flag.
        return self.build_request(prompt, system, config)

    def extract_text(self, payload: Mapping[str, Any]) -> Optional[str]:
        candidates = payload.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    def parse_stream_line(self, line: str) -> Optional[str]:
        data = _sse_data(line)
        if not isinstance(data, dict):
            return None
        return self.extract_text(data) or None


class OpenAICompatibleAdapter(ProviderAdapter):
    """Chat-completions style API shared by OpenAI, Groq and DeepSeek."""

    url: str
    max_tokens_field = "max_tokens"

    def endpoint(self, config: ProviderConfig) -> str:
        return self.url

    def auth_headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {"Authorization": f"Bearer {config.api_key or ''}"}

    def build_request(self, prompt: str, system: str, config: ProviderConfig) -> Dict[str, Any]:
        return {
            "model": config.resolved_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            self.max_tokens_field: config.resolved_max_tokens,
            "temperature": config.resolved_temperature,
        }

    def extract_text(self, payload: Mapping[str, Any]) -> Optional[str]:
        choices = payload.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("message") or {}).get("content")

    def parse_stream_line(self, line: str) -> Optional[str]:
        data = _sse_data(line)
        if not isinstance(data, dict):
            return None
        choices = data.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("delta") or {}).get("content") or None


class OpenAIAdapter(OpenAICompatibleAdapter):
    name = ProviderName.OPENAI
    url = "https://api.openai.com/v1/chat/completions"


class GroqAdapter(OpenAICompatibleAdapter):
    name = ProviderName.GROQ
    url = "https://api.groq.com/openai/v1/chat/completions"
    max_tokens_field = "max_completion_tokens"


class DeepSeekAdapter(OpenAICompatibleAdapter):
    name = ProviderName.DEEPSEEK
    url = "https://api.deepseek.com/chat/completions"


class AnthropicAdapter(ProviderAdapter):
    name = ProviderName.ANTHROPIC
    url = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"

    def endpoint(self, config: ProviderConfig) -> str:
        return self.url

    def auth_headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {"x-api-key": config.api_key or "", "anthropic-version": self.api_version}

    def build_request(self, prompt: str, system: str, config: ProviderConfig) -> Dict[str, Any]:
        return {
            "model": config.resolved_model,
            "max_tokens": config.resolved_max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.resolved_temperature,
        }

    def extract_text(self, payload: Mapping[str, Any]) -> Optional[str]:
        message = Message.model_validate(payload)
        if message.stop_reason == "max_tokens":
            logger.warning(
                "Claude response truncated by max_tokens; consider increasing limit (model=%s)",
                message.model,
            )
        return _collect_text(message.content)

    def parse_stream_line(self, line: str) -> Optional[str]:
        data = _sse_data(line)
        if not isinstance(data, dict) or data.get("type") != "content_block_delta":
            return None
        delta = data.get("delta") or {}
        if delta.get("type", "text_delta") != "text_delta":
            return None
        return delta.get("text") or None


def _collect_text(blocks: Iterable[Any]) -> str:
    parts: list[str] = []
    for block in blocks:
        if getattr(block, "type", None) == "text":
            parts.append(getattr(block, "text", ""))
    return "".join(parts)


class OllamaAdapter(ProviderAdapter):
    name = ProviderName.OLLAMA

    def endpoint(self, config: ProviderConfig) -> str:
        base = (config.base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        return f"{base}/api/generate"

    def build_request(self, prompt: str, system: str, config: ProviderConfig) -> Dict[str, Any]:
        return {
            "model": config.resolved_model,
            "prompt": f"{system}\n\n{prompt}",
            "stream": False,
            "options": {
                "temperature": config.resolved_temperature,
                "num_predict": config.resolved_max_tokens,
            },
        }

    def extract_text(self, payload: Mapping[str, Any]) -> Optional[str]:
        return payload.get("response")


ADAPTERS: Dict[ProviderName, ProviderAdapter] = {
    adapter.name: adapter
    for adapter in (
        GeminiAdapter(),
        OpenAIAdapter(),
        AnthropicAdapter(),
        GroqAdapter(),
        DeepSeekAdapter(),
        OllamaAdapter(),
    )
}

_missing = set(ProviderName) - set(ADAPTERS)
if _missing:
    raise RuntimeError(f"No adapter registered for: {sorted(p.value for p in _missing)}")


def get_adapter(provider: ProviderName) -> ProviderAdapter:
    return ADAPTERS[provider]
