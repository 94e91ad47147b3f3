from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class ProviderName(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GROQ = "groq"
    DEEPSEEK = "deepseek"
    OLLAMA = "ollama"


class ModelPreset(BaseModel):
    model: str
    max_tokens: int = 4096
    temperature: float = 0.4
    supports_streaming: bool = True
    rate_limit_rpm: int = 60


MODEL_PRESETS: Dict[ProviderName, ModelPreset] = {
    ProviderName.GEMINI: ModelPreset(model="gemini-2.5-flash", max_tokens=8192, rate_limit_rpm=15),
    ProviderName.OPENAI: ModelPreset(model="gpt-4o-mini", rate_limit_rpm=60),
    ProviderName.ANTHROPIC: ModelPreset(model="claude-3-5-sonnet-latest", rate_limit_rpm=60),
    ProviderName.GROQ: ModelPreset(model="llama-3.3-70b-versatile", rate_limit_rpm=30),
    ProviderName.DEEPSEEK: ModelPreset(model="deepseek-chat", supports_streaming=False, rate_limit_rpm=60),
    ProviderName.OLLAMA: ModelPreset(model="llama3", supports_streaming=False, rate_limit_rpm=120),
}

DEFAULT_OLLAMA_URL = "http://localhost:11434"


class ProviderConfig(BaseModel):
    """Everything the client needs to reach one provider."""

    provider: ProviderName
    api_key: Optional[str] = None
    model: Optional[str] = None
    base_url: Optional[str] = Field(default=None, description="Ollama server URL")
    proxy_url: Optional[str] = Field(default=None, description="Route requests through <proxy>/api/ai/<provider>")
    timeout: float = 60.0
    max_tokens_cap: int = 4096
    temperature: Optional[float] = None

    @property
    def preset(self) -> ModelPreset:
        return MODEL_PRESETS[self.provider]

    @property
    def resolved_model(self) -> str:
        return self.model or self.preset.model

    @property
    def resolved_max_tokens(self) -> int:
        return min(self.preset.max_tokens, self.max_tokens_cap)

    @property
    def resolved_temperature(self) -> float:
        return self.preset.temperature if self.temperature is None else self.temperature

    @property
    def requires_api_key(self) -> bool:
        return self.provider is not ProviderName.OLLAMA and not self.proxy_url
