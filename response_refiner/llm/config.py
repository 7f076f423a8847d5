"""Configuration models for generation backends."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, SecretStr

from .providers.base import ProviderType


class ModelName(str, Enum):
    """Available Claude model names."""

    CLAUDE_OPUS_4 = "claude-opus-4-20250514"
    CLAUDE_SONNET_4 = "claude-sonnet-4-20250514"
    CLAUDE_HAIKU_3_5 = "claude-3-5-haiku-20241022"

    # Aliases for convenience
    OPUS = "claude-opus-4-20250514"
    SONNET = "claude-sonnet-4-20250514"
    HAIKU = "claude-3-5-haiku-20241022"


class GeminiModelName(str, Enum):
    """Available Gemini model names."""

    GEMINI_2_5_FLASH = "gemini-2.5-flash"
    GEMINI_2_5_PRO = "gemini-2.5-pro"
    GEMINI_2_FLASH = "gemini-2.0-flash"

    # Aliases for convenience
    FLASH = "gemini-2.5-flash"
    PRO = "gemini-2.5-pro"


DEFAULT_MODELS = {
    ProviderType.ANTHROPIC: ModelName.SONNET.value,
    ProviderType.GEMINI: GeminiModelName.FLASH.value,
}


class RetryConfig(BaseModel):
    """Configuration for retry behavior."""

    max_retries: int = Field(default=3, ge=0, le=10)
    initial_delay_seconds: float = Field(default=1.0, ge=0.1)
    max_delay_seconds: float = Field(default=60.0, ge=1.0)
    exponential_base: float = Field(default=2.0, ge=1.5, le=3.0)


class GenerationPreset(BaseModel):
    """Sampling parameters attached to a backend profile."""

    name: str = "Default"
    max_tokens: Optional[int] = Field(default=None, ge=1, le=128000)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=1.0, ge=0.0, le=1.0)
    stop_sequences: list[str] = Field(default_factory=list)

    def to_request_kwargs(self) -> dict[str, Any]:
        """Keyword arguments passed to ``LLMProvider.complete``."""
        kwargs: dict[str, Any] = {
            "temperature": self.temperature,
            "top_p": self.top_p,
        }
        if self.stop_sequences:
            kwargs["stop_sequences"] = list(self.stop_sequences)
        return kwargs


class SessionConfig(BaseModel):
    """The active session used by steps that target the default backend."""

    provider: ProviderType = Field(
        default=ProviderType.ANTHROPIC,
        description="LLM provider to use (anthropic or gemini)",
    )
    model: Optional[str] = Field(
        default=None,
        description="Model name. Falls back to the provider default",
    )
    api_key: Optional[SecretStr] = Field(
        default=None,
        description="API key. If not set, reads from environment variable",
    )
    api_base_url: Optional[str] = None
    timeout_seconds: float = Field(default=120.0, ge=10.0, le=600.0)

    max_tokens: int = Field(default=4096, ge=1, le=128000)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    retry: RetryConfig = Field(default_factory=RetryConfig)
    requests_per_minute: Optional[int] = Field(default=50, ge=1)

    log_requests: bool = False
    log_responses: bool = False

    def get_model_name(self) -> str:
        """Get the model name, using the provider default when unset."""
        return self.model or DEFAULT_MODELS[self.provider]

    def get_api_key_value(self) -> Optional[str]:
        """Get the API key value as a plain string."""
        if self.api_key:
            return self.api_key.get_secret_value()
        return None


class BackendProfile(SessionConfig):
    """
    A named generation backend.

    Steps refer to a profile by ``id``. A profile may carry its own generation
    preset (sampling parameters and an output token limit) and the name of the
    reasoning template used to strip thinking blocks from its replies.
    """

    id: str
    name: str = ""
    preset: Optional[GenerationPreset] = None
    reasoning_template: Optional[str] = Field(
        default=None,
        description="Name of a registered reasoning template",
    )

    def display_name(self) -> str:
        return self.name or self.id
