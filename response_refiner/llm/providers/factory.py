"""Factory for creating LLM providers."""

import logging
from typing import Any, Optional

from .base import LLMProvider, ProviderType

logger = logging.getLogger(__name__)


def create_llm_provider(
    provider: ProviderType | str,
    api_key: Optional[str] = None,
    default_model: Optional[str] = None,
    **kwargs: Any,
) -> LLMProvider:
    """
    Create an LLM provider instance.

    Args:
        provider: The provider type (ProviderType enum or string)
        api_key: Optional API key (falls back to environment variables)
        default_model: Optional default model name
        **kwargs: Additional provider-specific arguments

    Returns:
        An LLMProvider instance

    Raises:
        ValueError: If the provider type is unknown
    """
    if isinstance(provider, str):
        try:
            provider = ProviderType(provider.lower())
        except ValueError:
            raise ValueError(
                f"Unknown provider: {provider}. "
                f"Supported providers: {[p.value for p in ProviderType]}"
            )

    if provider == ProviderType.ANTHROPIC:
        from .anthropic import AnthropicProvider

        return AnthropicProvider(
            api_key=api_key,
            default_model=default_model or "claude-sonnet-4-20250514",
            **kwargs,
        )

    elif provider == ProviderType.GEMINI:
        from .gemini import GeminiProvider

        # Gemini has no custom base URL support
        kwargs.pop("api_base_url", None)
        return GeminiProvider(
            api_key=api_key,
            default_model=default_model or "gemini-2.5-flash",
            **kwargs,
        )

    raise ValueError(
        f"Unknown provider: {provider}. "
        f"Supported providers: {[p.value for p in ProviderType]}"
    )


def create_provider_from_config(config: Any) -> LLMProvider:
    """
    Create a provider from a ``SessionConfig`` or ``BackendProfile``.

    Args:
        config: Any object exposing the session configuration fields

    Returns:
        An unstarted LLMProvider
    """
    logger.debug(
        f"Creating {config.provider.value} provider for model {config.get_model_name()}"
    )
    return create_llm_provider(
        config.provider,
        api_key=config.get_api_key_value(),
        default_model=config.get_model_name(),
        api_base_url=config.api_base_url,
        timeout_seconds=config.timeout_seconds,
        max_retries=config.retry.max_retries,
        initial_delay_seconds=config.retry.initial_delay_seconds,
        max_delay_seconds=config.retry.max_delay_seconds,
        exponential_base=config.retry.exponential_base,
        requests_per_minute=config.requests_per_minute,
        log_requests=config.log_requests,
        log_responses=config.log_responses,
    )
