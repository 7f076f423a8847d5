"""
LLM Provider implementations.

This module provides a unified interface for different LLM providers
(Anthropic, Google Gemini) with a common abstraction layer.
"""

from .base import (
    CostTracker,
    LLMProvider,
    LLMResponse,
    ProviderType,
    TokenUsage,
)
from .anthropic import AnthropicProvider
from .gemini import GeminiProvider
from .factory import create_llm_provider, create_provider_from_config

__all__ = [
    # Base
    "LLMProvider",
    "LLMResponse",
    "ProviderType",
    "TokenUsage",
    "CostTracker",
    # Providers
    "AnthropicProvider",
    "GeminiProvider",
    # Factory
    "create_llm_provider",
    "create_provider_from_config",
]
