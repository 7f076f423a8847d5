"""
LLM integration for the refinement pipeline.

This module provides:
- Multi-provider support (Anthropic Claude, Google Gemini)
- Backend configuration (the active session and named profiles)
- Reasoning-block stripping for replies from thinking models

Usage:
    from response_refiner.llm import create_llm_provider, ProviderType

    provider = create_llm_provider(ProviderType.ANTHROPIC)
    async with provider:
        response = await provider.complete("Hello, world!")
        print(response.content)
"""

from .providers import (
    AnthropicProvider,
    CostTracker,
    GeminiProvider,
    LLMProvider,
    LLMResponse,
    ProviderType,
    TokenUsage,
    create_llm_provider,
    create_provider_from_config,
)
from .config import (
    BackendProfile,
    GeminiModelName,
    GenerationPreset,
    ModelName,
    RetryConfig,
    SessionConfig,
)
from .reasoning import (
    BUILTIN_TEMPLATES,
    FallbackParser,
    ReasoningResult,
    ReasoningStripper,
    ReasoningTemplate,
    ReasoningTemplateRegistry,
    make_template_fallback,
    strip_reasoning,
)

__all__ = [
    # Providers
    "LLMProvider",
    "LLMResponse",
    "ProviderType",
    "TokenUsage",
    "CostTracker",
    "AnthropicProvider",
    "GeminiProvider",
    "create_llm_provider",
    "create_provider_from_config",
    # Config
    "SessionConfig",
    "BackendProfile",
    "GenerationPreset",
    "RetryConfig",
    "ModelName",
    "GeminiModelName",
    # Reasoning
    "ReasoningTemplate",
    "ReasoningResult",
    "ReasoningTemplateRegistry",
    "ReasoningStripper",
    "FallbackParser",
    "BUILTIN_TEMPLATES",
    "make_template_fallback",
    "strip_reasoning",
]
