"""Google Gemini LLM provider implementation."""

import asyncio
import logging
import os
import time
from typing import Any, Optional

from .base import (
    LLMProvider,
    LLMResponse,
    ProviderType,
    TokenUsage,
)

logger = logging.getLogger(__name__)


# Gemini model pricing per million tokens (as of 2025)
GEMINI_PRICING = {
    "gemini-2.5-flash": {"input": 0.15, "output": 0.60},
    "gemini-2.5-pro": {"input": 1.25, "output": 5.00},
    "gemini-2.0-flash": {"input": 0.10, "output": 0.40},
}

# Default pricing for unknown models
DEFAULT_GEMINI_PRICING = {"input": 0.15, "output": 0.60}


class GeminiProvider(LLMProvider):
    """
    Google Gemini LLM provider.

    Note: role-tagged message lists are flattened into a single transcript;
    system messages become the model's ``system_instruction``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "gemini-2.5-flash",
        timeout_seconds: float = 120.0,
        max_retries: int = 3,
        initial_delay_seconds: float = 1.0,
        max_delay_seconds: float = 60.0,
        exponential_base: float = 2.0,
        requests_per_minute: Optional[int] = 60,
        track_costs: bool = True,
        log_requests: bool = False,
        log_responses: bool = False,
    ):
        super().__init__()
        self._api_key = api_key
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.initial_delay_seconds = initial_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.exponential_base = exponential_base
        self.requests_per_minute = requests_per_minute
        self.track_costs = track_costs
        self.log_requests = log_requests
        self.log_responses = log_responses

        self._genai_module: Optional[Any] = None
        self._rate_limit_lock = asyncio.Lock()
        self._last_request_time: float = 0.0

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.GEMINI

    def _get_api_key(self) -> str:
        """Get API key from config or environment."""
        if self._api_key:
            return self._api_key

        for env_var in ["GOOGLE_API_KEY", "GEMINI_API_KEY"]:
            api_key = os.environ.get(env_var)
            if api_key:
                return api_key

        raise ValueError(
            "Google API key not found. Set GOOGLE_API_KEY or GEMINI_API_KEY "
            "environment variable or pass api_key parameter."
        )

    async def start(self) -> None:
        """Initialize the Gemini client."""
        import google.generativeai as genai

        self._genai_module = genai
        self._genai_module.configure(api_key=self._get_api_key())
        self._started = True
        logger.info("Gemini provider initialized")

    async def stop(self) -> None:
        """Clean up resources."""
        self._genai_module = None
        self._started = False
        logger.info("Gemini provider closed")

    def _get_model(self, model_name: str, system_instruction: Optional[str] = None) -> Any:
        """Create a GenerativeModel instance."""
        if self._genai_module is None:
            raise RuntimeError(
                "Provider not initialized. Use 'async with provider' or call start()."
            )

        # The SDK adds the "models/" prefix itself
        if model_name.startswith("models/"):
            model_name = model_name[7:]

        if system_instruction:
            return self._genai_module.GenerativeModel(
                model_name, system_instruction=system_instruction
            )
        return self._genai_module.GenerativeModel(model_name)

    async def _apply_rate_limit(self) -> None:
        """Apply rate limiting between requests."""
        if self.requests_per_minute:
            min_interval = 60.0 / self.requests_per_minute
            async with self._rate_limit_lock:
                elapsed = time.time() - self._last_request_time
                if elapsed < min_interval:
                    await asyncio.sleep(min_interval - elapsed)
                self._last_request_time = time.time()

    def _build_prompt(
        self,
        prompt: str,
        system: Optional[str] = None,
        messages: Optional[list[dict[str, str]]] = None,
    ) -> tuple[str, Optional[str]]:
        """
        Build prompt for Gemini.

        Returns:
            Tuple of (user_prompt, system_instruction)
        """
        if not messages:
            return prompt, system

        parts = []
        system_instruction = system
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if role == "system":
                system_instruction = content
            elif role == "assistant":
                parts.append(f"Assistant: {content}")
            else:
                parts.append(content)
        return "\n\n".join(parts), system_instruction

    def _backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before retrying after the given failed attempt."""
        delay = self.initial_delay_seconds * (self.exponential_base ** attempt)
        return min(delay, self.max_delay_seconds)

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        messages: Optional[list[dict[str, str]]] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        top_p: float = 1.0,
        stop_sequences: Optional[list[str]] = None,
        model: Optional[str] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Send a completion request to Gemini."""
        model_name = model or self.default_model
        user_prompt, system_instruction = self._build_prompt(prompt, system, messages)

        generation_config: dict[str, Any] = {
            "max_output_tokens": max_tokens,
            "temperature": temperature,
            "top_p": top_p,
        }
        if stop_sequences:
            generation_config["stop_sequences"] = stop_sequences

        await self._apply_rate_limit()

        start_time = time.time()
        genai_model = self._get_model(model_name, system_instruction)

        if self.log_requests:
            logger.debug(f"Gemini Request: model={model_name}, prompt={user_prompt[:200]}...")

        for attempt in range(self.max_retries + 1):
            try:
                response = await asyncio.to_thread(
                    genai_model.generate_content,
                    user_prompt,
                    generation_config=generation_config,
                )
                break
            except Exception as e:
                if attempt >= self.max_retries:
                    raise
                wait_time = self._backoff_delay(attempt)
                logger.warning(
                    f"Gemini request failed (attempt {attempt + 1}), retrying in {wait_time}s: {e}"
                )
                await asyncio.sleep(wait_time)

        latency_ms = (time.time() - start_time) * 1000

        try:
            content = response.text
        except ValueError:
            # Blocked or empty candidates
            if response.prompt_feedback:
                logger.warning(f"Gemini response blocked: {response.prompt_feedback}")
            content = ""

        usage = TokenUsage()
        if getattr(response, "usage_metadata", None):
            usage.input_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
            usage.output_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0

        cost_usd = self.calculate_cost(usage, model_name)

        stop_reason = None
        if response.candidates:
            stop_reason = str(getattr(response.candidates[0], "finish_reason", "")) or None

        llm_response = LLMResponse(
            content=content,
            model=model_name,
            usage=usage,
            stop_reason=stop_reason,
            latency_ms=latency_ms,
            provider=ProviderType.GEMINI,
            cost_usd=cost_usd,
        )

        if self.track_costs:
            self.cost_tracker.add(llm_response, cost_usd)

        if self.log_responses:
            logger.debug(f"Gemini Response: {content[:200]}...")

        return llm_response

    def calculate_cost(self, usage: TokenUsage, model: str) -> float:
        """Calculate cost in USD for token usage."""
        pricing = GEMINI_PRICING.get(model, DEFAULT_GEMINI_PRICING)
        input_cost = (usage.input_tokens / 1_000_000) * pricing["input"]
        output_cost = (usage.output_tokens / 1_000_000) * pricing["output"]
        return input_cost + output_cost
