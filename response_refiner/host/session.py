"""The active session and the named profile registry backing generation."""

import logging
from typing import Any, Callable, Iterable, Optional

from response_refiner.llm.config import BackendProfile, SessionConfig
from response_refiner.llm.providers import LLMProvider, create_provider_from_config
from response_refiner.refinement.backends import RequestOptions

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Any], LLMProvider]


class ActiveSession:
    """
    The default backend: one provider configured by ``SessionConfig``.

    Usage:
        async with ActiveSession(settings.default_backend) as session:
            text = await session.generate_quiet("Rewrite this...")
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        provider: Optional[LLMProvider] = None,
        provider_factory: ProviderFactory = create_provider_from_config,
    ):
        self.config = config or SessionConfig()
        self._provider = provider
        self._provider_factory = provider_factory

    @property
    def max_tokens(self) -> int:
        return self.config.max_tokens

    async def __aenter__(self) -> "ActiveSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    async def start(self) -> None:
        """Create and start the provider."""
        if self._provider is None:
            self._provider = self._provider_factory(self.config)
        if not self._provider.is_started:
            await self._provider.start()
        logger.info(
            f"Active session using {self.config.provider.value}/{self.config.get_model_name()}"
        )

    async def stop(self) -> None:
        if self._provider is not None:
            await self._provider.stop()

    def _ensure_provider(self) -> LLMProvider:
        if self._provider is None:
            raise RuntimeError(
                "Session not started. Use 'async with ActiveSession()' or call start()."
            )
        return self._provider

    async def generate_quiet(self, prompt: str) -> str:
        """Generate a reply without adding a turn to the conversation."""
        provider = self._ensure_provider()
        response = await provider.complete(
            prompt,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        return response.content

    def get_cost_summary(self) -> Optional[dict[str, Any]]:
        """Token and cost totals for the session provider, if one was created."""
        if self._provider is None:
            return None
        return self._provider.get_cost_summary()


class ProfileRegistry:
    """
    Named backend profiles, each served by its own lazily started provider.

    Usage:
        registry = ProfileRegistry(settings.profiles)
        reply = await registry.request("fast", messages, 1024, RequestOptions())
        await registry.close()
    """

    def __init__(
        self,
        profiles: Iterable[BackendProfile] = (),
        provider_factory: ProviderFactory = create_provider_from_config,
    ):
        self._profiles = {profile.id: profile for profile in profiles}
        self._providers: dict[str, LLMProvider] = {}
        self._provider_factory = provider_factory

    def get(self, profile_id: str) -> Optional[BackendProfile]:
        return self._profiles.get(profile_id)

    def ids(self) -> list[str]:
        return list(self._profiles)

    def resolve_max_tokens(self, profile_id: str) -> Optional[int]:
        """
        Output token limit for a profile.

        The generation preset's limit wins, then the profile's own
        ``max_tokens``. None means the caller should use its default.
        """
        profile = self.get(profile_id)
        if profile is None:
            logger.warning(f"Profile not found: {profile_id}")
            return None
        if profile.preset is not None and profile.preset.max_tokens is not None:
            return profile.preset.max_tokens
        if profile.max_tokens is None:
            logger.debug(f"Profile {profile_id} sets no max tokens")
        return profile.max_tokens

    async def _get_provider(self, profile: BackendProfile) -> LLMProvider:
        provider = self._providers.get(profile.id)
        if provider is None:
            provider = self._provider_factory(profile)
            await provider.start()
            self._providers[profile.id] = provider
        return provider

    async def request(
        self,
        profile_id: str,
        messages: list[dict[str, str]],
        max_tokens: Optional[int],
        options: RequestOptions,
    ) -> dict[str, Any]:
        """
        Send a role-tagged message list to a profile.

        Raises:
            KeyError: If the profile does not exist
            ValueError: If streaming is requested
        """
        profile = self.get(profile_id)
        if profile is None:
            raise KeyError(f"Connection profile not found: {profile_id}")
        if options.stream:
            raise ValueError("Streaming requests are not supported")

        logger.debug(f"Using connection profile '{profile.display_name()}'")
        provider = await self._get_provider(profile)

        if options.include_generation_preset and profile.preset is not None:
            sampling = profile.preset.to_request_kwargs()
        else:
            sampling = {"temperature": profile.temperature}

        response = await provider.complete(
            "",
            messages=messages,
            max_tokens=max_tokens or profile.max_tokens,
            **sampling,
        )
        return {"content": response.content}

    def get_cost_summary(self) -> dict[str, dict[str, Any]]:
        """Token and cost totals per profile that has served a request."""
        return {
            profile_id: provider.get_cost_summary()
            for profile_id, provider in self._providers.items()
        }

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.stop()
        self._providers.clear()
