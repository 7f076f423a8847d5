"""Generation backends a refinement step can dispatch to."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

from response_refiner.models.config import DEFAULT_BACKEND, Step

from .templates import RenderedPrompt

logger = logging.getLogger(__name__)


@dataclass
class RequestOptions:
    """Options passed along with a named-profile request."""

    include_generation_preset: bool = True
    stream: bool = False


class QuietSession(Protocol):
    """The active session; generates without adding a visible chat turn."""

    max_tokens: int

    async def generate_quiet(self, prompt: str) -> str: ...


class ProfileRequestService(Protocol):
    """Registry of named backend profiles."""

    def resolve_max_tokens(self, profile_id: str) -> Optional[int]: ...

    async def request(
        self,
        profile_id: str,
        messages: list[dict[str, str]],
        max_tokens: Optional[int],
        options: RequestOptions,
    ) -> Union[dict[str, Any], str]: ...


class GenerationBackend(ABC):
    """A target that turns a rendered step prompt into raw reply text."""

    @property
    @abstractmethod
    def backend_id(self) -> str:
        ...

    @abstractmethod
    async def generate(self, prompt: RenderedPrompt) -> str:
        """Return the raw reply text. Errors propagate to the caller."""
        ...


class DefaultSessionBackend(GenerationBackend):
    """Sends the flattened prompt to the active session."""

    def __init__(self, session: QuietSession):
        self.session = session

    @property
    def backend_id(self) -> str:
        return DEFAULT_BACKEND

    async def generate(self, prompt: RenderedPrompt) -> str:
        return await self.session.generate_quiet(prompt.as_single_prompt()) or ""


class NamedProfileBackend(GenerationBackend):
    """Sends a role-tagged message list to a named profile."""

    def __init__(
        self,
        profile_id: str,
        service: ProfileRequestService,
        default_max_tokens: Optional[int] = None,
    ):
        self.profile_id = profile_id
        self.service = service
        self.default_max_tokens = default_max_tokens

    @property
    def backend_id(self) -> str:
        return self.profile_id

    def resolve_max_tokens(self) -> Optional[int]:
        max_tokens = self.service.resolve_max_tokens(self.profile_id)
        if max_tokens is None:
            max_tokens = self.default_max_tokens
        return max_tokens

    async def generate(self, prompt: RenderedPrompt) -> str:
        max_tokens = self.resolve_max_tokens()
        logger.debug(f"Using max tokens {max_tokens} for profile {self.profile_id}")

        result = await self.service.request(
            self.profile_id,
            prompt.as_messages(),
            max_tokens,
            RequestOptions(include_generation_preset=True, stream=False),
        )
        return extract_reply_text(result)


def extract_reply_text(result: Any) -> str:
    """Normalize a request result that is either a string or has ``content``."""
    if not result:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        return result.get("content") or ""
    return getattr(result, "content", None) or ""


class BackendResolver:
    """Picks the backend for a step from its ``backend_ref``."""

    def __init__(
        self,
        session: QuietSession,
        profiles: Optional[ProfileRequestService] = None,
    ):
        self.default = DefaultSessionBackend(session)
        self.profiles = profiles
        self._named: dict[str, NamedProfileBackend] = {}

    def for_step(self, step: Step) -> GenerationBackend:
        if step.uses_default_backend or self.profiles is None:
            return self.default

        backend = self._named.get(step.backend_ref)
        if backend is None:
            backend = NamedProfileBackend(
                step.backend_ref,
                self.profiles,
                default_max_tokens=getattr(self.default.session, "max_tokens", None),
            )
            self._named[step.backend_ref] = backend
        return backend
