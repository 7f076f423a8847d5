"""Placeholder substitution for step prompts."""

from dataclasses import dataclass
from typing import Callable, Optional

from response_refiner.models.config import Step

DRAFT_PLACEHOLDER = "{{draft}}"
SAVED_MESSAGES_PLACEHOLDER = "{{savedMessages}}"

MacroExpander = Callable[[str], str]


def substitute_placeholders(text: str, draft: str, saved_messages: str) -> str:
    """Replace every ``{{draft}}`` and ``{{savedMessages}}`` in ``text``."""
    return (text or "").replace(DRAFT_PLACEHOLDER, draft).replace(
        SAVED_MESSAGES_PLACEHOLDER, saved_messages
    )


@dataclass
class RenderedPrompt:
    """A step's prompts after all substitutions."""

    system_prompt: str
    user_message: str

    def as_single_prompt(self) -> str:
        """System prompt and user message joined by a blank line."""
        if self.system_prompt:
            return f"{self.system_prompt}\n\n{self.user_message}"
        return self.user_message

    def as_messages(self) -> list[dict[str, str]]:
        """Role-tagged message list for chat-style backends."""
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": self.user_message})
        return messages


def render_step_prompts(
    step: Step,
    draft: str,
    saved_messages: str,
    expand: Optional[MacroExpander] = None,
) -> RenderedPrompt:
    """
    Resolve a step's system prompt and user message.

    The fixed placeholders are substituted first, then the host macro pass
    runs over the result.
    """
    expand = expand or (lambda text: text)
    return RenderedPrompt(
        system_prompt=expand(substitute_placeholders(step.system_prompt, draft, saved_messages)),
        user_message=expand(substitute_placeholders(step.user_message, draft, saved_messages)),
    )
