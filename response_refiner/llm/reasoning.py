"""Separation of reasoning ("thinking") blocks from backend replies."""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ReasoningTemplate(BaseModel):
    """Delimiters that wrap a reasoning block in raw model output."""

    name: str
    prefix: str
    suffix: str


@dataclass
class ReasoningResult:
    """A reply split into its reasoning block and final content."""

    reasoning: str
    content: str


FallbackParser = Callable[[str, bool], Optional[ReasoningResult]]


BUILTIN_TEMPLATES = [
    ReasoningTemplate(name="Blank", prefix="", suffix=""),
    ReasoningTemplate(name="DeepSeek", prefix="<think>", suffix="</think>"),
    ReasoningTemplate(name="Claude", prefix="<thinking>", suffix="</thinking>"),
    ReasoningTemplate(name="Reasoning", prefix="<reasoning>", suffix="</reasoning>"),
]


def strip_reasoning(
    raw: str,
    template: Optional[ReasoningTemplate],
    strict: bool = True,
) -> Optional[ReasoningResult]:
    """
    Remove the first reasoning block delimited by ``template`` from ``raw``.

    Args:
        raw: Raw backend reply
        template: Prefix/suffix pair, or None when no template applies
        strict: Only match a block at the start of the reply (leading
            whitespace allowed). When False the block may appear anywhere.

    Returns:
        ReasoningResult with both parts trimmed, or None when there is no
        template, no match, or the template cannot be compiled.
    """
    if template is None:
        return None

    try:
        anchor = r"^\s*?" if strict else ""
        pattern = re.compile(
            f"{anchor}{re.escape(template.prefix)}(.*?){re.escape(template.suffix)}",
            re.DOTALL,
        )
        match = pattern.search(str(raw))
    except (re.error, TypeError) as e:
        logger.error(f"Reasoning template '{template.name}' could not be applied: {e}")
        return None

    if match is None:
        logger.debug(f"No reasoning block found for template '{template.name}'")
        return None

    content = raw[: match.start()] + raw[match.end():]
    return ReasoningResult(
        reasoning=match.group(1).strip(),
        content=content.strip(),
    )


class ReasoningTemplateRegistry:
    """Named reasoning templates, seeded with the built-in set."""

    def __init__(self, templates: Optional[Iterable[ReasoningTemplate]] = None):
        self._templates: dict[str, ReasoningTemplate] = {}
        for template in BUILTIN_TEMPLATES:
            self.register(template)
        for template in templates or []:
            self.register(template)

    def register(self, template: ReasoningTemplate) -> None:
        self._templates[template.name] = template

    def lookup(self, name: Optional[str]) -> Optional[ReasoningTemplate]:
        if not name:
            return None
        return self._templates.get(name)

    def names(self) -> list[str]:
        return sorted(self._templates)


def make_template_fallback(template: Optional[ReasoningTemplate]) -> FallbackParser:
    """Build a host-level fallback parser bound to a single template."""

    def parse(text: str, strict: bool) -> Optional[ReasoningResult]:
        return strip_reasoning(text, template, strict=strict)

    return parse


class ReasoningStripper:
    """
    Resolves the reasoning template for a backend and strips replies with it.

    Backends with a registered template use it directly. Anything else (the
    default session, a profile without a template, or a template name the
    registry does not know) goes to the fallback parser.
    """

    def __init__(
        self,
        registry: Optional[ReasoningTemplateRegistry] = None,
        backend_templates: Optional[Mapping[str, str]] = None,
        fallback: Optional[FallbackParser] = None,
    ):
        self.registry = registry or ReasoningTemplateRegistry()
        self.backend_templates = dict(backend_templates or {})
        self.fallback = fallback

    def lookup(self, backend_id: str) -> Optional[ReasoningTemplate]:
        """Get the reasoning template registered for a backend."""
        template_name = self.backend_templates.get(backend_id)
        template = self.registry.lookup(template_name)
        if template_name and template is None:
            logger.debug(f"Reasoning template not found: {template_name}")
        return template

    def _run_fallback(self, raw: str, strict: bool) -> Optional[ReasoningResult]:
        if self.fallback is None:
            return None
        try:
            return self.fallback(raw, strict)
        except Exception as e:
            logger.error(f"Fallback reasoning parser failed: {e}")
            return None

    def strip(self, raw: str, backend_id: str, strict: bool = False) -> Optional[ReasoningResult]:
        template = self.lookup(backend_id)
        if template is None:
            return self._run_fallback(raw, strict)
        return strip_reasoning(raw, template, strict=strict)

    def content_of(self, raw: str, backend_id: str, strict: bool = False) -> str:
        """Reply text with any reasoning block removed."""
        result = self.strip(raw, backend_id, strict=strict)
        if result is None:
            return raw
        if result.reasoning:
            logger.debug(f"Stripped reasoning from {backend_id} response")
        return result.content
