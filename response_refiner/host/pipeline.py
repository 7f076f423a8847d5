"""Wires settings and host collaborators into a refinement pipeline."""

import logging
from typing import Optional

from response_refiner.llm.reasoning import (
    ReasoningStripper,
    ReasoningTemplateRegistry,
    make_template_fallback,
)
from response_refiner.models.config import RefinerSettings
from response_refiner.refinement.backends import (
    BackendResolver,
    ProfileRequestService,
    QuietSession,
)
from response_refiner.refinement.engine import (
    ConversationStore,
    PreRunHook,
    RefinementPipeline,
)

from .macros import MacroExpander

logger = logging.getLogger(__name__)


def create_reasoning_stripper(
    settings: RefinerSettings,
    registry: Optional[ReasoningTemplateRegistry] = None,
) -> ReasoningStripper:
    """
    Build the stripper for the configured profiles.

    Replies from the active session (and from profiles without a known
    template) fall back to ``settings.default_reasoning_template``.
    """
    registry = registry or ReasoningTemplateRegistry()
    fallback = None
    if settings.default_reasoning_template:
        template = registry.lookup(settings.default_reasoning_template)
        if template is None:
            logger.warning(
                f"Default reasoning template not found: {settings.default_reasoning_template}"
            )
        else:
            fallback = make_template_fallback(template)

    return ReasoningStripper(
        registry=registry,
        backend_templates=settings.backend_templates(),
        fallback=fallback,
    )


def create_pipeline(
    settings: RefinerSettings,
    store: ConversationStore,
    session: QuietSession,
    profiles: Optional[ProfileRequestService] = None,
    pre_run_hook: Optional[PreRunHook] = None,
) -> RefinementPipeline:
    """Assemble a pipeline from settings and the host's collaborators."""
    return RefinementPipeline(
        settings=settings,
        store=store,
        backends=BackendResolver(session, profiles),
        stripper=create_reasoning_stripper(settings),
        expand=MacroExpander(settings.macros),
        pre_run_hook=pre_run_hook,
    )
