"""
Multi-step refinement of assistant messages.

This module runs a message through an ordered list of steps. Each step asks a
backend for search/replace edits (or a full rewrite) and applies them to a
working draft, with support for:
- Search/replace edit blocks embedded in free text
- A window of prior conversation turns via ``{{savedMessages}}``
- The active session or named backend profiles per step
- Reasoning-block stripping for thinking models
- Shared prompt presets with JSON import/export

Usage:
    from response_refiner.refinement import BackendResolver, RefinementPipeline

    pipeline = RefinementPipeline(settings, store, BackendResolver(session, profiles))
    result = await pipeline.refine(message_id)
    print(result.refined_text)
"""

from .models import (
    GenerationError,
    InvalidTargetError,
    PreconditionError,
    RefinementError,
    RefinementInProgressError,
    RefinementResult,
    RunState,
    StepAction,
    StepOutcome,
)
from .edits import Edit, EditReport, apply_edit, apply_edits, parse_edits
from .context import build_saved_messages, window_bounds
from .templates import RenderedPrompt, render_step_prompts, substitute_placeholders
from .backends import (
    BackendResolver,
    DefaultSessionBackend,
    GenerationBackend,
    NamedProfileBackend,
    RequestOptions,
)
from .presets import (
    DuplicateAction,
    DuplicateResolution,
    ImportAction,
    PresetImportError,
    PresetLibrary,
)
from .engine import ConversationStore, RefinementPipeline

__all__ = [
    # Core
    "RefinementPipeline",
    "ConversationStore",
    "RefinementResult",
    "RunState",
    "StepAction",
    "StepOutcome",
    # Errors
    "RefinementError",
    "PreconditionError",
    "RefinementInProgressError",
    "InvalidTargetError",
    "GenerationError",
    # Edits
    "Edit",
    "EditReport",
    "parse_edits",
    "apply_edit",
    "apply_edits",
    # Context and templates
    "build_saved_messages",
    "window_bounds",
    "RenderedPrompt",
    "render_step_prompts",
    "substitute_placeholders",
    # Backends
    "GenerationBackend",
    "DefaultSessionBackend",
    "NamedProfileBackend",
    "BackendResolver",
    "RequestOptions",
    # Presets
    "PresetLibrary",
    "PresetImportError",
    "DuplicateAction",
    "DuplicateResolution",
    "ImportAction",
]
