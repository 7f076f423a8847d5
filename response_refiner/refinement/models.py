"""Data models and errors for the refinement pipeline."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RunState(str, Enum):
    """Whether a pipeline is currently refining a message."""

    IDLE = "idle"
    RUNNING = "running"


class StepAction(str, Enum):
    """What a step did to the draft."""

    SKIPPED_EMPTY = "skipped_empty"  # Backend returned no text
    SKIPPED_NO_EDITS = "skipped_no_edits"  # No edit blocks, skip_if_no_changes set
    REPLACED = "replaced"  # No edit blocks, reply became the draft
    EDITED = "edited"  # Edit blocks folded over the draft


class StepOutcome(BaseModel):
    """Record of a single step within a run."""

    step_id: str
    step_name: str
    backend_ref: str
    action: StepAction
    edits_applied: int = 0
    edits_missed: int = 0
    reasoning_stripped: bool = False


class RefinementResult(BaseModel):
    """Result of a completed refinement run."""

    message_index: int
    original_text: str
    refined_text: str
    committed: bool = Field(
        default=False,
        description="True when the refined text was written back to the store",
    )
    steps: list[StepOutcome] = Field(default_factory=list)

    latency_ms: float = 0.0
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    completed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def has_changes(self) -> bool:
        return self.refined_text != self.original_text


class RefinementError(Exception):
    """Base class for errors raised by the refinement pipeline."""


class PreconditionError(RefinementError):
    """The run was rejected before it started; nothing was modified."""


class RefinementInProgressError(PreconditionError):
    """Another refinement run is already in progress."""

    def __init__(self, message: str = "A refinement is already in progress"):
        super().__init__(message)


class InvalidTargetError(PreconditionError):
    """The requested message cannot be refined."""

    def __init__(self, message_index: int, reason: str):
        super().__init__(f"Cannot refine message {message_index}: {reason}")
        self.message_index = message_index
        self.reason = reason


class GenerationError(RefinementError):
    """A backend failed during a step; the run was aborted."""

    def __init__(self, step_name: str, backend_ref: str, cause: Optional[BaseException] = None):
        detail = str(cause) if cause is not None and str(cause) else "Unknown error"
        super().__init__(
            f"Step '{step_name}' failed to generate with backend '{backend_ref}': {detail}"
        )
        self.step_name = step_name
        self.backend_ref = backend_ref
