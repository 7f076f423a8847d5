"""Data models for the response refiner."""

from response_refiner.models.conversation import (
    Message,
    MessageRole,
    ROLE_LABELS,
)
from response_refiner.models.config import (
    DEFAULT_BACKEND,
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_USER_MESSAGE,
    MoveDirection,
    Preset,
    RefinerSettings,
    Step,
    load_settings,
    save_settings,
)

__all__ = [
    # Conversation models
    "Message",
    "MessageRole",
    "ROLE_LABELS",
    # Settings models
    "DEFAULT_BACKEND",
    "DEFAULT_SYSTEM_PROMPT",
    "DEFAULT_USER_MESSAGE",
    "MoveDirection",
    "Preset",
    "RefinerSettings",
    "Step",
    "load_settings",
    "save_settings",
]
