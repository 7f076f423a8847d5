"""Step, preset and settings models for the refinement pipeline."""

import json
import logging
import random
import time
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from response_refiner.llm.config import BackendProfile, SessionConfig

logger = logging.getLogger(__name__)


DEFAULT_BACKEND = "default"

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant that refines and improves text."
DEFAULT_USER_MESSAGE = (
    "Please refine the following text using the search and replace format:\n\n"
    "{{draft}}\n\n"
    "Use <search>text to find</search><replace>replacement text</replace> "
    "tags to indicate changes."
)
DEFAULT_STEP_NAME = "Refinement Step"
DEFAULT_PRESET_NAME = "Baseline Refinement"
DEFAULT_SAVED_MESSAGES_COUNT = 3


def generate_step_id() -> str:
    return f"step-{uuid.uuid4().hex[:12]}"


def generate_preset_id() -> str:
    return f"preset-{int(time.time() * 1000)}-{random.randint(0, 999)}"


class MoveDirection(str, Enum):
    """Direction for reordering a step."""

    UP = "up"
    DOWN = "down"


class Step(BaseModel):
    """One configured stage of the refinement pipeline."""

    id: str = Field(default_factory=generate_step_id)
    name: str = DEFAULT_STEP_NAME
    backend_ref: str = Field(
        default=DEFAULT_BACKEND,
        description="'default' for the active session, otherwise a profile id",
    )
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    user_message: str = DEFAULT_USER_MESSAGE
    skip_if_no_changes: bool = Field(
        default=False,
        description="Leave the draft alone when the reply contains no edit blocks",
    )
    preset_id: Optional[str] = None

    @property
    def uses_default_backend(self) -> bool:
        return not self.backend_ref or self.backend_ref == DEFAULT_BACKEND


class Preset(BaseModel):
    """A named, reusable pair of step prompts."""

    id: str = Field(default_factory=generate_preset_id)
    name: str
    system_prompt: str = ""
    user_message: str = ""


EDITABLE_STEP_FIELDS = {
    "name",
    "backend_ref",
    "system_prompt",
    "user_message",
    "skip_if_no_changes",
}


class RefinerSettings(BaseModel):
    """Everything the pipeline and the preset library read from disk."""

    steps: list[Step] = Field(default_factory=list)
    presets: list[Preset] = Field(default_factory=list)

    # Context window ("saved messages") settings
    enable_saved_messages: bool = False
    saved_messages_count: int = Field(
        default=DEFAULT_SAVED_MESSAGES_COUNT,
        description="Prior turns to include; -1 for the entire prior history",
    )

    # Backends
    default_backend: SessionConfig = Field(default_factory=SessionConfig)
    profiles: list[BackendProfile] = Field(default_factory=list)
    default_reasoning_template: Optional[str] = Field(
        default=None,
        description="Reasoning template used for replies from the active session",
    )

    # Host macro values ({{user}}, {{char}}, ...)
    macros: dict[str, str] = Field(default_factory=dict)

    @field_validator("saved_messages_count")
    @classmethod
    def _clamp_saved_messages_count(cls, value: int) -> int:
        return max(value, -1)

    @classmethod
    def create_default(cls) -> "RefinerSettings":
        """Settings with a single default step linked to the baseline preset."""
        settings = cls(steps=[Step()])
        settings.seed_defaults()
        return settings

    def seed_defaults(self) -> None:
        """Add the baseline preset when none exist and link matching steps to it."""
        if self.presets:
            return

        preset = Preset(
            name=DEFAULT_PRESET_NAME,
            system_prompt=DEFAULT_SYSTEM_PROMPT,
            user_message=DEFAULT_USER_MESSAGE,
        )
        self.presets.append(preset)

        for step in self.steps:
            if (
                step.system_prompt == DEFAULT_SYSTEM_PROMPT
                and step.user_message == DEFAULT_USER_MESSAGE
            ):
                step.preset_id = preset.id

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_step(self, step_id: str) -> Optional[Step]:
        return next((s for s in self.steps if s.id == step_id), None)

    def find_preset(self, preset_id: Optional[str]) -> Optional[Preset]:
        if not preset_id:
            return None
        return next((p for p in self.presets if p.id == preset_id), None)

    def get_profile(self, profile_id: str) -> Optional[BackendProfile]:
        return next((p for p in self.profiles if p.id == profile_id), None)

    # ------------------------------------------------------------------
    # Step management
    # ------------------------------------------------------------------

    def add_step(self, **fields: Any) -> Step:
        """Append a new step built from defaults plus ``fields``."""
        step = Step(**fields)
        self.steps.append(step)
        logger.debug(f"Added step '{step.name}' ({step.id})")
        return step

    def remove_step(self, step_id: str) -> bool:
        before = len(self.steps)
        self.steps = [s for s in self.steps if s.id != step_id]
        return len(self.steps) < before

    def move_step(self, step_id: str, direction: MoveDirection | str) -> bool:
        """
        Swap a step with its neighbour.

        Returns:
            True if the step moved, False when it is already at that edge
            or does not exist.
        """
        direction = MoveDirection(direction)
        index = next((i for i, s in enumerate(self.steps) if s.id == step_id), -1)
        if index == -1:
            return False

        target = index - 1 if direction == MoveDirection.UP else index + 1
        if target < 0 or target >= len(self.steps):
            return False

        self.steps[index], self.steps[target] = self.steps[target], self.steps[index]
        return True

    def update_step(self, step_id: str, field: str, value: Any) -> Step:
        """
        Set a single editable field on a step.

        Raises:
            KeyError: If the step does not exist
            ValueError: If the field is not editable
        """
        if field not in EDITABLE_STEP_FIELDS:
            raise ValueError(f"Field '{field}' cannot be edited")

        for index, step in enumerate(self.steps):
            if step.id == step_id:
                updated = Step.model_validate({**step.model_dump(), field: value})
                self.steps[index] = updated
                return updated

        raise KeyError(f"Step not found: {step_id}")

    def backend_templates(self) -> dict[str, str]:
        """Map of profile id to reasoning template name."""
        return {
            profile.id: profile.reasoning_template
            for profile in self.profiles
            if profile.reasoning_template
        }


def load_settings(path: Path) -> RefinerSettings:
    """
    Load settings from a JSON file.

    A missing file yields the default settings. Loaded settings are seeded
    with the baseline preset if they carry none.
    """
    if not path.exists():
        logger.info(f"No settings file at {path}, using defaults")
        return RefinerSettings.create_default()

    with open(path) as f:
        data = json.load(f)

    settings = RefinerSettings.model_validate(data)
    settings.seed_defaults()
    logger.debug(f"Loaded settings with {len(settings.steps)} steps from {path}")
    return settings


def _existing_api_keys(path: Path) -> tuple[Optional[str], dict[str, str]]:
    """API keys written by hand into an existing settings file."""
    if not path.exists():
        return None, {}

    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read existing settings at {path}: {e}")
        return None, {}

    if not isinstance(data, dict):
        return None, {}

    default_key = (data.get("default_backend") or {}).get("api_key")
    profile_keys = {
        profile["id"]: profile["api_key"]
        for profile in data.get("profiles") or []
        if isinstance(profile, dict) and profile.get("id") and profile.get("api_key")
    }
    return default_key, profile_keys


def save_settings(settings: RefinerSettings, path: Path) -> Path:
    """
    Write settings to a JSON file.

    API keys held in memory are never written. Keys already present in the
    file (added by hand) are carried over for the backends that still exist.
    """
    default_key, profile_keys = _existing_api_keys(path)

    data = settings.model_dump(
        mode="json",
        exclude={"default_backend": {"api_key"}, "profiles": {"__all__": {"api_key"}}},
    )
    if default_key:
        data["default_backend"]["api_key"] = default_key
    for profile in data["profiles"]:
        if profile["id"] in profile_keys:
            profile["api_key"] = profile_keys[profile["id"]]

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2, default=str)
    logger.info(f"Saved settings to {path}")
    return path
