"""Named prompt presets shared between steps, with JSON import/export."""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from response_refiner.models.config import Preset, RefinerSettings, generate_preset_id

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
EXPORT_EXTENSION = "final-response-processor"


class DuplicateAction(str, Enum):
    """What to do when an imported preset's name is already taken."""

    OVERWRITE = "overwrite"
    RENAME = "rename"
    CANCEL = "cancel"


class DuplicateResolution(BaseModel):
    action: DuplicateAction
    new_name: Optional[str] = None


DuplicateHandler = Callable[[Preset, Preset], DuplicateResolution]


class ImportAction(str, Enum):
    NEW = "new"
    OVERWRITE = "overwrite"
    RENAMED = "renamed"


class ImportResult(BaseModel):
    preset: Preset
    action: ImportAction


class PresetExport(BaseModel):
    """Envelope written by ``export_preset``."""

    version: str = EXPORT_VERSION
    extension: str = EXPORT_EXTENSION
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    preset: Preset


class PresetImportError(Exception):
    """Preset data could not be imported."""


# Files written by the browser extension use camelCase field names.
CAMEL_CASE_FIELDS = {
    "systemPrompt": "system_prompt",
    "userMessage": "user_message",
}


def normalize_preset_data(data: dict) -> dict:
    """Map camelCase preset keys to their snake_case names; snake_case wins."""
    normalized = dict(data)
    for camel, snake in CAMEL_CASE_FIELDS.items():
        if camel in normalized:
            value = normalized.pop(camel)
            normalized.setdefault(snake, value)
    return normalized


def validate_preset_data(data: Any) -> bool:
    """A preset needs a non-empty name, system prompt and user message."""
    if not isinstance(data, dict):
        return False
    data = normalize_preset_data(data)
    for key in ("name", "system_prompt", "user_message"):
        value = data.get(key)
        if not value or not isinstance(value, str):
            return False
    return True


class PresetLibrary:
    """
    Manages the presets stored in ``RefinerSettings`` and their links to steps.

    Usage:
        library = PresetLibrary(settings)
        preset = library.create_from_step(step.id, "Tighten prose")
        payload = library.export_preset(preset.id)
    """

    def __init__(self, settings: RefinerSettings):
        self.settings = settings

    @property
    def presets(self) -> list[Preset]:
        return self.settings.presets

    def find_by_name(self, name: str) -> Optional[Preset]:
        name = name.lower()
        return next((p for p in self.presets if p.name.lower() == name), None)

    def _require_step(self, step_id: str):
        step = self.settings.get_step(step_id)
        if step is None:
            raise KeyError(f"Step not found: {step_id}")
        return step

    def create_from_step(self, step_id: str, name: str, overwrite: bool = False) -> Preset:
        """
        Save a step's prompts as a preset and link the step to it.

        Raises:
            ValueError: If a preset with the same name exists and
                ``overwrite`` is False
        """
        step = self._require_step(step_id)
        existing = self.find_by_name(name)

        if existing is not None:
            if not overwrite:
                raise ValueError(f'A preset named "{name}" already exists')
            existing.system_prompt = step.system_prompt
            existing.user_message = step.user_message
            step.preset_id = existing.id
            logger.info(f"Preset updated: {existing.name}")
            return existing

        preset = Preset(
            name=name,
            system_prompt=step.system_prompt,
            user_message=step.user_message,
        )
        self.presets.append(preset)
        step.preset_id = preset.id
        logger.info(f"Preset saved: {preset.name}")
        return preset

    def apply_to_step(self, step_id: str, preset_id: Optional[str]) -> None:
        """Copy a preset's prompts into a step, or unlink it when ``preset_id`` is None."""
        step = self._require_step(step_id)

        if not preset_id:
            step.preset_id = None
            return

        preset = self.settings.find_preset(preset_id)
        if preset is None:
            raise KeyError(f"Preset not found: {preset_id}")

        step.system_prompt = preset.system_prompt
        step.user_message = preset.user_message
        step.preset_id = preset.id

    def update_from_step(self, step_id: str) -> Preset:
        """Overwrite the step's linked preset with the step's current prompts."""
        step = self._require_step(step_id)
        preset = self.settings.find_preset(step.preset_id)
        if preset is None:
            raise KeyError("No preset is attached to this step")

        preset.system_prompt = step.system_prompt
        preset.user_message = step.user_message
        return preset

    def delete(self, preset_id: str) -> bool:
        """Remove a preset and unlink it from every step."""
        preset = self.settings.find_preset(preset_id)
        if preset is None:
            return False

        self.settings.presets = [p for p in self.presets if p.id != preset_id]
        for step in self.settings.steps:
            if step.preset_id == preset_id:
                step.preset_id = None

        logger.info(f"Preset deleted: {preset.name}")
        return True

    def is_modified(self, step_id: str) -> bool:
        """True when a step's prompts differ from its linked preset."""
        step = self._require_step(step_id)
        preset = self.settings.find_preset(step.preset_id)
        if preset is None:
            return False
        return (
            step.system_prompt != preset.system_prompt
            or step.user_message != preset.user_message
        )

    def prune_missing_links(self) -> int:
        """Clear ``preset_id`` on steps whose preset no longer exists."""
        cleared = 0
        for step in self.settings.steps:
            if step.preset_id and self.settings.find_preset(step.preset_id) is None:
                step.preset_id = None
                cleared += 1
        return cleared

    def export_preset(self, preset_id: str) -> str:
        """Serialize a preset as a JSON export envelope."""
        preset = self.settings.find_preset(preset_id)
        if preset is None:
            raise KeyError(f"Preset not found: {preset_id}")

        envelope = PresetExport(preset=preset)
        return json.dumps(envelope.model_dump(mode="json"), indent=2)

    def import_preset(
        self,
        json_data: str,
        on_duplicate: Optional[DuplicateHandler] = None,
    ) -> ImportResult:
        """
        Import a preset from a JSON export envelope.

        Args:
            json_data: Text produced by ``export_preset``
            on_duplicate: Decides what to do when the name is taken. Without
                a handler the import is renamed with an " - imported" suffix.

        Raises:
            PresetImportError: If the data is malformed or the import is cancelled
        """
        try:
            data = json.loads(json_data)
        except json.JSONDecodeError as e:
            raise PresetImportError(f"Failed to import presets: {e}") from e

        if not isinstance(data, dict) or not data.get("preset"):
            raise PresetImportError("Invalid preset file: missing preset data")
        if data.get("extension") != EXPORT_EXTENSION:
            raise PresetImportError("Invalid preset file: not a refinement preset file")
        if not validate_preset_data(data["preset"]):
            raise PresetImportError("Invalid preset file: preset data is malformed")

        imported = Preset.model_validate(normalize_preset_data(data["preset"]))
        existing = self.find_by_name(imported.name)

        if existing is not None:
            handler = on_duplicate or _rename_with_suffix
            resolution = handler(existing, imported)

            if resolution.action == DuplicateAction.CANCEL:
                raise PresetImportError("Import cancelled by user")

            if resolution.action == DuplicateAction.OVERWRITE:
                imported.id = existing.id
                index = self.presets.index(existing)
                self.presets[index] = imported
                logger.info(f"Overwrote preset: {imported.name}")
                return ImportResult(preset=imported, action=ImportAction.OVERWRITE)

            if not resolution.new_name or not resolution.new_name.strip():
                raise PresetImportError("Import cancelled by user")
            imported.name = resolution.new_name.strip()

        imported.id = generate_preset_id()
        self.presets.append(imported)
        action = ImportAction.RENAMED if existing is not None else ImportAction.NEW
        logger.info(f"Imported preset: {imported.name}")
        return ImportResult(preset=imported, action=action)


def _rename_with_suffix(existing: Preset, imported: Preset) -> DuplicateResolution:
    return DuplicateResolution(
        action=DuplicateAction.RENAME,
        new_name=f"{imported.name} - imported",
    )
