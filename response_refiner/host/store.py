"""Conversation stores the pipeline reads from and commits to."""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from response_refiner.models.conversation import Message, MessageRole

logger = logging.getLogger(__name__)


class InMemoryConversationStore:
    """A conversation held in memory."""

    def __init__(self, messages: Optional[Sequence[Message]] = None):
        self.messages: list[Message] = []
        for message in messages or []:
            self.append(message.text, message.role)

    def append(self, text: str, role: MessageRole | str = MessageRole.ASSISTANT) -> Message:
        message = Message(text=text, role=MessageRole(role), position_index=len(self.messages))
        self.messages.append(message)
        return message

    def get_history(self) -> Sequence[Message]:
        return list(self.messages)

    def get_message(self, index: int) -> Optional[Message]:
        if 0 <= index < len(self.messages):
            return self.messages[index]
        return None

    async def commit(self, index: int, text: str) -> None:
        message = self.get_message(index)
        if message is None:
            raise IndexError(f"Message {index} not found")
        self.messages[index] = message.model_copy(update={"text": text})

    async def refresh_view(self) -> None:
        return None


class JsonConversationStore(InMemoryConversationStore):
    """
    A chat transcript stored as JSON.

    Accepts a plain list of records or a ``{"messages": [...]}`` wrapper.
    Records carry their text in ``text`` or ``mes`` and their author in
    ``role`` or in ``is_user`` / ``is_system`` flags. ``commit`` updates the
    in-memory copy; ``refresh_view`` persists it, rewriting only the text
    field of each record so the rest of the file keeps its shape.
    """

    def __init__(self, path: Path):
        self.path = path
        with open(path) as f:
            self._document = json.load(f)

        if isinstance(self._document, dict):
            self._records: list[dict[str, Any]] = self._document.setdefault("messages", [])
        else:
            self._records = self._document

        super().__init__([
            Message(text=_record_text(record), role=_record_role(record), position_index=i)
            for i, record in enumerate(self._records)
        ])
        logger.debug(f"Loaded {len(self.messages)} messages from {path}")

    def save(self) -> Path:
        for message in self.messages:
            if message.position_index < len(self._records):
                record = self._records[message.position_index]
                record[_text_key(record)] = message.text
            else:
                self._records.append({"role": message.role.value, "text": message.text})

        with open(self.path, "w") as f:
            json.dump(self._document, f, indent=2, ensure_ascii=False)
        logger.info(f"Saved conversation to {self.path}")
        return self.path

    async def refresh_view(self) -> None:
        self.save()


def _text_key(record: dict[str, Any]) -> str:
    return "mes" if "mes" in record and "text" not in record else "text"


def _record_text(record: dict[str, Any]) -> str:
    return record.get(_text_key(record)) or ""


def _record_role(record: dict[str, Any]) -> MessageRole:
    if record.get("role"):
        return MessageRole(record["role"])
    if record.get("is_user"):
        return MessageRole.USER
    if record.get("is_system"):
        return MessageRole.SYSTEM
    return MessageRole.ASSISTANT
