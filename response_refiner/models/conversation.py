"""Conversation models for messages being refined."""

from enum import Enum

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


ROLE_LABELS = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Assistant",
    MessageRole.SYSTEM: "System",
}


class Message(BaseModel):
    """A single turn in the host conversation."""

    text: str = Field(default="", description="Message body")
    role: MessageRole = MessageRole.ASSISTANT
    position_index: int = Field(
        default=0,
        ge=0,
        description="Position of the message in the conversation history",
    )

    @property
    def role_label(self) -> str:
        """Label used when quoting this message in a prompt."""
        return ROLE_LABELS[self.role]

    @property
    def is_refinable(self) -> bool:
        """Only assistant messages can be run through the pipeline."""
        return self.role == MessageRole.ASSISTANT

    def is_blank(self) -> bool:
        return not self.text.strip()
