"""
Host-side collaborators for the refinement pipeline.

Provides the conversation store, the macro pass, the active session, the
named profile registry, and a helper that wires them into a pipeline.
"""

from .store import InMemoryConversationStore, JsonConversationStore
from .macros import MacroExpander
from .session import ActiveSession, ProfileRegistry
from .pipeline import create_pipeline, create_reasoning_stripper

__all__ = [
    "InMemoryConversationStore",
    "JsonConversationStore",
    "MacroExpander",
    "ActiveSession",
    "ProfileRegistry",
    "create_pipeline",
    "create_reasoning_stripper",
]
