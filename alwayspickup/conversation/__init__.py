"""
AlwaysPickup Conversation Module

Per-call conversation memory:
- Last query and last listed events for each session
- Reference resolution ("that meeting", "the cooking class")
- Bounded conversation history
"""

from .context import (
    ContextStore,
    ConversationItem,
    EventReference,
    InMemoryContextStore,
    LastQuery,
    SessionContext,
    create_context_store,
)
from .resolver import has_reference_cue, normalize, resolve_reference

__all__ = [
    "ContextStore",
    "ConversationItem",
    "EventReference",
    "InMemoryContextStore",
    "LastQuery",
    "SessionContext",
    "create_context_store",
    "has_reference_cue",
    "normalize",
    "resolve_reference",
]
