"""
Conversation Context Management for AlwaysPickup

Remembers, per call, what the caller just looked at:
- The last calendar query and its result payload
- The events from the most recent listing (for "that meeting" style references)
- A short rolling history of conversation items

The store is injected into the calendar tools; each tool call passes the
session id of the call it serves.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from loguru import logger

from alwayspickup.core.logger import session_logger

from .resolver import resolve_reference

LIST_OPERATION = "listCalendarEvents"


@dataclass
class EventReference:
    """Projection of a listed calendar event kept for reference resolution."""
    id: str
    summary: str
    start: str = ""
    start_iso: Optional[str] = None
    location: Optional[str] = None
    attendees: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventReference":
        """Build from a listing payload entry."""
        attendees = data.get("attendees") or ""
        if isinstance(attendees, (list, tuple)):
            attendees = ", ".join(str(a) for a in attendees)

        return cls(
            id=str(data.get("id") or data.get("eventId") or ""),
            summary=data.get("summary") or data.get("title") or "",
            start=data.get("start") or "",
            start_iso=data.get("start_iso"),
            location=data.get("location"),
            attendees=attendees,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "summary": self.summary,
            "start": self.start,
            "start_iso": self.start_iso,
            "location": self.location,
            "attendees": self.attendees,
        }


@dataclass
class LastQuery:
    """The most recent query-class tool call."""
    type: str
    params: Dict[str, Any]
    results: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ConversationItem:
    """A single entry in the rolling conversation history."""
    type: str
    content: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class SessionContext:
    """Per-call conversation state."""
    session_id: str
    history_size: int = 10
    last_query: Optional[LastQuery] = None
    last_events_list: List[EventReference] = field(default_factory=list)
    conversation_history: Deque[ConversationItem] = field(init=False, default_factory=deque)
    created_at: datetime = field(default_factory=datetime.now)
    last_accessed: float = field(default_factory=time.monotonic)

    def __post_init__(self):
        self.conversation_history = deque(maxlen=self.history_size)

    def touch(self, now: float) -> None:
        self.last_accessed = now


class ContextStore(ABC):
    """
    Keyed store of session contexts.

    Implementations may keep sessions in process memory or in an external
    cache; callers only rely on these five operations.
    """

    @abstractmethod
    def get_session(self, session_id: str) -> SessionContext:
        """Return the session's context, creating an empty one if needed."""

    @abstractmethod
    def update_last_query(
        self,
        session_id: str,
        operation_type: str,
        params: Dict[str, Any],
        result: Dict[str, Any],
    ) -> None:
        """Record a query; a listing with an event list replaces the remembered events."""

    @abstractmethod
    def add_conversation_item(self, session_id: str, item_type: str, content: str) -> None:
        """Append to the session's bounded history."""

    @abstractmethod
    def clear_session(self, session_id: str) -> None:
        """Drop all state for a session."""

    def find_event_by_reference(self, session_id: str, phrase: str) -> Optional[EventReference]:
        """
        Resolve a spoken phrase against the session's last listing.

        Args:
            session_id: Session identifier
            phrase: Search phrase from the caller

        Returns:
            The referenced event, or None when the phrase is ambiguous
        """
        session = self.get_session(session_id)
        event = resolve_reference(session.last_events_list, phrase)

        if event:
            session_logger(session_id).debug(f"'{phrase}' resolved to '{event.summary}' ({event.id})")
        else:
            session_logger(session_id).debug(f"'{phrase}' did not resolve from context")

        return event


class InMemoryContextStore(ContextStore):
    """
    Process-local context store.

    Sessions idle longer than ``idle_timeout`` seconds are evicted, and the
    least recently used session is evicted once ``max_sessions`` is reached.
    """

    def __init__(
        self,
        history_size: int = 10,
        idle_timeout: float = 1800,
        max_sessions: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the context store.

        Args:
            history_size: Maximum conversation items kept per session
            idle_timeout: Seconds of inactivity before a session is released
            max_sessions: Maximum number of live sessions
            clock: Monotonic time source
        """
        self.history_size = history_size
        self.idle_timeout = idle_timeout
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: "OrderedDict[str, SessionContext]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get_session(self, session_id: str) -> SessionContext:
        now = self._clock()
        self.evict_idle(now, keep=session_id)

        session = self._sessions.get(session_id)
        if session is None:
            while len(self._sessions) >= self.max_sessions:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info(f"Context store full, evicted session {evicted_id}")

            session = SessionContext(
                session_id=session_id,
                history_size=self.history_size,
                last_accessed=now,
            )
            self._sessions[session_id] = session
            logger.debug(f"Created conversation context for session {session_id}")
        else:
            self._sessions.move_to_end(session_id)

        session.touch(now)
        return session

    def update_last_query(
        self,
        session_id: str,
        operation_type: str,
        params: Dict[str, Any],
        result: Dict[str, Any],
    ) -> None:
        session = self.get_session(session_id)
        session.last_query = LastQuery(
            type=operation_type,
            params=dict(params or {}),
            results=result,
        )

        events = result.get("events") if isinstance(result, dict) else None
        if operation_type == LIST_OPERATION and isinstance(events, list):
            session.last_events_list = [EventReference.from_dict(e) for e in events]
            session_logger(session_id).debug(f"Context updated with {len(events)} events")

    def add_conversation_item(self, session_id: str, item_type: str, content: str) -> None:
        session = self.get_session(session_id)
        session.conversation_history.append(ConversationItem(type=item_type, content=content))

    def clear_session(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.debug(f"Cleared conversation context for session {session_id}")

    def evict_idle(self, now: Optional[float] = None, keep: Optional[str] = None) -> int:
        """
        Release sessions idle longer than the timeout.

        Args:
            now: Current clock reading (default: clock())
            keep: Session id never evicted by this pass

        Returns:
            Number of sessions evicted
        """
        now = self._clock() if now is None else now
        expired = [
            sid for sid, session in self._sessions.items()
            if sid != keep and now - session.last_accessed > self.idle_timeout
        ]
        for sid in expired:
            del self._sessions[sid]

        if expired:
            logger.info(f"Evicted {len(expired)} idle conversation session(s)")
        return len(expired)


def create_context_store(cfg=None) -> InMemoryContextStore:
    """Build an in-memory store from the ``context`` configuration section."""
    if cfg is None:
        from alwayspickup.core.config import config

        cfg = config()

    return InMemoryContextStore(
        history_size=cfg.context.history_size,
        idle_timeout=cfg.context.session_idle_timeout,
        max_sessions=cfg.context.max_sessions,
    )
