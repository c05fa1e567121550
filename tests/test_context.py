"""
Unit tests for the conversation context store.

Tests:
- Lazy session creation and isolation
- Last query / last events list bookkeeping
- Bounded conversation history
- Idle and LRU eviction
"""

import pytest

from alwayspickup.conversation.context import (
    LIST_OPERATION,
    EventReference,
    InMemoryContextStore,
)


def listing(*titles):
    return {
        "success": True,
        "message": "",
        "events": [{"id": f"id-{i}", "summary": t} for i, t in enumerate(titles)],
    }


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestSessions:
    """Tests for session lifecycle."""

    def test_session_created_lazily(self):
        store = InMemoryContextStore()
        assert "call-1" not in store

        session = store.get_session("call-1")

        assert session.session_id == "call-1"
        assert session.last_query is None
        assert session.last_events_list == []
        assert len(session.conversation_history) == 0
        assert "call-1" in store

    def test_same_session_returned(self):
        store = InMemoryContextStore()
        assert store.get_session("a") is store.get_session("a")

    def test_sessions_are_independent(self):
        store = InMemoryContextStore()
        store.update_last_query("a", LIST_OPERATION, {}, listing("Standup"))

        assert store.get_session("b").last_events_list == []
        assert [e.summary for e in store.get_session("a").last_events_list] == ["Standup"]

    def test_clear_session(self):
        store = InMemoryContextStore()
        store.update_last_query("a", LIST_OPERATION, {}, listing("Standup"))

        store.clear_session("a")

        assert "a" not in store
        assert store.get_session("a").last_events_list == []

    def test_clear_unknown_session_is_noop(self):
        store = InMemoryContextStore()
        store.clear_session("missing")
        assert len(store) == 0


class TestLastQuery:
    """Tests for query bookkeeping."""

    def test_listing_replaces_events(self):
        """Two listings leave only the second one's events."""
        store = InMemoryContextStore()
        store.update_last_query("s", LIST_OPERATION, {"timeMin": "2026-10-20"}, listing("A", "B"))
        store.update_last_query("s", LIST_OPERATION, {"timeMin": "2026-10-21"}, listing("C"))

        session = store.get_session("s")
        assert [e.summary for e in session.last_events_list] == ["C"]
        assert session.last_query.params == {"timeMin": "2026-10-21"}

    def test_other_queries_keep_events(self):
        store = InMemoryContextStore()
        store.update_last_query("s", LIST_OPERATION, {}, listing("A"))
        store.update_last_query("s", "checkFreeBusy", {"timeMin": "x"}, {"success": True, "busyTimes": []})

        session = store.get_session("s")
        assert session.last_query.type == "checkFreeBusy"
        assert [e.summary for e in session.last_events_list] == ["A"]

    def test_empty_listing_clears_events(self):
        store = InMemoryContextStore()
        store.update_last_query("s", LIST_OPERATION, {}, listing("A"))
        store.update_last_query("s", LIST_OPERATION, {}, listing())

        assert store.get_session("s").last_events_list == []

    def test_error_result_keeps_events(self):
        store = InMemoryContextStore()
        store.update_last_query("s", LIST_OPERATION, {}, listing("A"))
        store.update_last_query("s", LIST_OPERATION, {}, {"error": "boom"})

        assert [e.summary for e in store.get_session("s").last_events_list] == ["A"]

    def test_event_reference_from_dict(self):
        ref = EventReference.from_dict({
            "eventId": "x1",
            "title": "Lunch",
            "attendees": ["sam@example.com", "kim@example.com"],
        })

        assert ref.id == "x1"
        assert ref.summary == "Lunch"
        assert ref.attendees == "sam@example.com, kim@example.com"


class TestConversationHistory:
    """Tests for the bounded history."""

    def test_history_bound(self):
        """Appending 15 items keeps the 10 most recent, in order."""
        store = InMemoryContextStore()
        for i in range(15):
            store.add_conversation_item("s", "tool", f"item {i}")

        history = list(store.get_session("s").conversation_history)
        assert len(history) == 10
        assert [h.content for h in history] == [f"item {i}" for i in range(5, 15)]

    def test_custom_history_size(self):
        store = InMemoryContextStore(history_size=3)
        for i in range(5):
            store.add_conversation_item("s", "user", str(i))

        assert [h.content for h in store.get_session("s").conversation_history] == ["2", "3", "4"]


class TestEviction:
    """Tests for idle and capacity eviction."""

    def test_idle_sessions_evicted(self):
        clock = FakeClock()
        store = InMemoryContextStore(idle_timeout=60, clock=clock)
        store.get_session("old")

        clock.now += 61
        store.get_session("new")

        assert "old" not in store
        assert "new" in store

    def test_active_session_kept(self):
        clock = FakeClock()
        store = InMemoryContextStore(idle_timeout=60, clock=clock)
        store.get_session("a")

        clock.now += 50
        store.get_session("a")
        clock.now += 50

        assert store.evict_idle() == 0
        assert "a" in store

    def test_requested_session_survives_its_own_lookup(self):
        clock = FakeClock()
        store = InMemoryContextStore(idle_timeout=60, clock=clock)
        store.add_conversation_item("a", "user", "hello")

        clock.now += 120
        session = store.get_session("a")

        assert len(session.conversation_history) == 1

    def test_least_recently_used_evicted_at_capacity(self):
        store = InMemoryContextStore(max_sessions=2)
        store.get_session("a")
        store.get_session("b")
        store.get_session("a")

        store.get_session("c")

        assert "b" not in store
        assert "a" in store
        assert "c" in store
        assert len(store) == 2

    @pytest.mark.parametrize("count", [1, 5])
    def test_evict_idle_count(self, count):
        clock = FakeClock()
        store = InMemoryContextStore(idle_timeout=10, clock=clock)
        for i in range(count):
            store.get_session(f"s{i}")

        clock.now += 11
        assert store.evict_idle() == count
        assert len(store) == 0
