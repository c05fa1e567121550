"""
Shared fixtures for AlwaysPickup tests.

Provides an in-memory stand-in for the Google Calendar discovery client with
the same call shape (``service.events().insert(...).execute()``), so the
gateway and tools run offline.
"""

import copy
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httplib2
import pytest
from googleapiclient.errors import HttpError

from alwayspickup.auth.token_store import TokenStore
from alwayspickup.conversation.context import InMemoryContextStore
from alwayspickup.core.config import CalendarConfig
from alwayspickup.tools.calendar import CalendarGateway
from alwayspickup.tools.calendar_tools import create_calendar_tools
from alwayspickup.tools.datetimes import parse_google_time

TIMEZONE = "America/Los_Angeles"


def http_error(status: int, message: str = "error") -> HttpError:
    content = ('{"error": {"code": %d, "message": "%s"}}' % (status, message)).encode("utf-8")
    return HttpError(httplib2.Response({"status": str(status)}), content)


class FakeRequest:
    """Deferred call, executed like a googleapiclient HttpRequest."""

    def __init__(self, service: "FakeCalendarService", fn):
        self._service = service
        self._fn = fn

    def execute(self, http=None):
        self._service.transports.append(http)
        return self._fn()


class FakeEventsResource:
    def __init__(self, service: "FakeCalendarService"):
        self.service = service

    def insert(self, calendarId: str, body: Dict[str, Any]):
        return FakeRequest(self.service, lambda: self.service.insert(calendarId, body))

    def list(self, calendarId: str, timeMin: str, timeMax: str, maxResults: int = 250,
             singleEvents: bool = False, orderBy: Optional[str] = None, q: Optional[str] = None,
             pageToken: Optional[str] = None):
        return FakeRequest(self.service, lambda: self.service.list(calendarId, timeMin, timeMax, maxResults, q, pageToken))

    def get(self, calendarId: str, eventId: str):
        return FakeRequest(self.service, lambda: self.service.get(eventId))

    def patch(self, calendarId: str, eventId: str, body: Dict[str, Any]):
        return FakeRequest(self.service, lambda: self.service.patch(eventId, body))

    def delete(self, calendarId: str, eventId: str, sendUpdates: Optional[str] = None):
        return FakeRequest(self.service, lambda: self.service.delete(eventId, sendUpdates))

    def quickAdd(self, calendarId: str, text: str):
        return FakeRequest(self.service, lambda: self.service.quick_add(text))


class FakeFreeBusyResource:
    def __init__(self, service: "FakeCalendarService"):
        self.service = service

    def query(self, body: Dict[str, Any]):
        return FakeRequest(self.service, lambda: self.service.free_busy(body))


class FakeCalendarService:
    """In-memory Google Calendar with call recording."""

    def __init__(self):
        self.events_by_id: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.transports: List[Any] = []
        self._ids = itertools.count(1)

    def events(self):
        return FakeEventsResource(self)

    def freebusy(self):
        return FakeFreeBusyResource(self)

    def calls_to(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    @staticmethod
    def _bounds(event: Dict[str, Any]):
        start = parse_google_time(event.get("start")).as_datetime()
        end = parse_google_time(event.get("end")).as_datetime()
        return start, end

    def _overlapping(self, time_min: str, time_max: str) -> List[Dict[str, Any]]:
        lo = datetime.fromisoformat(time_min)
        hi = datetime.fromisoformat(time_max)
        found = []
        for event in self.events_by_id.values():
            start, end = self._bounds(event)
            if start < hi and end > lo:
                found.append(event)
        return sorted(found, key=lambda e: self._bounds(e)[0])

    def insert(self, calendar_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("insert", copy.deepcopy(body)))
        event_id = f"evt{next(self._ids)}"
        event = dict(copy.deepcopy(body), id=event_id, status="confirmed",
                     htmlLink=f"https://calendar.google.com/event?eid={event_id}")
        self.events_by_id[event_id] = event
        return copy.deepcopy(event)

    def list(self, calendar_id, time_min, time_max, max_results, q, page_token=None):
        self.calls.append(("list", time_min, time_max, max_results, q, page_token))
        events = self._overlapping(time_min, time_max)
        if q:
            needle = q.lower()
            events = [
                e for e in events
                if needle in " ".join(str(e.get(k, "")) for k in ("summary", "description", "location")).lower()
            ]
        # Page tokens are offsets into the ordered result
        offset = int(page_token or 0)
        page = {"items": copy.deepcopy(events[offset:offset + max_results])}
        if offset + max_results < len(events):
            page["nextPageToken"] = str(offset + max_results)
        return page

    def get(self, event_id: str) -> Dict[str, Any]:
        self.calls.append(("get", event_id))
        if event_id not in self.events_by_id:
            raise http_error(404, "Not Found")
        return copy.deepcopy(self.events_by_id[event_id])

    def patch(self, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("patch", event_id, copy.deepcopy(body)))
        if event_id not in self.events_by_id:
            raise http_error(404, "Not Found")
        self.events_by_id[event_id].update(copy.deepcopy(body))
        return copy.deepcopy(self.events_by_id[event_id])

    def delete(self, event_id: str, send_updates: Optional[str]) -> str:
        self.calls.append(("delete", event_id, send_updates))
        if event_id not in self.events_by_id:
            raise http_error(410, "Resource has been deleted")
        del self.events_by_id[event_id]
        return ""

    def quick_add(self, text: str) -> Dict[str, Any]:
        start = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=1)
        return self.insert("primary", {
            "summary": text,
            "start": {"dateTime": start.isoformat()},
            "end": {"dateTime": (start + timedelta(hours=1)).isoformat()},
        })

    def free_busy(self, body: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("freebusy", copy.deepcopy(body)))
        busy = []
        for event in self._overlapping(body["timeMin"], body["timeMax"]):
            start, end = self._bounds(event)
            busy.append({"start": start.isoformat(), "end": end.isoformat()})
        return {"calendars": {item["id"]: {"busy": busy} for item in body["items"]}}


def future_expiry(hours: int = 1) -> str:
    return (datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=hours)).isoformat()


def past_expiry(hours: int = 1) -> str:
    return (datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(hours=hours)).isoformat()


def make_tokens(access_token: str = "access-1", expiry: Optional[str] = None) -> Dict[str, Any]:
    return {
        "token": access_token,
        "refresh_token": "refresh-1",
        "token_uri": "https://oauth2.googleapis.com/token",
        "client_id": "client-id",
        "client_secret": "client-secret",
        "scopes": ["https://www.googleapis.com/auth/calendar"],
        "expiry": expiry or future_expiry(),
    }


@pytest.fixture
def fake_service():
    return FakeCalendarService()


@pytest.fixture
def token_store(tmp_path):
    """Empty encrypted store; low PBKDF2 iterations keep tests fast."""
    return TokenStore(tmp_path / "google_tokens.json", passphrase="test-passphrase", iterations=1000)


@pytest.fixture
def connected_store(token_store):
    token_store.save(make_tokens())
    return token_store


@pytest.fixture
def gateway(connected_store, fake_service):
    return CalendarGateway(connected_store, service_factory=lambda credentials: fake_service)


@pytest.fixture
def calendar_settings():
    return CalendarConfig(timezone=TIMEZONE)


@pytest.fixture
def context_store():
    return InMemoryContextStore()


@pytest.fixture
def registry(gateway, context_store, calendar_settings):
    return create_calendar_tools(gateway, context_store, settings=calendar_settings)
