"""
Google Calendar Gateway for AlwaysPickup

Thin wrapper around the Google Calendar v3 API:
- Load and decrypt stored OAuth tokens
- Refresh the access token before every call (single-flight)
- Create, list, patch, delete and quick-add events
- Free/busy queries
- Tiered title search used when a spoken reference can't be resolved
  from conversation context

The gateway holds no business logic; it returns raw provider payloads and
raises ProviderError when a call fails.

API Documentation: https://developers.google.com/calendar/api/v3/reference
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httplib2
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from loguru import logger

from alwayspickup.auth.token_store import TokenStore
from alwayspickup.conversation.resolver import core_words, normalize, strip_cues
from alwayspickup.core.errors import (
    CalendarNotConnectedError,
    ConfigurationError,
    CredentialDecryptionError,
    ProviderError,
    TokenRefreshError,
)
from alwayspickup.tools.datetimes import TimeValue, parse_google_time

# OAuth scopes for Calendar API
SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Largest page events.list serves
LIST_PAGE_SIZE = 250


@dataclass
class CalendarEvent:
    """Represents a calendar event."""
    id: str
    summary: str
    start: Optional[TimeValue]
    end: Optional[TimeValue]
    description: Optional[str] = None
    location: Optional[str] = None
    attendees: List[str] = field(default_factory=list)

    @property
    def attendee_summary(self) -> str:
        return ", ".join(self.attendees)

    @classmethod
    def from_google_event(cls, event: Dict[str, Any]) -> "CalendarEvent":
        """Create CalendarEvent from Google Calendar API response."""
        attendees = []
        for attendee in event.get("attendees", []):
            email = attendee.get("email", "")
            if email:
                attendees.append(email)

        return cls(
            id=event.get("id", ""),
            summary=event.get("summary", "No Title"),
            start=parse_google_time(event.get("start")),
            end=parse_google_time(event.get("end")),
            description=event.get("description"),
            location=event.get("location"),
            attendees=attendees,
        )


def _build_service(credentials: Credentials):
    """Default service factory: the Google discovery client."""
    return build("calendar", "v3", credentials=credentials, cache_discovery=False)


def _parse_expiry(tokens: Dict[str, Any]) -> Optional[datetime]:
    """Expiry as naive UTC, from either Python ("expiry") or Node ("expiry_date" ms) token formats."""
    if tokens.get("expiry"):
        parsed = datetime.fromisoformat(str(tokens["expiry"]).rstrip("Z"))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    if tokens.get("expiry_date"):
        return datetime.fromtimestamp(int(tokens["expiry_date"]) / 1000, tz=timezone.utc).replace(tzinfo=None)
    return None


class CalendarGateway:
    """
    Google Calendar gateway.

    Every provider call goes through ``_execute``, which makes sure the
    gateway is initialized and the access token is fresh, then runs the
    blocking client call in the default executor.
    """

    def __init__(
        self,
        token_store: TokenStore,
        calendar_id: str = "primary",
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        service_factory: Callable[[Credentials], Any] = _build_service,
        default_reminder_minutes: int = 10,
        title_search_days_back: int = 30,
        title_search_days_forward: int = 90,
        title_search_max_results: int = 2500,
    ):
        """
        Initialize the calendar gateway.

        Args:
            token_store: Encrypted token storage
            calendar_id: Calendar to operate on (usually "primary")
            client_id: OAuth client id, used when stored tokens lack one
            client_secret: OAuth client secret, used when stored tokens lack one
            service_factory: Builds the API client from credentials
            default_reminder_minutes: Popup reminder added to new events
            title_search_days_back: Title search window into the past
            title_search_days_forward: Title search window into the future
            title_search_max_results: Cap on events fetched (over all pages) for a title search
        """
        self.token_store = token_store
        self.calendar_id = calendar_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.default_reminder_minutes = default_reminder_minutes
        self.title_search_days_back = title_search_days_back
        self.title_search_days_forward = title_search_days_forward
        self.title_search_max_results = title_search_max_results
        self._service_factory = service_factory
        self._credentials: Optional[Credentials] = None
        self._service = None
        self._init_lock = asyncio.Lock()
        self._refresh_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._service is not None and self._credentials is not None

    def _credentials_from_tokens(self, tokens: Dict[str, Any]) -> Credentials:
        scopes = tokens.get("scopes") or tokens.get("scope") or SCOPES
        if isinstance(scopes, str):
            scopes = scopes.split()

        return Credentials(
            token=tokens.get("token") or tokens.get("access_token"),
            refresh_token=tokens.get("refresh_token"),
            token_uri=tokens.get("token_uri") or GOOGLE_TOKEN_URI,
            client_id=tokens.get("client_id") or self.client_id,
            client_secret=tokens.get("client_secret") or self.client_secret,
            scopes=scopes,
            expiry=_parse_expiry(tokens),
        )

    @staticmethod
    def _tokens_from_credentials(credentials: Credentials) -> Dict[str, Any]:
        return json.loads(credentials.to_json())

    def _reset(self) -> None:
        self._credentials = None
        self._service = None

    async def initialize(self) -> bool:
        """
        Load and decrypt stored credentials.

        Concurrent first calls share one load, so they also share the
        credentials that a later refresh replaces.

        Returns:
            True if a usable credential set exists
        """
        if self.is_initialized:
            return True

        async with self._init_lock:
            if self.is_initialized:
                return True
            return await self._load_credentials()

    async def _load_credentials(self) -> bool:
        if not self.token_store.exists():
            logger.info("Calendar not connected: no stored tokens")
            return False

        # PBKDF2 key derivation must not run on the event loop
        loop = asyncio.get_running_loop()
        try:
            tokens = await loop.run_in_executor(None, self.token_store.load)
        except CredentialDecryptionError as e:
            logger.error(f"Stored calendar credentials could not be decrypted, re-authentication required: {e}")
            return False
        except ConfigurationError as e:
            logger.error(f"Cannot read stored calendar credentials: {e}")
            return False

        credentials = self._credentials_from_tokens(tokens)
        if not credentials.token and not credentials.refresh_token:
            logger.warning("Stored calendar tokens contain neither an access nor a refresh token")
            return False

        try:
            self._service = self._service_factory(credentials)
        except Exception as e:
            logger.error(f"Failed to build calendar service: {e}")
            return False

        self._credentials = credentials
        logger.debug("Calendar gateway initialized")
        return True

    @staticmethod
    def _needs_refresh(credentials: Credentials) -> bool:
        return not credentials.token or credentials.expired

    async def refresh_if_needed(self) -> bool:
        """
        Refresh the access token if it has expired and persist the new set.

        Concurrent callers share one refresh: the expiry is re-checked after
        the lock is acquired.

        Returns:
            True if a refresh happened

        Raises:
            CalendarNotConnectedError: Gateway not initialized
            TokenRefreshError: The refresh exchange failed
        """
        if self._credentials is None:
            raise CalendarNotConnectedError("Calendar gateway is not initialized")

        if not self._needs_refresh(self._credentials):
            return False

        async with self._refresh_lock:
            credentials = self._credentials
            if credentials is None:
                raise CalendarNotConnectedError("Calendar gateway is not initialized")
            if not self._needs_refresh(credentials):
                return False

            if not credentials.refresh_token:
                self._reset()
                raise TokenRefreshError("Access token expired and no refresh token is stored")

            logger.info("Refreshing calendar access token")
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, credentials.refresh, Request())
            except Exception as e:
                self._reset()
                raise TokenRefreshError(f"Failed to refresh token: {e}") from e

            await loop.run_in_executor(None, self.token_store.save, self._tokens_from_credentials(credentials))
            logger.debug("Refreshed calendar credentials persisted")
            return True

    def store_credentials(self, tokens: Dict[str, Any]) -> None:
        """Persist a freshly acquired token set; the next call re-initializes from it."""
        self.token_store.save(tokens)
        self._reset()
        logger.info("Calendar credentials stored")

    def disconnect(self) -> bool:
        """Forget the stored credentials."""
        self._reset()
        return self.token_store.clear()

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    @staticmethod
    def _authorized_http(credentials: Credentials) -> AuthorizedHttp:
        """A fresh transport per request; httplib2.Http is not thread-safe."""
        return AuthorizedHttp(credentials, http=httplib2.Http())

    async def _execute(self, operation: str, make_request: Callable[[Any], Any]) -> Any:
        if not await self.initialize():
            raise CalendarNotConnectedError("Google Calendar is not connected")

        await self.refresh_if_needed()

        service = self._service
        http = self._authorized_http(self._credentials)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, lambda: make_request(service).execute(http=http))
        except Exception as e:
            logger.error(f"Calendar API error during {operation}: {e!r}")
            raise ProviderError(operation, e) from e

    async def create_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert an event.

        Args:
            event: Google event resource (summary, start, end, ...)

        Returns:
            The created event resource
        """
        body = {k: v for k, v in event.items() if v is not None}
        if "reminders" not in body:
            body["reminders"] = {
                "useDefault": False,
                "overrides": [{"method": "popup", "minutes": self.default_reminder_minutes}],
            }

        return await self._execute(
            "create",
            lambda s: s.events().insert(calendarId=self.calendar_id, body=body),
        )

    async def list_events(
        self,
        time_min: datetime,
        time_max: datetime,
        query: Optional[str] = None,
        max_results: int = 10,
    ) -> List[Dict[str, Any]]:
        """
        List expanded event instances ordered by start time.

        Follows nextPageToken until the range is exhausted or max_results
        events have been collected.

        Args:
            time_min: Start of time range
            time_max: End of time range
            query: Free-text filter
            max_results: Maximum number of events to return

        Returns:
            Event resources
        """
        params = {
            "calendarId": self.calendar_id,
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if query:
            params["q"] = query

        items: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        while len(items) < max_results:
            page = dict(params, maxResults=min(LIST_PAGE_SIZE, max_results - len(items)))
            if page_token:
                page["pageToken"] = page_token

            result = await self._execute("list", lambda s, page=page: s.events().list(**page))
            items.extend(result.get("items", []))

            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return items[:max_results]

    async def get_event(self, event_id: str) -> Dict[str, Any]:
        """Fetch a single event by id."""
        return await self._execute(
            "get",
            lambda s: s.events().get(calendarId=self.calendar_id, eventId=event_id),
        )

    async def update_event(self, event_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Patch an event by id."""
        return await self._execute(
            "update",
            lambda s: s.events().patch(calendarId=self.calendar_id, eventId=event_id, body=updates),
        )

    async def delete_event(self, event_id: str, send_notifications: bool = True) -> None:
        """Delete an event by id, optionally notifying attendees."""
        await self._execute(
            "delete",
            lambda s: s.events().delete(
                calendarId=self.calendar_id,
                eventId=event_id,
                sendUpdates="all" if send_notifications else "none",
            ),
        )

    async def check_free_busy(self, time_min: datetime, time_max: datetime) -> List[Dict[str, str]]:
        """
        Query busy intervals for the calendar.

        Returns:
            List of {"start": iso, "end": iso} busy intervals
        """
        body = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "items": [{"id": self.calendar_id}],
        }
        result = await self._execute("free_busy", lambda s: s.freebusy().query(body=body))

        calendar = result.get("calendars", {}).get(self.calendar_id, {})
        if calendar.get("errors"):
            raise ProviderError("free_busy", RuntimeError(str(calendar["errors"])))
        return calendar.get("busy", [])

    async def quick_add(self, text: str) -> Dict[str, Any]:
        """Create an event from free text using the provider's own parser."""
        return await self._execute(
            "quick_add",
            lambda s: s.events().quickAdd(calendarId=self.calendar_id, text=text),
        )

    async def find_event_by_title(self, title: str, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """
        Find an event by title across a wide window.

        Tiers, most specific first; the first tier with a hit wins:
        exact (case-insensitive) title, substring containment, any shared
        word longer than two characters. Cue words ("the", "that", "my")
        and generic nouns ("meeting", "appointment") never count as shared
        words.

        Args:
            title: Title or phrase to look for
            now: Reference time (default: current time)

        Returns:
            The matching event resource, or None
        """
        needle = normalize(title)
        if not needle:
            return None
        stripped = " ".join(strip_cues(title))
        core = [w for w in core_words(title) if len(w) > 2]

        now = now or datetime.now(timezone.utc)
        events = await self.list_events(
            time_min=now - timedelta(days=self.title_search_days_back),
            time_max=now + timedelta(days=self.title_search_days_forward),
            max_results=self.title_search_max_results,
        )

        titled = [(normalize(e.get("summary")), e) for e in events]
        titled = [(t, e) for t, e in titled if t]

        exact = {needle, stripped} - {""}
        for t, event in titled:
            if t in exact:
                return event

        # A phrase of only cue words and generic nouns names no title
        contained = [needle] + ([stripped] if core and stripped != needle else [])
        for t, event in titled:
            if any(form in t for form in contained):
                return event

        words = set(core)
        if words:
            for t, event in titled:
                if words & set(t.split()):
                    return event

        return None


def create_calendar_gateway(cfg=None, env_settings=None, **kwargs) -> CalendarGateway:
    """Build a gateway from configuration and environment settings."""
    from alwayspickup.core.config import config, env, resolve_path

    cfg = cfg or config()
    env_settings = env_settings or env()

    store = TokenStore(
        resolve_path(cfg.calendar.token_file),
        passphrase=env_settings.token_encryption_key,
    )
    return CalendarGateway(
        token_store=store,
        calendar_id=cfg.calendar.calendar_id,
        client_id=env_settings.google_client_id,
        client_secret=env_settings.google_client_secret,
        default_reminder_minutes=cfg.calendar.default_reminder_minutes,
        title_search_days_back=cfg.calendar.title_search_days_back,
        title_search_days_forward=cfg.calendar.title_search_days_forward,
        title_search_max_results=cfg.calendar.title_search_max_results,
        **kwargs,
    )
