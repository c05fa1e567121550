"""
Calendar Command Tools for AlwaysPickup.

The operations the voice AI can invoke:
- createCalendarEvent, quickAddEvent
- listCalendarEvents
- updateCalendarEvent, deleteCalendarEvent
- checkFreeBusy, checkSchedulingConflict

Each tool validates its arguments against a pydantic request model, resolves
which event is meant (explicit id, conversation context, or title search),
calls the gateway, and returns either ``{success, message, ...data}`` or
``{error}``. No exception escapes ``execute``.
"""

from __future__ import annotations

import asyncio
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, Type, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from alwayspickup.conversation.context import LIST_OPERATION, ContextStore
from alwayspickup.conversation.resolver import has_reference_cue
from alwayspickup.core.config import CalendarConfig
from alwayspickup.core.errors import (
    CalendarNotConnectedError,
    EventNotFoundError,
    MalformedInputError,
    ProviderError,
    TokenRefreshError,
    get_error_message,
    handle_api_error,
    not_found_message,
)
from alwayspickup.core.logger import session_logger
from alwayspickup.tools.calendar import CalendarEvent, CalendarGateway
from alwayspickup.tools.datetimes import (
    TimeValue,
    check_time_string,
    format_for_voice,
    parse_instant,
    parse_time_value,
    to_google_time,
)

SERVICE_NAME = "Google Calendar"

_EMAIL = re.compile(r"[a-zA-Z0-9._+-]+@[a-zA-Z0-9_-]+(?:\.[a-zA-Z0-9_-]+)+")

TIME_HINT = "ISO-8601 with offset, e.g. 2026-10-20T14:00:00-07:00, or YYYY-MM-DD for all-day"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


# =============================================================================
# Request models
# =============================================================================

class ToolRequest(BaseModel):
    """Base request: camelCase wire names, unknown fields ignored, null means not given."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


def _time_field(alias: str, description: str, required: bool = False):
    if required:
        return Field(alias=alias, description=f"{description} ({TIME_HINT})")
    return Field(default=None, alias=alias, description=f"{description} ({TIME_HINT})")


class Reminder(ToolRequest):
    method: Literal["popup", "email"] = "popup"
    minutes: int = Field(ge=0, le=40320, description="Minutes before the event")


class CreateEventRequest(ToolRequest):
    summary: str = Field(min_length=1, description="Event title")
    start_date_time: str = _time_field("startDateTime", "Event start", required=True)
    end_date_time: Optional[str] = _time_field("endDateTime", "Event end (default: one hour after start)")
    all_day: bool = Field(default=False, alias="allDay", description="Whether this is an all-day event")
    description: Optional[str] = Field(default=None, description="Event description")
    location: Optional[str] = Field(default=None, description="Event location")
    attendees: Union[List[str], str, None] = Field(
        default=None,
        description="Attendee email addresses, as a list or comma-separated string",
    )
    recurrence: Optional[str] = Field(
        default=None,
        description="Recurrence rule, e.g. RRULE:FREQ=WEEKLY;BYDAY=TU",
    )
    reminders: Optional[List[Reminder]] = Field(default=None, description="Reminder overrides")

    @field_validator("start_date_time", "end_date_time")
    @classmethod
    def check_times(cls, v: Optional[str]) -> Optional[str]:
        return check_time_string(v)

    @field_validator("attendees", mode="before")
    @classmethod
    def extract_emails(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            text = v
        elif isinstance(v, (list, tuple)):
            text = " ".join(str(item) for item in v)
        else:
            raise ValueError("attendees must be a list or a comma-separated string")

        emails: List[str] = []
        for email in _EMAIL.findall(text):
            email = email.lower()
            if email not in emails:
                emails.append(email)
        return emails

    @field_validator("recurrence")
    @classmethod
    def normalize_rrule(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        rule = v.strip()
        if rule.upper().startswith("RRULE:"):
            rule = rule[len("RRULE:"):]
        rule = rule.upper()
        if "FREQ=" not in rule:
            raise ValueError("recurrence must be an RRULE such as FREQ=WEEKLY;BYDAY=TU")
        return f"RRULE:{rule}"


class QuickAddRequest(ToolRequest):
    text: str = Field(min_length=1, description="Free-text event description, e.g. 'Lunch with Sam Friday at noon'")


class ListEventsRequest(ToolRequest):
    time_min: Optional[str] = _time_field("timeMin", "Range start (default: now)")
    time_max: Optional[str] = _time_field("timeMax", "Range end (default: seven days after start)")
    search_query: Optional[str] = Field(default=None, alias="searchQuery", description="Text to search for")
    max_results: Optional[int] = Field(default=None, alias="maxResults", ge=1, le=250, description="Maximum events (default 10)")

    @field_validator("time_min", "time_max")
    @classmethod
    def check_times(cls, v: Optional[str]) -> Optional[str]:
        return check_time_string(v)


class EventUpdates(ToolRequest):
    summary: Optional[str] = Field(default=None, min_length=1, description="New title")
    start_date_time: Optional[str] = _time_field("startDateTime", "New start")
    end_date_time: Optional[str] = _time_field("endDateTime", "New end")
    location: Optional[str] = Field(default=None, description="New location")
    description: Optional[str] = Field(default=None, description="New description")

    @field_validator("start_date_time", "end_date_time")
    @classmethod
    def check_times(cls, v: Optional[str]) -> Optional[str]:
        return check_time_string(v)


class UpdateEventRequest(ToolRequest):
    event_id: Optional[str] = Field(default=None, alias="eventId", description="Event id, if known")
    search_query: Optional[str] = Field(
        default=None,
        alias="searchQuery",
        description="Phrase identifying the event, e.g. 'that dentist appointment'",
    )
    updates: EventUpdates = Field(default_factory=EventUpdates, description="Fields to change")


class DeleteEventRequest(ToolRequest):
    event_id: Optional[str] = Field(default=None, alias="eventId", description="Event id, if known")
    search_query: Optional[str] = Field(
        default=None,
        alias="searchQuery",
        description="Phrase identifying the event, e.g. 'the cooking class'",
    )
    send_notifications: bool = Field(default=True, alias="sendNotifications", description="Whether to notify attendees")


class FreeBusyRequest(ToolRequest):
    time_min: str = _time_field("timeMin", "Range start", required=True)
    time_max: str = _time_field("timeMax", "Range end", required=True)

    @field_validator("time_min", "time_max")
    @classmethod
    def check_times(cls, v: Optional[str]) -> Optional[str]:
        return check_time_string(v)


class SchedulingConflictRequest(ToolRequest):
    start_time: str = _time_field("startTime", "Proposed start", required=True)
    end_time: str = _time_field("endTime", "Proposed end", required=True)

    @field_validator("start_time", "end_time")
    @classmethod
    def check_times(cls, v: Optional[str]) -> Optional[str]:
        return check_time_string(v)


def _validation_message(error: ValidationError) -> str:
    """Turn the first validation problem into a spoken request for the missing piece."""
    first = error.errors()[0]
    field_name = ".".join(str(part) for part in first.get("loc", ())) or "the request"

    if first.get("type") == "missing":
        return f'I need "{field_name}" to do that.'

    reason = (first.get("ctx") or {}).get("error") or first.get("msg", "invalid value")
    return f'I need a valid "{field_name}": {reason}'


# =============================================================================
# Tool base
# =============================================================================

@dataclass
class ToolResult:
    """Result from a tool execution."""
    success: bool
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    execution_time: float = 0.0

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape handed back to the voice AI."""
        if not self.success:
            return {"error": self.error}
        return {"success": True, "message": self.message, **self.data}


class BaseTool(ABC):
    """Base class for calendar command tools."""

    name: str = "base_tool"
    description: str = "Base tool"
    request_model: Type[ToolRequest] = ToolRequest
    error_key: str = "unknown"

    def __init__(
        self,
        gateway: CalendarGateway,
        store: ContextStore,
        settings: Optional[CalendarConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.gateway = gateway
        self.store = store
        self.settings = settings or CalendarConfig()
        self.clock = clock

    @property
    def parameters(self) -> Dict[str, Any]:
        """JSON schema of the tool's arguments."""
        return self.request_model.model_json_schema(by_alias=True)

    @abstractmethod
    async def run(self, session_id: str, request: ToolRequest) -> ToolResult:
        """Execute the validated request."""
        pass

    async def execute(self, session_id: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Validate, run and shape one tool call.

        Args:
            session_id: Identifier of the conversation this call belongs to
            params: Raw arguments from the voice AI

        Returns:
            ``{success, message, ...}`` or ``{error}``
        """
        start_time = time.time()
        result = await self._execute_safely(session_id, params)
        result.execution_time = time.time() - start_time

        if result.success:
            session_logger(session_id).info(f"{self.name} succeeded in {result.execution_time:.2f}s")
        else:
            session_logger(session_id).warning(f"{self.name} failed: {result.error}")

        self.store.add_conversation_item(
            session_id, "tool", f"{self.name}: {result.message if result.success else result.error}"
        )
        return result.to_payload()

    async def _execute_safely(self, session_id: str, params: Optional[Dict[str, Any]]) -> ToolResult:
        try:
            request = self.request_model.model_validate(params or {})
        except ValidationError as e:
            logger.debug(f"{self.name} rejected arguments: {e}")
            return ToolResult(success=False, error=_validation_message(e))

        try:
            return await asyncio.wait_for(
                self.run(session_id, request),
                timeout=self.settings.request_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"{self.name} timed out after {self.settings.request_timeout}s")
            return ToolResult(success=False, error=get_error_message("timeout"))
        except CalendarNotConnectedError:
            return ToolResult(success=False, error=get_error_message("not_connected"))
        except TokenRefreshError as e:
            logger.error(f"{self.name}: {e}")
            return ToolResult(success=False, error=get_error_message("credentials_invalid"))
        except EventNotFoundError as e:
            return ToolResult(success=False, error=not_found_message(e.phrase))
        except MalformedInputError as e:
            return ToolResult(success=False, error=str(e))
        except ProviderError as e:
            return ToolResult(
                success=False,
                error=handle_api_error(SERVICE_NAME, e, get_error_message(self.error_key)),
            )
        except Exception as e:
            logger.exception(f"Unexpected error in {self.name}: {e}")
            return ToolResult(success=False, error=get_error_message(self.error_key))

    # Helpers shared by the concrete tools

    def voice(self, value: Union[TimeValue, datetime]) -> str:
        return format_for_voice(value, self.settings.timezone)

    def instant(self, value: str, field_name: str) -> datetime:
        return parse_time_value(value, field_name).as_datetime(self.settings.timezone)

    def google_time(self, value: TimeValue) -> Dict[str, str]:
        return to_google_time(value, None if value.all_day else self.settings.timezone)

    def record_query(self, session_id: str, request: ToolRequest, result: ToolResult) -> None:
        self.store.update_last_query(
            session_id,
            self.name,
            request.model_dump(by_alias=True, exclude_none=True),
            result.to_payload(),
        )

    def range_end(self, value: str, field_name: str) -> datetime:
        end_value = parse_time_value(value, field_name)
        # A date-only range end covers that whole day
        if end_value.all_day:
            end_value = end_value.shifted(timedelta(days=1))
        return end_value.as_datetime(self.settings.timezone)

    def time_range(self, time_min: str, time_max: str, min_field: str, max_field: str) -> Tuple[datetime, datetime]:
        start = self.instant(time_min, min_field)
        end = self.range_end(time_max, max_field)
        if end <= start:
            raise MalformedInputError(f"The {max_field} must be after the {min_field}.", field=max_field)
        return start, end


class EventTargetTool(BaseTool):
    """Tool that acts on one existing event named by id or by phrase."""

    async def resolve_target(
        self,
        session_id: str,
        event_id: Optional[str],
        search_query: Optional[str],
    ) -> Tuple[str, Optional[str]]:
        """
        Work out which event the caller means.

        An explicit id wins. A phrase with a reference cue ("that", "the",
        "this", "it", "my") is first tried against the session's last
        listing; anything unresolved falls back to a provider title search.

        Returns:
            (event id, title if known)

        Raises:
            MalformedInputError: Neither id nor phrase given
            EventNotFoundError: The phrase matched nothing
        """
        if event_id and event_id.strip():
            return event_id.strip(), None

        if not search_query or not search_query.strip():
            raise MalformedInputError(get_error_message("missing_target"), field="searchQuery")

        if has_reference_cue(search_query):
            reference = self.store.find_event_by_reference(session_id, search_query)
            if reference and reference.id:
                return reference.id, reference.summary

        event = await self.gateway.find_event_by_title(search_query, now=self.clock())
        if event and event.get("id"):
            session_logger(session_id).debug(f"'{search_query}' matched '{event.get('summary')}' by title search")
            return event["id"], event.get("summary")

        raise EventNotFoundError(search_query)


# =============================================================================
# Tools
# =============================================================================

class CreateCalendarEventTool(BaseTool):
    """Create a new event."""

    name = "createCalendarEvent"
    description = (
        "Create a new calendar event. Times must already be ISO-8601 with a UTC offset "
        "(or YYYY-MM-DD for all-day events)."
    )
    request_model = CreateEventRequest
    error_key = "create"

    async def run(self, session_id: str, request: CreateEventRequest) -> ToolResult:
        start = parse_time_value(request.start_date_time, "startDateTime")
        all_day = request.all_day or start.all_day
        if all_day and not start.all_day:
            start = TimeValue(start.value.date(), all_day=True)

        if request.end_date_time:
            end = parse_time_value(request.end_date_time, "endDateTime")
            if all_day and not end.all_day:
                end = TimeValue(end.value.date(), all_day=True)
            elif end.all_day and not all_day:
                raise MalformedInputError(
                    "The endDateTime needs a time of day because the start has one.",
                    field="endDateTime",
                )
        elif all_day:
            end = start.shifted(timedelta(days=1))
        else:
            end = start.shifted(timedelta(minutes=self.settings.default_duration_minutes))

        if end.value <= start.value:
            if not all_day:
                raise MalformedInputError("The endDateTime must be after the startDateTime.", field="endDateTime")
            # All-day end dates are exclusive
            end = start.shifted(timedelta(days=1))

        body: Dict[str, Any] = {
            "summary": request.summary,
            "start": self.google_time(start),
            "end": self.google_time(end),
            "description": request.description,
            "location": request.location,
        }
        if request.attendees:
            body["attendees"] = [{"email": email} for email in request.attendees]
        if request.recurrence:
            body["recurrence"] = [request.recurrence]
        if request.reminders:
            body["reminders"] = {
                "useDefault": False,
                "overrides": [r.model_dump() for r in request.reminders],
            }

        event = await self.gateway.create_event(body)

        return ToolResult(
            success=True,
            message=f'I\'ve created "{request.summary}" on {self.voice(start)}',
            data={"eventId": event.get("id"), "link": event.get("htmlLink")},
        )


class QuickAddEventTool(BaseTool):
    """Create an event from free text."""

    name = "quickAddEvent"
    description = "Quickly add an event from a plain-text description using Google's own parser."
    request_model = QuickAddRequest
    error_key = "quick_add"

    async def run(self, session_id: str, request: QuickAddRequest) -> ToolResult:
        event = await self.gateway.quick_add(request.text)
        return ToolResult(
            success=True,
            message=f'I\'ve added "{event.get("summary", request.text)}" to your calendar',
            data={"eventId": event.get("id"), "link": event.get("htmlLink")},
        )


class ListCalendarEventsTool(BaseTool):
    """List events in a time range."""

    name = LIST_OPERATION
    description = (
        "List calendar events in a time range (default: the next 7 days). "
        "The listed events can afterwards be referred to as 'that meeting' etc."
    )
    request_model = ListEventsRequest
    error_key = "list"

    def project(self, event: CalendarEvent) -> Dict[str, Any]:
        return {
            "id": event.id,
            "summary": event.summary,
            "start": self.voice(event.start) if event.start else "",
            "start_iso": event.start.value.isoformat() if event.start else None,
            "location": event.location,
            "attendees": event.attendee_summary,
        }

    async def run(self, session_id: str, request: ListEventsRequest) -> ToolResult:
        time_min = self.instant(request.time_min, "timeMin") if request.time_min else self.clock()
        if request.time_max:
            time_max = self.range_end(request.time_max, "timeMax")
            if time_max <= time_min:
                raise MalformedInputError("The timeMax must be after the timeMin.", field="timeMax")
        else:
            time_max = time_min + timedelta(days=self.settings.default_list_days)

        items = await self.gateway.list_events(
            time_min=time_min,
            time_max=time_max,
            query=request.search_query,
            max_results=request.max_results or self.settings.default_max_results,
        )
        events = [self.project(CalendarEvent.from_google_event(item)) for item in items]

        if not events:
            result = ToolResult(
                success=True,
                message="You have no events scheduled for that time period.",
                data={"events": []},
            )
        else:
            descriptions = ", ".join(
                f"{e['summary']} on {e['start']}" + (f" at {e['location']}" if e["location"] else "")
                for e in events
            )
            result = ToolResult(
                success=True,
                message=f"You have {_plural(len(events), 'event')}: {descriptions}",
                data={"events": events},
            )

        self.record_query(session_id, request, result)
        return result


class UpdateCalendarEventTool(EventTargetTool):
    """Change an existing event."""

    name = "updateCalendarEvent"
    description = (
        "Update an existing event, identified by eventId or by a searchQuery such as "
        "'that meeting' or 'the dentist appointment'."
    )
    request_model = UpdateEventRequest
    error_key = "update"

    async def run(self, session_id: str, request: UpdateEventRequest) -> ToolResult:
        updates = request.updates
        body: Dict[str, Any] = {}
        new_start: Optional[TimeValue] = None
        new_end: Optional[TimeValue] = None

        if updates.summary:
            body["summary"] = updates.summary
        if updates.start_date_time:
            new_start = parse_time_value(updates.start_date_time, "updates.startDateTime")
            body["start"] = self.google_time(new_start)
        if updates.end_date_time:
            new_end = parse_time_value(updates.end_date_time, "updates.endDateTime")
            body["end"] = self.google_time(new_end)
        if updates.location is not None:
            body["location"] = updates.location
        if updates.description is not None:
            body["description"] = updates.description

        if not body:
            raise MalformedInputError("Please tell me what to change about the event.", field="updates")
        if new_start and new_end and new_start.all_day != new_end.all_day:
            raise MalformedInputError(
                "The new start and end must both be dates or both have a time of day.",
                field="updates.endDateTime",
            )

        event_id, _ = await self.resolve_target(session_id, request.event_id, request.search_query)

        if new_start and not new_end:
            body["end"] = self.google_time(await self._end_for_new_start(event_id, new_start))
        elif new_end and not new_start:
            current = CalendarEvent.from_google_event(await self.gateway.get_event(event_id))
            if current.start and current.start.all_day != new_end.all_day:
                raise MalformedInputError(
                    "Please give the new end in the same form as the event's start, "
                    "or change the start too.",
                    field="updates.endDateTime",
                )

        updated = await self.gateway.update_event(event_id, body)

        message = f'I\'ve updated the event "{updated.get("summary", "")}"'
        if new_start:
            message += f". It now starts on {self.voice(new_start)}"
        return ToolResult(success=True, message=message, data={"eventId": updated.get("id", event_id)})

    async def _end_for_new_start(self, event_id: str, new_start: TimeValue) -> TimeValue:
        """
        End to send alongside a moved start, in the same form as the start.

        An event keeps its length when only its start moves. When the move
        switches between all-day and timed, the length no longer carries
        over, so the event gets one day or the default duration instead.
        """
        current = CalendarEvent.from_google_event(await self.gateway.get_event(event_id))
        if current.start and current.end and current.start.all_day == new_start.all_day:
            return new_start.shifted(current.end.value - current.start.value)
        if new_start.all_day:
            return new_start.shifted(timedelta(days=1))
        return new_start.shifted(timedelta(minutes=self.settings.default_duration_minutes))


class DeleteCalendarEventTool(EventTargetTool):
    """Delete an existing event."""

    name = "deleteCalendarEvent"
    description = (
        "Delete an event, identified by eventId or by a searchQuery such as "
        "'that meeting' or 'the cooking class'."
    )
    request_model = DeleteEventRequest
    error_key = "delete"

    async def run(self, session_id: str, request: DeleteEventRequest) -> ToolResult:
        event_id, title = await self.resolve_target(session_id, request.event_id, request.search_query)

        await self.gateway.delete_event(event_id, send_notifications=request.send_notifications)

        named = f' "{title}"' if title else ""
        return ToolResult(
            success=True,
            message=f"I've deleted the event{named} from your calendar.",
            data={"eventId": event_id},
        )


def _busy_intervals(busy: List[Dict[str, str]]) -> List[Tuple[datetime, datetime]]:
    return sorted(
        (parse_instant(b["start"], "busy.start"), parse_instant(b["end"], "busy.end"))
        for b in busy
    )


def _free_intervals(
    busy: List[Tuple[datetime, datetime]],
    start: datetime,
    end: datetime,
) -> List[Tuple[datetime, datetime]]:
    """Complement of the busy intervals inside [start, end)."""
    free = []
    cursor = start
    for busy_start, busy_end in busy:
        if busy_start > cursor:
            free.append((cursor, min(busy_start, end)))
        cursor = max(cursor, busy_end)
        if cursor >= end:
            break
    if cursor < end:
        free.append((cursor, end))
    return free


class CheckFreeBusyTool(BaseTool):
    """Report busy and free periods in a range."""

    name = "checkFreeBusy"
    description = "Check when the calendar is busy or free between timeMin and timeMax."
    request_model = FreeBusyRequest
    error_key = "free_busy"

    async def run(self, session_id: str, request: FreeBusyRequest) -> ToolResult:
        start, end = self.time_range(request.time_min, request.time_max, "timeMin", "timeMax")

        busy = await self.gateway.check_free_busy(start, end)
        free = _free_intervals(_busy_intervals(busy), start, end)

        data = {
            "busyTimes": busy,
            "freeTimes": [{"start": s.isoformat(), "end": e.isoformat()} for s, e in free],
            "isAvailable": not busy,
            "hasConflicts": bool(busy),
        }

        if not busy:
            message = f"You're completely free between {self.voice(start)} and {self.voice(end)}"
        else:
            descriptions = ", ".join(
                f"busy from {self.voice(s)} to {self.voice(e)}" for s, e in _busy_intervals(busy)
            )
            message = f"You have {_plural(len(busy), 'busy period')}: {descriptions}"

        result = ToolResult(success=True, message=message, data=data)
        self.record_query(session_id, request, result)
        return result


class CheckSchedulingConflictTool(BaseTool):
    """Check whether a proposed slot collides with existing commitments."""

    name = "checkSchedulingConflict"
    description = "Check whether a proposed time slot (startTime to endTime) conflicts with existing events."
    request_model = SchedulingConflictRequest
    error_key = "conflict"

    async def run(self, session_id: str, request: SchedulingConflictRequest) -> ToolResult:
        start, end = self.time_range(request.start_time, request.end_time, "startTime", "endTime")

        busy = await self.gateway.check_free_busy(start, end)
        conflicts = [(s, e) for s, e in _busy_intervals(busy) if s < end and e > start]

        data = {
            "hasConflict": bool(conflicts),
            "isAvailable": not conflicts,
            "conflicts": [{"start": s.isoformat(), "end": e.isoformat()} for s, e in conflicts],
        }

        if conflicts:
            descriptions = ", ".join(f"busy from {self.voice(s)} to {self.voice(e)}" for s, e in conflicts)
            message = f"That time conflicts with {_plural(len(conflicts), 'busy period')}: {descriptions}"
        else:
            message = f"You're available from {self.voice(start)} to {self.voice(end)}."

        result = ToolResult(success=True, message=message, data=data)
        self.record_query(session_id, request, result)
        return result


# =============================================================================
# Registry
# =============================================================================

TOOL_CLASSES = (
    CreateCalendarEventTool,
    QuickAddEventTool,
    ListCalendarEventsTool,
    UpdateCalendarEventTool,
    DeleteCalendarEventTool,
    CheckFreeBusyTool,
    CheckSchedulingConflictTool,
)


class ToolRegistry:
    """Registry of available tools."""

    def __init__(self):
        self.tools: Dict[str, BaseTool] = {}

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def register(self, tool: BaseTool) -> None:
        """Register a tool."""
        self.tools[tool.name] = tool

    def get(self, name: str) -> Optional[BaseTool]:
        """Get a tool by name."""
        return self.tools.get(name)

    def list_tools(self) -> List[Dict[str, Any]]:
        """Tool declarations for the voice AI session."""
        return [
            {"name": tool.name, "description": tool.description, "parameters": tool.parameters}
            for tool in self.tools.values()
        ]

    async def dispatch(
        self,
        name: str,
        session_id: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Execute a tool by name on behalf of a session."""
        tool = self.get(name)
        if not tool:
            session_logger(session_id).warning(f"Unknown tool requested: {name}")
            return {"error": get_error_message("unknown_tool")}
        return await tool.execute(session_id, params)


def create_calendar_tools(
    gateway: CalendarGateway,
    store: ContextStore,
    settings: Optional[CalendarConfig] = None,
    clock: Callable[[], datetime] = _utcnow,
) -> ToolRegistry:
    """Create a registry with all calendar tools sharing one gateway and context store."""
    registry = ToolRegistry()
    for tool_class in TOOL_CLASSES:
        registry.register(tool_class(gateway, store, settings=settings, clock=clock))
    return registry
