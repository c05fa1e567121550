"""
Structured time values for the calendar tools.

The voice agent converts natural language to ISO-8601 before calling a
tool, so nothing here parses "tomorrow at 3pm". Accepted inputs:

- a fully-qualified instant with an offset: 2026-10-20T14:00:00-07:00
  (a trailing Z is accepted for UTC)
- a bare date for all-day values: 2026-10-20

Naive datetimes are rejected because their timezone would be a guess.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union
from zoneinfo import ZoneInfo

from alwayspickup.core.errors import MalformedInputError

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class TimeValue:
    """An instant with an offset, or an all-day date."""
    value: Union[datetime, date]
    all_day: bool = False

    def as_datetime(self, timezone_name: Optional[str] = None) -> datetime:
        """Instant form; all-day dates become local midnight (UTC if no zone given)."""
        if self.all_day:
            tz = ZoneInfo(timezone_name) if timezone_name else timezone.utc
            return datetime.combine(self.value, datetime.min.time(), tzinfo=tz)
        return self.value

    def shifted(self, delta: timedelta) -> "TimeValue":
        return TimeValue(self.value + delta, self.all_day)


def parse_instant(value: Any, field: str = "time") -> datetime:
    """
    Parse an ISO-8601 instant that carries a UTC offset.

    Raises:
        MalformedInputError: Missing, unparseable or offset-less value
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as e:
            raise MalformedInputError(
                f"'{value}' is not an ISO-8601 date-time", field=field
            ) from e
    else:
        raise MalformedInputError(f"{field} is required", field=field)

    if dt.tzinfo is None or dt.utcoffset() is None:
        raise MalformedInputError(
            f"'{value}' has no timezone offset; use a form like 2026-10-20T14:00:00-07:00",
            field=field,
        )
    return dt


def parse_time_value(value: Any, field: str = "time") -> TimeValue:
    """Parse either an all-day date (YYYY-MM-DD) or an instant with offset."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return TimeValue(value, all_day=True)

    if isinstance(value, str) and _DATE_ONLY.match(value.strip()):
        try:
            return TimeValue(date.fromisoformat(value.strip()), all_day=True)
        except ValueError as e:
            raise MalformedInputError(f"'{value}' is not a valid date", field=field) from e

    return TimeValue(parse_instant(value, field))


def check_time_string(value: Optional[str], field: str = "time") -> Optional[str]:
    """Validator hook for request models: raise ValueError on a bad time string."""
    if value is None:
        return None
    try:
        parse_time_value(value, field)
    except MalformedInputError as e:
        raise ValueError(str(e)) from e
    return value


def to_google_time(value: TimeValue, timezone_name: Optional[str] = None) -> Dict[str, str]:
    """Convert to a Google Calendar start/end object."""
    if value.all_day:
        return {"date": value.value.isoformat()}

    body = {"dateTime": value.value.isoformat()}
    if timezone_name:
        body["timeZone"] = timezone_name
    return body


def parse_google_time(data: Optional[Dict[str, Any]]) -> Optional[TimeValue]:
    """Parse a Google Calendar start/end object."""
    if not data:
        return None
    if data.get("dateTime"):
        return TimeValue(parse_instant(data["dateTime"], "dateTime"))
    if data.get("date"):
        return TimeValue(date.fromisoformat(data["date"]), all_day=True)
    return None


def format_for_voice(value: Union[TimeValue, datetime, date], timezone_name: str) -> str:
    """
    Format a time for speech, e.g. "Tuesday, October 20, 2026 at 2:00 PM".

    Args:
        value: Instant, date or TimeValue
        timezone_name: IANA zone the caller thinks in

    Returns:
        Spoken-style date string (date only for all-day values)
    """
    if isinstance(value, TimeValue):
        value = value.value

    if not isinstance(value, datetime):
        return f"{value.strftime('%A, %B')} {value.day}, {value.year}"

    local = value.astimezone(ZoneInfo(timezone_name))
    hour = local.hour % 12 or 12
    return (
        f"{local.strftime('%A, %B')} {local.day}, {local.year} "
        f"at {hour}:{local.minute:02d} {local.strftime('%p')}"
    )
