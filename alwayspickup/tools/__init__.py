"""
AlwaysPickup Tools Module

Calendar access for the voice AI:
- Google Calendar gateway
- Calendar command tools and their registry
- Time value helpers
"""

from .calendar import CalendarEvent, CalendarGateway, create_calendar_gateway
from .calendar_tools import (
    BaseTool,
    CheckFreeBusyTool,
    CheckSchedulingConflictTool,
    CreateCalendarEventTool,
    DeleteCalendarEventTool,
    ListCalendarEventsTool,
    QuickAddEventTool,
    ToolRegistry,
    ToolResult,
    UpdateCalendarEventTool,
    create_calendar_tools,
)
from .datetimes import TimeValue, format_for_voice, parse_time_value

__all__ = [
    "BaseTool",
    "CalendarEvent",
    "CalendarGateway",
    "CheckFreeBusyTool",
    "CheckSchedulingConflictTool",
    "CreateCalendarEventTool",
    "DeleteCalendarEventTool",
    "ListCalendarEventsTool",
    "QuickAddEventTool",
    "TimeValue",
    "ToolRegistry",
    "ToolResult",
    "UpdateCalendarEventTool",
    "create_calendar_gateway",
    "create_calendar_tools",
    "format_for_voice",
    "parse_time_value",
]
