"""
Centralized Error Handling for AlwaysPickup.

Provides:
- The calendar error taxonomy (not connected, unresolvable reference,
  provider failure, malformed input, credential decryption)
- Short spoken-style messages for each failure
- Provider error translation helpers
"""

from typing import Dict, Optional

from loguru import logger


class AlwaysPickupError(Exception):
    """Base class for all AlwaysPickup errors."""
    pass


class ConfigurationError(AlwaysPickupError):
    """Raised when a required configuration is missing."""
    pass


class CalendarNotConnectedError(AlwaysPickupError):
    """Raised when no usable calendar credentials exist."""
    pass


class CredentialDecryptionError(CalendarNotConnectedError):
    """Raised when stored credentials cannot be decrypted (wrong key or corrupt file)."""
    pass


class TokenRefreshError(AlwaysPickupError):
    """Raised when the refresh credential cannot be exchanged for a new access token."""
    pass


class EventNotFoundError(AlwaysPickupError):
    """Raised when an id or search phrase does not map to an event."""

    def __init__(self, phrase: str):
        super().__init__(f"No event matching '{phrase}'")
        self.phrase = phrase


class MalformedInputError(AlwaysPickupError):
    """Raised when a tool argument is missing or not parseable."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ProviderError(AlwaysPickupError):
    """Raised when the remote calendar provider rejects or fails a request."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(f"Calendar provider failed during {operation}: {cause}")
        self.operation = operation
        self.cause = cause


# Spoken messages, phrased to be read aloud by the voice agent
ERROR_MESSAGES: Dict[str, str] = {
    "not_connected": (
        "Google Calendar is not connected. Please ask the user to connect "
        "their calendar through the admin interface."
    ),
    "credentials_invalid": (
        "I can't access the calendar right now because its saved login needs "
        "to be renewed. Please reconnect the calendar through the admin interface."
    ),
    "missing_target": "Please tell me which event you mean, either by its name or by picking one I just listed.",
    "timeout": "The calendar is taking too long to respond. Please try again in a moment.",
    "create": "I encountered an error while creating the event. Please try again.",
    "quick_add": "I couldn't create the event. Please try rephrasing your request.",
    "list": "I encountered an error while checking your calendar. Please try again.",
    "update": "I encountered an error while updating the event. Please try again.",
    "delete": "I encountered an error while deleting the event. Please try again.",
    "free_busy": "I encountered an error while checking your availability. Please try again.",
    "conflict": "I encountered an error while checking for conflicts. Please try again.",
    "unknown_tool": "That calendar action isn't available.",
}


def get_error_message(error_key: str) -> str:
    """
    Get the spoken message for an error key.

    Args:
        error_key: Key for the error type

    Returns:
        User-friendly error message
    """
    return ERROR_MESSAGES.get(error_key, "Something went wrong with the calendar. Please try again.")


def not_found_message(phrase: str) -> str:
    """Spoken message naming a phrase that matched no event."""
    return f'I couldn\'t find an event matching "{phrase}".'


def _status_code(error: BaseException) -> Optional[int]:
    """Extract an HTTP status from a provider exception, if it carries one."""
    resp = getattr(error, "resp", None)
    status = getattr(resp, "status", None) or getattr(error, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def handle_api_error(
    service_name: str,
    error: BaseException,
    fallback_message: Optional[str] = None,
) -> str:
    """
    Handle provider errors gracefully.

    The full error is logged; the returned sentence never contains
    internal detail.

    Args:
        service_name: Name of the service
        error: The exception that occurred
        fallback_message: Optional fallback message

    Returns:
        User-friendly error message
    """
    cause = error.cause if isinstance(error, ProviderError) and error.cause else error
    status = _status_code(cause)
    error_str = str(cause).lower()

    logger.error(f"{service_name} error: {error!r}")

    if status in (401, 403) or "unauthorized" in error_str or "invalid_grant" in error_str:
        return get_error_message("credentials_invalid")

    if status in (404, 410):
        return f"{service_name} couldn't find that event. It may have already been removed."

    if status == 429 or "rate limit" in error_str:
        return f"{service_name} is busy right now. Please wait a moment and try again."

    if "timeout" in error_str or "timed out" in error_str:
        return get_error_message("timeout")

    return fallback_message or f"{service_name} encountered an error. Please try again."
