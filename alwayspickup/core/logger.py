"""
Logging configuration for AlwaysPickup.

Uses loguru with:
- a colored console sink and rotating file sinks (all levels, errors only)
- a ``session`` field on every record, bound per call with ``session_logger``
- redaction of Google OAuth tokens, so credentials never reach a log file
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from loguru import logger

if TYPE_CHECKING:
    from .config import AlwaysPickupConfig

# Project root for log files
PROJECT_ROOT = Path(__file__).parent.parent.parent
LOG_DIR = PROJECT_ROOT / "data" / "logs"

NO_SESSION = "-"

# Google access tokens (ya29.), refresh tokens (1//) and JSON token fields
_SECRET_PATTERNS = [
    re.compile(r"ya29\.[\w\-.]+"),
    re.compile(r"1//[\w\-.]+"),
    re.compile(r'("(?:access_token|refresh_token|token|client_secret)"\s*:\s*")[^"]+(")'),
]

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[session]}</magenta> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[session]} | {name}:{function}:{line} - {message}"


def redact(message: str) -> str:
    """Mask OAuth secrets in a log message."""
    for pattern in _SECRET_PATTERNS:
        if pattern.groups:
            message = pattern.sub(r"\1***\2", message)
        else:
            message = pattern.sub("***", message)
    return message


def _redact_filter(record) -> bool:
    record["message"] = redact(record["message"])
    return True


def session_logger(session_id: Optional[str]):
    """Logger whose records carry the call's session id."""
    return logger.bind(session=session_id or NO_SESSION)


def setup_logging(config: AlwaysPickupConfig | None = None, log_dir: Path | None = None) -> None:
    """
    Configure logging for AlwaysPickup.

    Args:
        config: Optional configuration. If not provided, uses defaults.
        log_dir: Directory for log files (default: <data_dir>/logs).
    """
    if log_dir is None:
        if config:
            data_dir = Path(config.general.data_dir)
            log_dir = (data_dir if data_dir.is_absolute() else PROJECT_ROOT / data_dir) / "logs"
        else:
            log_dir = LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    log_level = "INFO"
    if config:
        log_level = config.general.log_level
        if config.general.debug:
            log_level = "DEBUG"

    logger.remove()
    logger.configure(extra={"session": NO_SESSION})

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=log_level,
        colorize=True,
        filter=_redact_filter,
        backtrace=True,
        diagnose=False,
    )

    # All levels, one file per day
    logger.add(
        log_dir / "alwayspickup_{time:YYYY-MM-DD}.log",
        format=FILE_FORMAT,
        level="DEBUG",
        rotation="00:00",
        retention="7 days",
        compression="zip",
        filter=_redact_filter,
        backtrace=True,
        diagnose=False,
    )

    # Errors kept longer for credential and provider incidents
    logger.add(
        log_dir / "alwayspickup_errors_{time:YYYY-MM-DD}.log",
        format=FILE_FORMAT,
        level="ERROR",
        rotation="00:00",
        retention="30 days",
        compression="zip",
        filter=_redact_filter,
        backtrace=True,
        diagnose=False,
    )

    logger.debug(f"Logging to {log_dir} at level {log_level}")


__all__ = ["logger", "redact", "session_logger", "setup_logging"]
