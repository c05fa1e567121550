"""
AlwaysPickup Core Module

Configuration, logging and error handling shared by every component.
"""

from .config import AlwaysPickupConfig, EnvSettings, config, env, get_config
from .errors import (
    AlwaysPickupError,
    CalendarNotConnectedError,
    ConfigurationError,
    CredentialDecryptionError,
    EventNotFoundError,
    MalformedInputError,
    ProviderError,
    TokenRefreshError,
)
from .logger import setup_logging

__all__ = [
    "AlwaysPickupConfig",
    "EnvSettings",
    "config",
    "env",
    "get_config",
    "setup_logging",
    "AlwaysPickupError",
    "CalendarNotConnectedError",
    "ConfigurationError",
    "CredentialDecryptionError",
    "EventNotFoundError",
    "MalformedInputError",
    "ProviderError",
    "TokenRefreshError",
]
