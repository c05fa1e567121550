"""
Configuration management for AlwaysPickup.

This module handles loading and validating configuration from YAML files
and environment variables using Pydantic for type safety.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"


class GeneralConfig(BaseModel):
    """General configuration."""
    name: str = "AlwaysPickup"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    data_dir: str = "data"


class CalendarConfig(BaseModel):
    """Calendar provider configuration."""
    calendar_id: str = "primary"
    timezone: str = "America/Los_Angeles"
    token_file: str = "data/google_tokens.json"
    default_duration_minutes: int = Field(default=60, ge=1)
    default_list_days: int = Field(default=7, ge=1)
    default_max_results: int = Field(default=10, ge=1, le=250)
    title_search_days_back: int = Field(default=30, ge=30)
    title_search_days_forward: int = Field(default=90, ge=90)
    title_search_max_results: int = Field(default=2500, ge=1, le=10000)
    request_timeout: float = Field(default=20.0, gt=0.0)
    default_reminder_minutes: int = Field(default=10, ge=0)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA zone names early."""
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


class ContextConfig(BaseModel):
    """Conversation context configuration."""
    history_size: int = Field(default=10, ge=1)
    session_idle_timeout: int = Field(default=1800, ge=60)
    max_sessions: int = Field(default=1000, ge=1)


class AlwaysPickupConfig(BaseModel):
    """Main AlwaysPickup configuration."""
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)


class EnvSettings(BaseSettings):
    """Environment variables settings."""

    # Google OAuth client
    google_client_id: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_SECRET")
    google_redirect_uri: Optional[str] = Field(default=None, alias="GOOGLE_REDIRECT_URI")
    google_calendar_id: Optional[str] = Field(default=None, alias="GOOGLE_CALENDAR_ID")

    # Security
    token_encryption_key: Optional[str] = Field(default=None, alias="TOKEN_ENCRYPTION_KEY")

    @field_validator("token_encryption_key", "google_calendar_id", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Treat empty strings and template placeholders as unset."""
        if isinstance(v, str) and (not v.strip() or v.startswith("your_")):
            return None
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


def load_yaml_config(config_path: Path | str | None = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        config_path = CONFIG_DIR / "settings.yaml"

    config_path = Path(config_path)

    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_config(config_path: Path | str | None = None) -> AlwaysPickupConfig:
    """
    Load and return the AlwaysPickup configuration.

    Merges YAML configuration with environment variables.
    """
    yaml_config = load_yaml_config(config_path)
    cfg = AlwaysPickupConfig(**yaml_config)

    calendar_id = get_env_settings().google_calendar_id
    if calendar_id:
        cfg.calendar.calendar_id = calendar_id

    return cfg


def get_env_settings() -> EnvSettings:
    """Get environment settings."""
    return EnvSettings()


def resolve_path(path: str | Path) -> Path:
    """Resolve a configured path relative to the project root."""
    path = Path(path)
    return path if path.is_absolute() else PROJECT_ROOT / path


# Global configuration instances (lazy loaded)
_config: Optional[AlwaysPickupConfig] = None
_env_settings: Optional[EnvSettings] = None


def config() -> AlwaysPickupConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = get_config()
    return _config


def env() -> EnvSettings:
    """Get the global environment settings instance."""
    global _env_settings
    if _env_settings is None:
        _env_settings = get_env_settings()
    return _env_settings


def ensure_directories(cfg: Optional[AlwaysPickupConfig] = None) -> None:
    """Create the data, log and token directories for a configuration."""
    cfg = cfg or config()
    data_dir = resolve_path(cfg.general.data_dir)

    for directory in (data_dir, data_dir / "logs", resolve_path(cfg.calendar.token_file).parent):
        directory.mkdir(parents=True, exist_ok=True)
