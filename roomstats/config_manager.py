"""Configuration management for roomstats."""

from __future__ import annotations

import logging
import os
import zoneinfo
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .timezone_utils import DEFAULT_REFERENCE_TIMEZONE, is_valid_timezone

logger = logging.getLogger(__name__)

MIN_FETCH_CONCURRENCY = 1
MAX_FETCH_CONCURRENCY = 8

_TRUTHY = ("1", "true", "yes", "on")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUTHY


# env var -> (config key, converter)
_ENV_SETTINGS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "ROOMSTATS_TIMEZONE": ("reference_timezone", str),
    "ROOMSTATS_AVAILABLE_HOURS": ("available_hours_per_day", float),
    "ROOMSTATS_EXPANSION_DAYS": ("expansion_days", int),
    "ROOMSTATS_HONOR_TZID": ("honor_tzid", _parse_bool),
    "ROOMSTATS_REFRESH_INTERVAL": ("refresh_interval_seconds", int),
    "ROOMSTATS_REQUEST_TIMEOUT": ("request_timeout", int),
    "ROOMSTATS_MAX_RETRIES": ("max_retries", int),
    "ROOMSTATS_RETRY_BACKOFF": ("retry_backoff_factor", float),
    "ROOMSTATS_FETCH_CONCURRENCY": ("fetch_concurrency", int),
    "ROOMSTATS_ROOMS_FILE": ("rooms_file", str),
    "ROOMSTATS_WEB_HOST": ("server_bind", str),
    "ROOMSTATS_WEB_PORT": ("server_port", int),
    "ROOMSTATS_LOG_LEVEL": ("log_level", str),
    "ROOMSTATS_DEBUG": ("debug_logging", _parse_bool),
}


class AnalyticsSettings(BaseModel):
    """Immutable settings passed explicitly into every pipeline component."""

    model_config = ConfigDict(frozen=True)

    reference_timezone: str = Field(
        default=DEFAULT_REFERENCE_TIMEZONE,
        description="IANA zone all timestamps are normalized to",
    )
    available_hours_per_day: float = Field(
        default=12.0, gt=0, description="Bookable hours per room per day"
    )
    expansion_days: int = Field(
        default=365, ge=1, description="Recurrence horizon when a rule has no UNTIL"
    )
    honor_tzid: bool = Field(
        default=False, description="Apply DTSTART/DTEND TZID parameters instead of ignoring them"
    )
    underutilized_threshold: int = Field(default=30, description="Utilization % below which a room is underutilized")
    overbooked_threshold: int = Field(default=80, description="Utilization % above which a room is overbooked")
    heatmap_first_hour: int = Field(default=8, ge=0, le=23)
    heatmap_last_hour: int = Field(default=20, ge=0, le=23)

    refresh_interval_seconds: int = Field(default=900, ge=1, description="Per-room refresh period")
    request_timeout: int = Field(default=30, ge=1, description="HTTP timeout in seconds")
    max_retries: int = Field(default=2, ge=0)
    retry_backoff_factor: float = Field(default=1.5, gt=0)
    fetch_concurrency: int = Field(default=4, description="Concurrent feed downloads")

    server_bind: str = "0.0.0.0"  # nosec B104 - default bind, overridable via ROOMSTATS_WEB_HOST
    server_port: int = 8080
    debug_logging: bool = False

    @field_validator("reference_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if is_valid_timezone(value):
            return value
        logger.warning(
            "Invalid timezone %r, falling back to %r", value, DEFAULT_REFERENCE_TIMEZONE
        )
        return DEFAULT_REFERENCE_TIMEZONE

    @field_validator("fetch_concurrency")
    @classmethod
    def _bound_concurrency(cls, value: int) -> int:
        return max(MIN_FETCH_CONCURRENCY, min(MAX_FETCH_CONCURRENCY, value))

    @property
    def tzinfo(self) -> zoneinfo.ZoneInfo:
        """Reference timezone as a ZoneInfo."""
        return zoneinfo.ZoneInfo(self.reference_timezone)

    @classmethod
    def from_config(cls, config: Any) -> AnalyticsSettings:
        """Build settings from a config dict, ignoring keys that are not settings.

        Values outside a setting's bounds are logged and replaced by its default.
        """
        if isinstance(config, cls):
            return config
        values = {
            name: get_config_value(config, name)
            for name in cls.model_fields
            if get_config_value(config, name) is not None
        }
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            for error in e.errors():
                name = error["loc"][0] if error["loc"] else None
                if name in values:
                    logger.warning(
                        "Invalid %s=%r (%s); using default", name, values.pop(name), error["msg"]
                    )
        return cls.model_validate(values)


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug(
                "Failed to read .env file for defaults (continuing): %s",
                self.env_file_path,
                exc_info=True,
            )
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from ROOMSTATS_* environment variables.

        Values that fail conversion are logged and ignored.

        Returns:
            Configuration dictionary accepted by AnalyticsSettings.from_config
        """
        cfg: dict[str, Any] = {}
        for env_name, (key, convert) in _ENV_SETTINGS.items():
            raw = os.environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                cfg[key] = convert(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_name, raw)
        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()

    def load_settings(self) -> AnalyticsSettings:
        """Load configuration and validate it into AnalyticsSettings."""
        return AnalyticsSettings.from_config(self.load_full_config())


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and attribute-style objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
