"""
Centralized settings for taskspine.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    One validated, cached settings object is read by the CLI when it builds
    the scheduler; library code receives plain arguments instead.

Features:
    - **TaskSpineSettings:** time zone, logging, engine and status options
    - **env_prefix:** ``TASKSPINE_`` environment variables
    - **TZ fallback:** the time zone also honours the standard ``TZ`` variable
    - **.env file support:** Automatic loading via pydantic-settings

Examples:
    >>> from taskspine.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.timezone
    'America/Chicago'

Tags:
    settings, configuration, pydantic, environment, taskspine
"""

from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TIMEZONE = "America/Chicago"


class TaskSpineSettings(BaseSettings):
    """taskspine configuration.

    All fields can be set via ``TASKSPINE_*`` environment variables (e.g.
    ``TASKSPINE_LOG_LEVEL=DEBUG``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── Scheduling ───────────────────────────────────────────────
    timezone: str = Field(
        default=DEFAULT_TIMEZONE,
        validation_alias=AliasChoices("TASKSPINE_TIMEZONE", "TZ"),
        description="IANA time zone schedule expressions are evaluated in",
    )
    misfire_grace_seconds: int = Field(default=60, ge=1)
    max_job_instances: int = Field(
        default=4,
        ge=2,
        description="Concurrent tick deliveries allowed per task by the timer engine",
    )

    # ── Logging ──────────────────────────────────────────────────
    service_name: str = Field(default="taskspine")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="json, console or auto")

    # ── CLI status reporting ─────────────────────────────────────
    dev_status_interval_seconds: float = Field(default=300.0, gt=0)
    status_interval_seconds: float = Field(default=3600.0, gt=0)

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        # POSIX allows TZ=":Area/City"
        value = value.lstrip(":")
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {value!r}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value!r}")
        return upper

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        lower = value.lower()
        if lower not in {"json", "console", "auto"}:
            raise ValueError(f"Unknown log format: {value!r}")
        return lower

    @property
    def json_logs(self) -> bool | None:
        """``configure_logging`` json flag; ``None`` means detect from the TTY."""
        if self.log_format == "auto":
            return None
        return self.log_format == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, TaskSpineSettings] = {}


def get_settings(*, _force_reload: bool = False) -> TaskSpineSettings:
    """Load, validate, and cache a :class:`TaskSpineSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = TaskSpineSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings so the next ``get_settings`` re-reads the environment."""
    _settings_cache.clear()


__all__ = [
    "DEFAULT_TIMEZONE",
    "TaskSpineSettings",
    "get_settings",
    "clear_settings_cache",
]
