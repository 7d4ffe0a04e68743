"""
Email Notification Processor - Configuration.

Settings for the email processor, read once at construction and immutable
thereafter. Values come from the environment (``NOTIFICATIONS_EMAIL_`` prefix)
or from the ``notifications.processors.email`` section of an application config.

Architecture Layer: Infrastructure
Principles: 12-Factor App, Configuration Externalization, Type Safety
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

from .errors import ConfigurationError

logger = structlog.get_logger(__name__)

DEFAULT_CONCURRENCY_LIMIT = 2
DEFAULT_THROTTLE_INTERVAL_MS = 100
DEFAULT_CACHE_TTL_MS = 3_600_000
CONFIG_SECTION = ("notifications", "processors", "email")

_ISO_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<years>\d+(?:\.\d+)?)Y)?(?:(?P<months>\d+(?:\.\d+)?)M)?"
    r"(?:(?P<weeks>\d+(?:\.\d+)?)W)?(?:(?P<days>\d+(?:\.\d+)?)D)?"
    r"(?:T(?:(?P<hours>\d+(?:\.\d+)?)H)?(?:(?P<minutes>\d+(?:\.\d+)?)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)
_HUMAN_TERM_PATTERN = re.compile(r"\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]+)\s*,?")
_HUMAN_UNITS = {
    "ms": "milliseconds", "msec": "milliseconds", "msecs": "milliseconds",
    "millisecond": "milliseconds", "milliseconds": "milliseconds",
    "s": "seconds", "sec": "seconds", "secs": "seconds", "second": "seconds", "seconds": "seconds",
    "m": "minutes", "min": "minutes", "mins": "minutes", "minute": "minutes", "minutes": "minutes",
    "h": "hours", "hr": "hours", "hrs": "hours", "hour": "hours", "hours": "hours",
    "d": "days", "day": "days", "days": "days",
    "w": "weeks", "week": "weeks", "weeks": "weeks",
    "mo": "months", "month": "months", "months": "months",
    "y": "years", "yr": "years", "yrs": "years", "year": "years", "years": "years",
}
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


class Duration(BaseModel):
    """
    A length of time.

    Accepts a number of milliseconds, an ISO-8601 duration string such as
    ``PT1H``, a unit string such as ``100ms``, ``1h`` or ``2 days 3h``, or a
    mapping of years/months/weeks/days/hours/minutes/seconds/milliseconds.
    A month counts as 30 days and a year as 365 days.
    """
    years: float = Field(default=0, ge=0)
    months: float = Field(default=0, ge=0)
    weeks: float = Field(default=0, ge=0)
    days: float = Field(default=0, ge=0)
    hours: float = Field(default=0, ge=0)
    minutes: float = Field(default=0, ge=0)
    seconds: float = Field(default=0, ge=0)
    milliseconds: float = Field(default=0, ge=0)

    model_config = {"frozen": True, "extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def coerce(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("Duration cannot be a boolean")
        if isinstance(value, (int, float)):
            return {"milliseconds": value}
        if isinstance(value, str):
            text = value.strip()
            if text.upper().startswith("P"):
                match = _ISO_DURATION_PATTERN.match(text.upper())
                if not match or text.upper() in ("P", "PT") or text.upper().endswith("T"):
                    raise ValueError(f"Invalid ISO-8601 duration: {value!r}")
                return {k: float(v) for k, v in match.groupdict().items() if v is not None}
            return _parse_human_duration(text)
        return value

    def to_milliseconds(self) -> int:
        total_days = self.years * 365 + self.months * 30 + self.weeks * 7 + self.days
        total_seconds = ((total_days * 24 + self.hours) * 60 + self.minutes) * 60 + self.seconds
        return int(round(total_seconds * 1000 + self.milliseconds))


def _parse_human_duration(text: str) -> dict[str, float]:
    """Parse ``1h 30m`` style strings into unit amounts."""
    parts: dict[str, float] = {}
    pos = 0
    while pos < len(text):
        match = _HUMAN_TERM_PATTERN.match(text, pos)
        if not match:
            raise ValueError(f"Invalid duration: {text!r}")
        unit = _HUMAN_UNITS.get(match.group(2).lower())
        if unit is None:
            raise ValueError(f"Unknown duration unit {match.group(2)!r} in {text!r}")
        parts[unit] = parts.get(unit, 0.0) + float(match.group(1))
        pos = match.end()
    if not parts:
        raise ValueError(f"Invalid duration: {text!r}")
    return parts


class TransportConfig(BaseModel):
    """Mail transport configuration; ``transport`` selects smtp, ses or sendmail."""
    transport: str = Field(..., min_length=1)
    # smtp
    hostname: str = Field(default="localhost")
    port: int = Field(default=587, ge=1, le=65535)
    secure: bool = Field(default=False)
    require_tls: bool = Field(default=False)
    username: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    # ses
    region: str | None = Field(default=None)
    endpoint: str | None = Field(default=None)
    access_key_id: str | None = Field(default=None)
    secret_access_key: SecretStr | None = Field(default=None)
    configuration_set: str | None = Field(default=None)
    # sendmail
    path: str = Field(default="sendmail")
    newline: Literal["unix", "windows"] = Field(default="unix")

    model_config = {"frozen": True, "extra": "ignore"}


class CacheSettings(BaseModel):
    """Recipient cache lifetime and backing store."""
    ttl: Duration | None = Field(default=None)
    store: Literal["memory", "redis"] = Field(default="memory")

    model_config = {"frozen": True, "extra": "ignore"}


class BroadcastConfig(BaseModel):
    """Who receives broadcast notifications: none, config (fixed list) or users."""
    receiver: str = Field(default="none")
    receiver_emails: list[str] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("receiver_emails", mode="before")
    @classmethod
    def ensure_list(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [e.strip() for e in v.split(",") if e.strip()]
        return list(v)


class EmailProcessorSettings(BaseSettings):
    """Aggregate email processor configuration."""
    transport: TransportConfig
    sender: str = Field(..., min_length=3)
    reply_to: str | None = Field(default=None)
    concurrency_limit: int = Field(default=DEFAULT_CONCURRENCY_LIMIT, ge=1, le=1000)
    throttle_interval: Duration | None = Field(default=None)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    broadcast_config: BroadcastConfig | None = Field(default=None)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_EMAIL_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    @field_validator("sender", "reply_to", mode="before")
    @classmethod
    def validate_address(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if "@" not in v:
            raise ValueError("Invalid email format")
        return v

    @property
    def throttle_interval_ms(self) -> int:
        if self.throttle_interval is None:
            return DEFAULT_THROTTLE_INTERVAL_MS
        return self.throttle_interval.to_milliseconds()

    @property
    def cache_ttl_ms(self) -> int:
        if self.cache.ttl is None:
            return DEFAULT_CACHE_TTL_MS
        return self.cache.ttl.to_milliseconds()

    @property
    def broadcast_receiver(self) -> str:
        if self.broadcast_config is None:
            return "none"
        return self.broadcast_config.receiver

    @property
    def broadcast_receiver_emails(self) -> list[str]:
        if self.broadcast_config is None:
            return []
        return list(self.broadcast_config.receiver_emails)

    @classmethod
    def from_app_config(cls, app_config: Mapping[str, Any]) -> EmailProcessorSettings:
        """Build settings from the ``notifications.processors.email`` section of an app config."""
        section: Any = app_config
        for key in CONFIG_SECTION:
            if not isinstance(section, Mapping) or key not in section:
                raise ConfigurationError(
                    f"Missing required config section: {'.'.join(CONFIG_SECTION)}",
                    details={"missing_key": key},
                )
            section = section[key]
        try:
            settings = cls(**_normalize_keys(section))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid email processor config: {e}", cause=e) from e
        logger.info(
            "email_processor_config_loaded",
            transport=settings.transport.transport,
            concurrency_limit=settings.concurrency_limit,
            throttle_interval_ms=settings.throttle_interval_ms,
            cache_ttl_ms=settings.cache_ttl_ms,
            broadcast_receiver=settings.broadcast_receiver,
        )
        return settings


def _to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _normalize_keys(value: Any) -> Any:
    """Convert camelCase mapping keys to snake_case, recursively."""
    if isinstance(value, Mapping):
        return {_to_snake(str(k)): _normalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize_keys(v) for v in value]
    return value


_settings: EmailProcessorSettings | None = None


def get_settings() -> EmailProcessorSettings:
    """Get singleton settings instance loaded from the environment."""
    global _settings
    if _settings is None:
        _settings = EmailProcessorSettings()
        logger.info("email_processor_settings_loaded",
                    transport=_settings.transport.transport,
                    broadcast_receiver=_settings.broadcast_receiver)
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
