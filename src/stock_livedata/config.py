"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
stock live-data tracker, loading and validating environment variables
at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="sqlite+aiosqlite:///stock_livedata.sqlite",
        alias="DATABASE_URL",
        description="SQLite or PostgreSQL connection string",
    )
    echo: bool = Field(
        default=False,
        alias="DATABASE_ECHO",
        description="Echo SQL statements for debugging",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("sqlite", "postgresql://", "postgresql+asyncpg://")):
            raise ValueError("DATABASE_URL must be a SQLite or PostgreSQL connection string")
        return v


class ProviderSettings(BaseSettings):
    """Market-data provider credentials and request limits."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    twelvedata_token: SecretStr | None = Field(
        default=None,
        alias="TWELVEDATA_TOKEN",
        description="Twelve Data API key (highest priority provider)",
    )
    alphavantage_token: SecretStr | None = Field(
        default=None,
        alias="ALPHAVANTAGE_TOKEN",
        description="Alpha Vantage API key",
    )
    polygon_apikey: SecretStr | None = Field(
        default=None,
        alias="POLYGON_APIKEY",
        description="Polygon.io API key",
    )
    timeout_seconds: float = Field(
        default=15.0,
        alias="PROVIDER_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="Per-request timeout for provider calls",
    )
    requests_per_minute: float = Field(
        default=8.0,
        alias="PROVIDER_REQUESTS_PER_MINUTE",
        gt=0.0,
        le=10_000.0,
        description="Client-side throttle for provider requests",
    )
    preferred_exchange_code: str = Field(
        default="XFRA",
        alias="PREFERRED_EXCHANGE_CODE",
        description="MIC code preferred when resolving symbol metadata",
    )

    @property
    def configured(self) -> bool:
        """Check if any provider credential is present."""
        return any((self.twelvedata_token, self.alphavantage_token, self.polygon_apikey))


class SchedulerSettings(BaseSettings):
    """Background scheduler timing and concurrency settings."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", extra="ignore")

    interval_seconds: float = Field(
        default=60.0,
        alias="SCHEDULER_INTERVAL_SECONDS",
        gt=0.0,
        le=3600.0,
        description="Time between scheduler ticks",
    )
    daily_batch_hour: int = Field(
        default=23,
        alias="SCHEDULER_DAILY_BATCH_HOUR",
        ge=0,
        le=23,
        description="Hour of the end-of-day batch",
    )
    daily_batch_minute: int = Field(
        default=0,
        alias="SCHEDULER_DAILY_BATCH_MINUTE",
        ge=0,
        le=59,
        description="Minute of the end-of-day batch",
    )
    session_start_hour: int = Field(
        default=7,
        alias="SCHEDULER_SESSION_START_HOUR",
        ge=0,
        le=23,
        description="First hour (inclusive) of the live-update window",
    )
    session_end_hour: int = Field(
        default=22,
        alias="SCHEDULER_SESSION_END_HOUR",
        ge=1,
        le=24,
        description="Last hour (exclusive) of the live-update window",
    )
    timezone: str | None = Field(
        default=None,
        alias="SCHEDULER_TIMEZONE",
        description="IANA time zone for the wall clock (default: host local time)",
    )
    max_concurrency: int = Field(
        default=4,
        alias="SCHEDULER_MAX_CONCURRENCY",
        ge=1,
        le=256,
        description="Maximum symbols processed concurrently per tick",
    )
    shutdown_grace_seconds: float = Field(
        default=30.0,
        alias="SCHEDULER_SHUTDOWN_GRACE_SECONDS",
        ge=0.0,
        le=600.0,
        description="How long an in-flight tick may finish after a stop request",
    )
    initial_daily_lookback_days: int = Field(
        default=2000,
        alias="SCHEDULER_INITIAL_DAILY_LOOKBACK_DAYS",
        ge=1,
        le=20_000,
        description="Daily history requested for a symbol with no stored daily bars",
    )
    history_window_days: int = Field(
        default=90,
        alias="SCHEDULER_HISTORY_WINDOW_DAYS",
        ge=1,
        le=3650,
        description="Daily window scanned for jumps during the end-of-day batch",
    )
    minute_window_days: int = Field(
        default=5,
        alias="SCHEDULER_MINUTE_WINDOW_DAYS",
        ge=1,
        le=90,
        description="Minute history used for seasonality and session outliers",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        """Validate the IANA time zone name."""
        if v is None or v == "":
            return None
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError as e:
            raise ValueError(f"Unknown SCHEDULER_TIMEZONE: {v}") from e
        return v

    @model_validator(mode="after")
    def validate_session(self) -> SchedulerSettings:
        if self.session_start_hour >= self.session_end_hour:
            raise ValueError("SCHEDULER_SESSION_START_HOUR must be before SCHEDULER_SESSION_END_HOUR")
        return self


class DetectorSettings(BaseSettings):
    """Thresholds for the detector suite."""

    model_config = SettingsConfigDict(env_prefix="DETECTOR_", extra="ignore")

    minute_jump_up_pct: float = Field(
        default=2.0,
        alias="DETECTOR_MINUTE_JUMP_UP_PCT",
        gt=0.0,
        description="Minute-to-minute rise (%) reported as a jump",
    )
    minute_jump_down_pct: float = Field(
        default=2.0,
        alias="DETECTOR_MINUTE_JUMP_DOWN_PCT",
        gt=0.0,
        description="Minute-to-minute fall (%) reported as a drop",
    )
    daily_jump_up_pct: float = Field(
        default=5.0,
        alias="DETECTOR_DAILY_JUMP_UP_PCT",
        gt=0.0,
        description="Day-to-day rise (%) reported as a jump",
    )
    daily_jump_down_pct: float = Field(
        default=5.0,
        alias="DETECTOR_DAILY_JUMP_DOWN_PCT",
        gt=0.0,
        description="Day-to-day fall (%) reported as a drop",
    )
    trend_up_pct: float = Field(
        default=1.0,
        alias="DETECTOR_TREND_UP_PCT",
        gt=0.0,
        description="Accelerating rise over the last five samples (%)",
    )
    trend_down_pct: float = Field(
        default=1.0,
        alias="DETECTOR_TREND_DOWN_PCT",
        gt=0.0,
        description="Accelerating fall over the last five samples (%)",
    )
    seasonality_threshold: float = Field(
        default=0.9,
        alias="DETECTOR_SEASONALITY_THRESHOLD",
        gt=0.0,
        le=1.0,
        description="Relative periodogram score a candidate period needs versus the strongest",
    )
    seasonality_min_period: int = Field(
        default=3,
        alias="DETECTOR_SEASONALITY_MIN_PERIOD",
        ge=2,
        description="Shortest period (samples) considered",
    )
    seasonality_max_period: int = Field(
        default=300,
        alias="DETECTOR_SEASONALITY_MAX_PERIOD",
        ge=3,
        description="Longest period (samples) considered",
    )
    outlier_sensitivity: float = Field(
        default=0.5,
        alias="DETECTOR_OUTLIER_SENSITIVITY",
        gt=0.0,
        lt=1.0,
        description="Sensitivity of the median-absolute-deviation session outlier check",
    )


class NotificationSettings(BaseSettings):
    """Notification sink settings."""

    model_config = SettingsConfigDict(env_prefix="NOTIFY_", extra="ignore")

    webhook_url: SecretStr | None = Field(
        default=None,
        alias="NOTIFY_WEBHOOK_URL",
        description="Webhook receiving JSON notifications",
    )
    verbosity: Literal["compact", "detailed"] = Field(
        default="detailed",
        alias="NOTIFY_VERBOSITY",
        description="compact: one line per notification; detailed: context lines",
    )

    @property
    def enabled(self) -> bool:
        """Check if webhook notifications are enabled."""
        return self.webhook_url is not None


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from stock_livedata.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    provider: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scheduler: SchedulerSettings = Field(
        default_factory=lambda: SchedulerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    detector: DetectorSettings = Field(
        default_factory=lambda: DetectorSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    notification: NotificationSettings = Field(
        default_factory=lambda: NotificationSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Run without sending actual notifications",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "provider": {
                "twelvedata_token": "(set)" if self.provider.twelvedata_token else "(not set)",
                "alphavantage_token": "(set)" if self.provider.alphavantage_token else "(not set)",
                "polygon_apikey": "(set)" if self.provider.polygon_apikey else "(not set)",
                "timeout_seconds": str(self.provider.timeout_seconds),
                "requests_per_minute": str(self.provider.requests_per_minute),
                "preferred_exchange_code": self.provider.preferred_exchange_code,
            },
            "scheduler": {
                "interval_seconds": str(self.scheduler.interval_seconds),
                "daily_batch": f"{self.scheduler.daily_batch_hour:02d}:{self.scheduler.daily_batch_minute:02d}",
                "session": f"{self.scheduler.session_start_hour:02d}-{self.scheduler.session_end_hour:02d}",
                "timezone": self.scheduler.timezone or "(local)",
                "max_concurrency": str(self.scheduler.max_concurrency),
            },
            "detector": {
                "minute_jump_pct": f"+{self.detector.minute_jump_up_pct}/-{self.detector.minute_jump_down_pct}",
                "daily_jump_pct": f"+{self.detector.daily_jump_up_pct}/-{self.detector.daily_jump_down_pct}",
                "trend_pct": f"+{self.detector.trend_up_pct}/-{self.detector.trend_down_pct}",
                "seasonality_threshold": str(self.detector.seasonality_threshold),
            },
            "webhook_enabled": str(self.notification.enabled),
            "notify_verbosity": self.notification.verbosity,
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
