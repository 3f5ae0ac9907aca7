"""
Settings Module for Uptime Engine

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.
Each functional area of the engine gets its own prefixed section.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from config.constants import DEFAULT_HEARTBEAT_GRACE, DEFAULT_TIMEOUT_MS


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SchedulerMode(str, Enum):
    """How due checks are driven."""
    LOCAL = "local"
    QUEUE = "queue"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    Any SQLAlchemy async URL is accepted. SQLite through aiosqlite
    is the default; PostgreSQL works with an asyncpg URL.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite+aiosqlite:///data/uptime_engine.db",
        description="SQLAlchemy async database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )
    pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size (ignored for SQLite)"
    )
    max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum overflow connections (ignored for SQLite)"
    )
    create_tables: bool = Field(
        default=True,
        description="Create missing tables on startup"
    )

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured backend is SQLite."""
        return self.url.startswith("sqlite")

    @property
    def sqlite_path(self) -> Optional[Path]:
        """Filesystem path of a file-backed SQLite database."""
        if not self.is_sqlite or ":memory:" in self.url:
            return None
        return Path(self.url.split(":///", 1)[-1])


class SchedulerSettings(BaseSettingsConfig):
    """
    Scheduler Configuration Settings

    Controls the tick loop of the in-process runner and selects
    between in-process and queue-backed execution.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        env_file=".env",
        extra="ignore"
    )

    mode: SchedulerMode = Field(
        default=SchedulerMode.LOCAL,
        description="Execution mode: local tick loop or queue-backed workers"
    )
    tick_interval: float = Field(
        default=1.0,
        gt=0.0,
        le=60.0,
        description="Seconds between ticks of the runner"
    )
    batch_size: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Checks executed concurrently per batch"
    )


class QueueSettings(BaseSettingsConfig):
    """Queue-backed worker settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUEUE_",
        env_file=".env",
        extra="ignore"
    )

    attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per check job before giving up"
    )
    backoff_base: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="First retry delay in seconds, doubled on each retry"
    )
    stagger_max: float = Field(
        default=10.0,
        ge=0.0,
        le=600.0,
        description="Upper bound of the random start delay on bootstrap"
    )
    concurrency: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Number of concurrent queue consumers"
    )


class CheckSettings(BaseSettingsConfig):
    """
    Check Executor Settings

    Defaults used by the probes when a monitor does not
    override them.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHECK_",
        env_file=".env",
        extra="ignore"
    )

    default_timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        ge=1000,
        le=120000,
        description="Default probe timeout in milliseconds"
    )
    user_agent: str = Field(
        default="UptimeEngine/1.0 (Compatible; Monitoring Service)",
        description="User agent string for HTTP requests"
    )
    follow_redirects: bool = Field(
        default=True,
        description="Follow redirects for HTTP and keyword checks"
    )
    heartbeat_grace_seconds: int = Field(
        default=DEFAULT_HEARTBEAT_GRACE,
        ge=0,
        le=3600,
        description="Grace period added to the heartbeat interval"
    )
    ssl_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=60.0,
        description="Timeout for fetching certificate metadata"
    )


class AlertSettings(BaseSettingsConfig):
    """Alert dispatch settings."""

    model_config = SettingsConfigDict(
        env_prefix="ALERT_",
        env_file=".env",
        extra="ignore"
    )

    default_cooldown_minutes: int = Field(
        default=5,
        ge=0,
        le=1440,
        description="Cooldown used when a channel does not define one"
    )
    queue_maxsize: int = Field(
        default=1000,
        ge=1,
        le=100000,
        description="Maximum pending alert requests"
    )


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and rotating file sinks for loguru.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )
    to_console: bool = Field(
        default=True,
        description="Enable console logging"
    )
    colorize: bool = Field(
        default=True,
        description="Enable colored console output"
    )
    to_file: bool = Field(
        default=False,
        description="Enable file logging"
    )
    file_path: Path = Field(
        default=Path("logs/uptime_engine.log"),
        description="Log file path"
    )
    rotation: str = Field(
        default="10 MB",
        description="Log rotation size (e.g., '10 MB', '1 day')"
    )
    retention: str = Field(
        default="30 days",
        description="Log retention period"
    )
    serialize: bool = Field(
        default=False,
        description="Write the file sink as JSON lines"
    )


class ServerSettings(BaseSettingsConfig):
    """Inbound HTTP server for passive checks and health probes."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Start the inbound HTTP server"
    )
    host: str = Field(
        default="0.0.0.0",
        description="Bind address"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Bind port"
    )

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Reject an empty bind address."""
        if not v.strip():
            raise ValueError("Server host cannot be empty")
        return v.strip()


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    app_name: str = Field(
        default="Uptime Engine",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # Nested settings
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings
    )
    scheduler: SchedulerSettings = Field(
        default_factory=SchedulerSettings
    )
    queue: QueueSettings = Field(
        default_factory=QueueSettings
    )
    checks: CheckSettings = Field(
        default_factory=CheckSettings
    )
    alerts: AlertSettings = Field(
        default_factory=AlertSettings
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings
    )
    server: ServerSettings = Field(
        default_factory=ServerSettings
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.debug = False
            self.database.echo = False
        elif self.debug and self.logging.level == LogLevel.INFO:
            self.logging.level = LogLevel.DEBUG

        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure a single settings instance
    is used throughout the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
