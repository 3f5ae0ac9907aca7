"""
Configuration Package for Uptime Engine

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the engine
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    SchedulerSettings,
    QueueSettings,
    CheckSettings,
    AlertSettings,
    LoggingSettings,
    ServerSettings,
    SchedulerMode,
    get_settings
)

from config.constants import (
    MonitorType,
    MonitorStatus,
    IncidentStatus,
    IncidentSeverity,
    IncidentOrigin,
    AlertEvent,
    ChannelType,
    PortProtocol,
    KeywordMode,
    DNSRecordType,
    CronRunStatus,
    SSL_ALERT_DAYS,
    PING_PORTS,
    MIN_INTERVAL_SEC
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "SchedulerSettings",
    "QueueSettings",
    "CheckSettings",
    "AlertSettings",
    "LoggingSettings",
    "ServerSettings",
    "SchedulerMode",
    "get_settings",

    # Constants
    "MonitorType",
    "MonitorStatus",
    "IncidentStatus",
    "IncidentSeverity",
    "IncidentOrigin",
    "AlertEvent",
    "ChannelType",
    "PortProtocol",
    "KeywordMode",
    "DNSRecordType",
    "CronRunStatus",
    "SSL_ALERT_DAYS",
    "PING_PORTS",
    "MIN_INTERVAL_SEC"
]
