"""
Constants Module for Uptime Engine

Enumerations and static values shared by the check executors,
the scheduler and the incident state machine.
"""

from __future__ import annotations

from enum import Enum
from typing import Final, Optional, Tuple


class MonitorType(str, Enum):
    """
    Monitor Type Enumeration

    The closed set of probe kinds the dispatcher knows about.
    """

    HTTP = "http"
    KEYWORD = "keyword"
    PORT = "port"
    DNS = "dns"
    PING = "ping"
    HEARTBEAT = "heartbeat"
    CRONJOB = "cronjob"

    @classmethod
    def resolve(cls, value: object) -> Optional["MonitorType"]:
        """Map a raw type string onto the enum, or None if unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    @property
    def is_passive(self) -> bool:
        """Passive monitors are judged on reports pushed by the target."""
        return self in (MonitorType.HEARTBEAT, MonitorType.CRONJOB)


class MonitorStatus(str, Enum):
    """Status of a monitor as seen by the scheduler."""

    PENDING = "pending"
    UP = "up"
    DOWN = "down"


class IncidentStatus(str, Enum):
    """Lifecycle of an incident."""

    INVESTIGATING = "investigating"
    IDENTIFIED = "identified"
    MONITORING = "monitoring"
    RESOLVED = "resolved"


class IncidentSeverity(str, Enum):
    """Incident impact level."""

    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class IncidentOrigin(str, Enum):
    """Who opened the incident."""

    AUTO = "auto"
    MANUAL = "manual"


class AlertEvent(str, Enum):
    """
    Alert Event Enumeration

    Values double as the keys of an alert channel's notify_on map.
    """

    DOWN = "down"
    UP = "up"
    SSL_EXPIRY = "ssl_expiry"
    INCIDENT = "incident"


class ChannelType(str, Enum):
    """Notification channel kinds. Delivery itself lives outside the engine."""

    EMAIL = "email"
    TELEGRAM = "telegram"
    SLACK = "slack"
    DISCORD = "discord"
    WEBHOOK = "webhook"


class PortProtocol(str, Enum):
    """Transport used by port checks."""

    TCP = "tcp"
    UDP = "udp"


class KeywordMode(str, Enum):
    """Keyword match polarity."""

    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"


class DNSRecordType(str, Enum):
    """DNS record types supported by DNS checks."""

    A = "A"
    AAAA = "AAAA"
    MX = "MX"
    CNAME = "CNAME"
    TXT = "TXT"
    NS = "NS"
    SOA = "SOA"


class CronRunStatus(str, Enum):
    """Status reported by a cron job ping."""

    SUCCESS = "success"
    FAIL = "fail"


# ============================================================================
# LIMITS AND DEFAULTS
# ============================================================================

MIN_INTERVAL_SEC: Final[int] = 30
DEFAULT_INTERVAL_SEC: Final[int] = 60

MIN_TIMEOUT_MS: Final[int] = 1000
MAX_TIMEOUT_MS: Final[int] = 120000
DEFAULT_TIMEOUT_MS: Final[int] = 30000

DEFAULT_EXPECTED_CODE: Final[int] = 200
DEFAULT_HEARTBEAT_INTERVAL: Final[int] = 300
DEFAULT_HEARTBEAT_GRACE: Final[int] = 30
DEFAULT_CRON_GRACE_PERIOD: Final[int] = 60
DEFAULT_COOLDOWN_MINUTES: Final[int] = 5

# Days-before-expiry at which a certificate warning is raised
SSL_ALERT_DAYS: Final[Tuple[int, ...]] = (30, 14, 7, 3, 1)

# Ports probed, in order, by ping checks
PING_PORTS: Final[Tuple[int, ...]] = (443, 80, 22)

# Methods that carry a request body
BODY_METHODS: Final[Tuple[str, ...]] = ("POST", "PUT", "PATCH")

INCIDENT_DETECTED_DEFAULT: Final[str] = "Monitor stopped responding"
INCIDENT_DESCRIPTION_DEFAULT: Final[str] = "Monitor is not responding"
INCIDENT_AUTO_RESOLVED: Final[str] = "Automatically resolved - Monitor is back online"
