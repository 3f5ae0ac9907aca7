"""
============================================================================
UPTIME ENGINE - DOMAIN MODELS
============================================================================
Plain value types passed between the scheduler, the check executors,
the incident state machine and the storage adapters.

MonitorSnapshot   ← immutable view of one monitor for one check cycle
CheckResult       ← what a probe observed
SSLInfo           ← certificate metadata gathered alongside HTTP checks
CachedScheduleEntry ← mutable per-monitor scheduler state
TransitionInfo    ← status change computed after a check
Incident / TimelineEntry / AlertChannel / HistoryRecord
============================================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from config.constants import (
    DEFAULT_COOLDOWN_MINUTES,
    DEFAULT_CRON_GRACE_PERIOD,
    DEFAULT_EXPECTED_CODE,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_INTERVAL_SEC,
    DEFAULT_TIMEOUT_MS,
    IncidentOrigin,
    IncidentSeverity,
    IncidentStatus,
    MonitorStatus,
)


# ============================================================================
# MONITOR SNAPSHOT
# ============================================================================

@dataclass(frozen=True)
class MonitorSnapshot:
    """
    Immutable view of a monitor as read from storage.

    ``type`` stays a raw string so that records with a type the engine
    does not know can still be scheduled (they fall back to HTTP).
    """

    id: str
    team_id: str
    name: str
    type: str = "http"
    url: Optional[str] = None

    # HTTP / keyword
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    expected_code: int = DEFAULT_EXPECTED_CODE
    keyword: Optional[str] = None
    keyword_type: str = "contains"

    # Port
    port: Optional[int] = None
    port_protocol: str = "tcp"

    # DNS
    dns_record_type: str = "A"
    dns_expected_value: Optional[str] = None

    # Heartbeat
    heartbeat_token: Optional[str] = None
    heartbeat_interval: int = DEFAULT_HEARTBEAT_INTERVAL
    last_heartbeat: Optional[datetime] = None

    # Cronjob
    cron_expression: Optional[str] = None
    cron_grace_period: int = DEFAULT_CRON_GRACE_PERIOD
    last_cron_run: Optional[datetime] = None
    expected_cron_run: Optional[datetime] = None

    # Scheduling
    interval_sec: int = DEFAULT_INTERVAL_SEC
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    alert_after_failures: int = 1
    ssl_check: bool = True
    ssl_days_remaining: Optional[int] = None

    # Bookkeeping owned by the engine
    active: bool = True
    last_status: str = MonitorStatus.PENDING.value
    consecutive_failures: int = 0
    current_incident_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def with_changes(self, **changes: Any) -> "MonitorSnapshot":
        """Copy with the given fields replaced."""
        return replace(self, **changes)


# ============================================================================
# CHECK RESULT
# ============================================================================

@dataclass(frozen=True)
class SSLInfo:
    """Certificate metadata. ``days_remaining`` is None when the fetch failed."""

    expires_at: Optional[datetime] = None
    days_remaining: Optional[int] = None
    issuer: Optional[str] = None
    subject: Optional[str] = None
    valid: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class CheckResult:
    """
    Immutable value object that carries everything a single probe
    observed back to the scheduler.
    """

    success: bool
    response_ms: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    ssl: Optional[SSLInfo] = None

    @classmethod
    def failure(cls, error: str, response_ms: int = 0, **payload: Any) -> "CheckResult":
        return cls(success=False, response_ms=response_ms, error=error, payload=payload)


# ============================================================================
# SCHEDULER STATE
# ============================================================================

@dataclass
class CachedScheduleEntry:
    """Mutable scheduler state for one monitor. Times are epoch seconds."""

    monitor_id: str
    team_id: str
    snapshot: MonitorSnapshot
    next_run_at: float
    last_status: str = MonitorStatus.PENDING.value
    last_response_ms: Optional[int] = None
    consecutive_failures: int = 0
    active: bool = True

    def copy(self) -> "CachedScheduleEntry":
        return replace(self)


@dataclass(frozen=True)
class TransitionInfo:
    """Status before and after a check plus the updated failure count."""

    previous_status: str
    new_status: str
    consecutive_failures: int

    @property
    def status_changed(self) -> bool:
        return (
            self.previous_status != self.new_status
            and self.previous_status != MonitorStatus.PENDING.value
        )


@dataclass(frozen=True)
class HistoryRecord:
    """One row of check history."""

    monitor_id: str
    success: bool
    response_ms: int
    checked_at: datetime
    status_code: Optional[int] = None
    error: Optional[str] = None


# ============================================================================
# INCIDENTS
# ============================================================================

@dataclass
class TimelineEntry:
    status: str
    message: str
    created_at: datetime
    author: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "author": self.author,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelineEntry":
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            status=data["status"],
            message=data.get("message", ""),
            created_at=created_at,
            author=data.get("author"),
        )


@dataclass
class Incident:
    """
    An outage record. ``resolved_at`` is set exactly when the status is
    resolved, and ``duration_ms`` is then resolved_at - started_at.
    """

    id: str
    team_id: str
    title: str
    started_at: datetime
    monitor_id: Optional[str] = None
    description: Optional[str] = None
    status: str = IncidentStatus.INVESTIGATING.value
    severity: str = IncidentSeverity.MAJOR.value
    origin: str = IncidentOrigin.AUTO.value
    timeline: List[TimelineEntry] = field(default_factory=list)
    resolved_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == IncidentStatus.RESOLVED.value

    def resolve(self, resolved_at: datetime, message: str) -> None:
        """Close the incident in place and append the closing timeline entry."""
        self.status = IncidentStatus.RESOLVED.value
        self.resolved_at = resolved_at
        self.duration_ms = int(round((resolved_at - self.started_at).total_seconds() * 1000))
        self.timeline.append(
            TimelineEntry(status=self.status, message=message, created_at=resolved_at)
        )


# ============================================================================
# ALERT CHANNELS
# ============================================================================

@dataclass
class AlertChannel:
    """A team's notification target plus its delivery bookkeeping."""

    id: str
    team_id: str
    name: str
    type: str
    enabled: bool = True
    notify_on: Dict[str, bool] = field(
        default_factory=lambda: {"down": True, "up": True, "ssl_expiry": True, "incident": True}
    )
    cooldown_minutes: int = DEFAULT_COOLDOWN_MINUTES
    last_alert_at: Optional[datetime] = None
    alerts_sent: int = 0
    last_error: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)

    def wants(self, event: str) -> bool:
        return self.enabled and bool(self.notify_on.get(event, False))
