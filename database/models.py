"""
============================================================================
UPTIME ENGINE - DATABASE MODELS
============================================================================
SQLAlchemy ORM tables backing the SQL store.

    monitors           ← MonitorRecord        (MonitorSnapshot)
    monitor_history    ← MonitorHistoryRecord (HistoryRecord)
    incidents          ← IncidentRecord       (Incident)
    alert_channels     ← AlertChannelRecord   (AlertChannel)

Each record converts itself to the engine's plain value type; the engine
never sees ORM objects.
============================================================================
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Column, DateTime, ForeignKey,
    Index, Integer, JSON, String, Text, func
)
from sqlalchemy.orm import declarative_base

from config.constants import (
    DEFAULT_COOLDOWN_MINUTES,
    DEFAULT_CRON_GRACE_PERIOD,
    DEFAULT_EXPECTED_CODE,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_INTERVAL_SEC,
    DEFAULT_TIMEOUT_MS,
    MIN_INTERVAL_SEC,
    IncidentOrigin,
    IncidentSeverity,
    IncidentStatus,
    MonitorStatus,
)
from monitoring.models import (
    AlertChannel,
    Incident,
    MonitorSnapshot,
    TimelineEntry,
)
from utils.helpers import TimeHelper


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        index=True
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now()
    )


class UUIDMixin:
    """String UUID primary key, portable across SQLite and PostgreSQL."""
    id = Column(String(36), primary_key=True, default=_new_id)


# ============================================================================
# MONITORS
# ============================================================================

class MonitorRecord(Base, UUIDMixin, TimestampMixin):
    """
    A monitored target plus the bookkeeping the engine writes after
    every check.
    """

    __tablename__ = "monitors"

    team_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(32), nullable=False, default="http")
    url = Column(Text, nullable=True)

    # HTTP / keyword
    method = Column(String(10), nullable=False, default="GET")
    headers = Column(JSON, nullable=False, default=dict)
    body = Column(Text, nullable=True)
    expected_code = Column(Integer, nullable=False, default=DEFAULT_EXPECTED_CODE)
    keyword = Column(Text, nullable=True)
    keyword_type = Column(String(20), nullable=False, default="contains")

    # Port
    port = Column(Integer, nullable=True)
    port_protocol = Column(String(8), nullable=False, default="tcp")

    # DNS
    dns_record_type = Column(String(10), nullable=False, default="A")
    dns_expected_value = Column(Text, nullable=True)

    # Heartbeat / cronjob (cron jobs reuse the heartbeat token)
    heartbeat_token = Column(String(64), unique=True, nullable=True, index=True)
    heartbeat_interval = Column(Integer, nullable=False, default=DEFAULT_HEARTBEAT_INTERVAL)
    last_heartbeat = Column(DateTime(timezone=True), nullable=True)
    cron_expression = Column(String(120), nullable=True)
    cron_grace_period = Column(Integer, nullable=False, default=DEFAULT_CRON_GRACE_PERIOD)
    last_cron_run = Column(DateTime(timezone=True), nullable=True)
    expected_cron_run = Column(DateTime(timezone=True), nullable=True)

    # Scheduling
    interval_sec = Column(Integer, nullable=False, default=DEFAULT_INTERVAL_SEC)
    timeout_ms = Column(Integer, nullable=False, default=DEFAULT_TIMEOUT_MS)
    alert_after_failures = Column(Integer, nullable=False, default=1)
    ssl_check = Column(Boolean, nullable=False, default=True)
    active = Column(Boolean, nullable=False, default=True, index=True)

    # Check bookkeeping
    last_status = Column(String(16), nullable=False, default=MonitorStatus.PENDING.value)
    last_checked = Column(DateTime(timezone=True), nullable=True)
    last_response_ms = Column(Integer, nullable=True)
    last_error = Column(Text, nullable=True)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    current_incident_id = Column(String(36), nullable=True)

    # SSL
    ssl_expires_at = Column(DateTime(timezone=True), nullable=True)
    ssl_days_remaining = Column(Integer, nullable=True)
    ssl_issuer = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint(f"interval_sec >= {MIN_INTERVAL_SEC}", name="ck_monitor_interval_min"),
        CheckConstraint("alert_after_failures >= 1", name="ck_monitor_threshold_min"),
        Index("idx_monitor_active_type", "active", "type"),
    )

    def to_snapshot(self) -> MonitorSnapshot:
        return MonitorSnapshot(
            id=self.id,
            team_id=self.team_id,
            name=self.name,
            type=self.type,
            url=self.url,
            method=self.method,
            headers=dict(self.headers or {}),
            body=self.body,
            expected_code=self.expected_code,
            keyword=self.keyword,
            keyword_type=self.keyword_type,
            port=self.port,
            port_protocol=self.port_protocol,
            dns_record_type=self.dns_record_type,
            dns_expected_value=self.dns_expected_value,
            heartbeat_token=self.heartbeat_token,
            heartbeat_interval=self.heartbeat_interval,
            last_heartbeat=TimeHelper.ensure_utc(self.last_heartbeat),
            cron_expression=self.cron_expression,
            cron_grace_period=self.cron_grace_period,
            last_cron_run=TimeHelper.ensure_utc(self.last_cron_run),
            expected_cron_run=TimeHelper.ensure_utc(self.expected_cron_run),
            interval_sec=self.interval_sec,
            timeout_ms=self.timeout_ms,
            alert_after_failures=self.alert_after_failures,
            ssl_check=self.ssl_check,
            ssl_days_remaining=self.ssl_days_remaining,
            active=self.active,
            last_status=self.last_status,
            consecutive_failures=self.consecutive_failures,
            current_incident_id=self.current_incident_id,
            created_at=TimeHelper.ensure_utc(self.created_at),
        )

    def __repr__(self) -> str:
        return f"<MonitorRecord(id={self.id}, type={self.type}, name={self.name})>"


class MonitorHistoryRecord(Base):
    """One check outcome."""

    __tablename__ = "monitor_history"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    monitor_id = Column(
        String(36),
        ForeignKey("monitors.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    success = Column(Boolean, nullable=False)
    status_code = Column(Integer, nullable=True)
    response_ms = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    checked_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_history_monitor_checked", "monitor_id", "checked_at"),
    )


# ============================================================================
# INCIDENTS
# ============================================================================

class IncidentRecord(Base, UUIDMixin, TimestampMixin):
    """
    Outage record. The timeline is a JSON list; it is always reassigned,
    never mutated in place, so the ORM sees the change.
    """

    __tablename__ = "incidents"

    team_id = Column(String(64), nullable=False, index=True)
    monitor_id = Column(
        String(36),
        ForeignKey("monitors.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=IncidentStatus.INVESTIGATING.value, index=True)
    severity = Column(String(20), nullable=False, default=IncidentSeverity.MAJOR.value)
    origin = Column(String(10), nullable=False, default=IncidentOrigin.AUTO.value)
    started_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(BigInteger, nullable=True)
    timeline = Column(JSON, nullable=False, default=list)

    def to_incident(self) -> Incident:
        return Incident(
            id=self.id,
            team_id=self.team_id,
            monitor_id=self.monitor_id,
            title=self.title,
            description=self.description,
            status=self.status,
            severity=self.severity,
            origin=self.origin,
            started_at=TimeHelper.ensure_utc(self.started_at),
            resolved_at=TimeHelper.ensure_utc(self.resolved_at),
            duration_ms=self.duration_ms,
            timeline=[TimelineEntry.from_dict(item) for item in (self.timeline or [])],
        )

    def apply(self, incident: Incident) -> None:
        """Copy mutable incident state back onto the row."""
        self.status = incident.status
        self.resolved_at = incident.resolved_at
        self.duration_ms = incident.duration_ms
        self.timeline = [entry.to_dict() for entry in incident.timeline]


# ============================================================================
# ALERT CHANNELS
# ============================================================================

class AlertChannelRecord(Base, UUIDMixin, TimestampMixin):
    """A team's notification target and its delivery bookkeeping."""

    __tablename__ = "alert_channels"

    team_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(32), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    notify_on = Column(JSON, nullable=False, default=dict)
    cooldown_minutes = Column(Integer, nullable=False, default=DEFAULT_COOLDOWN_MINUTES)
    last_alert_at = Column(DateTime(timezone=True), nullable=True)
    alerts_sent = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    config = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("idx_channel_team_enabled", "team_id", "enabled"),
    )

    def to_channel(self) -> AlertChannel:
        return AlertChannel(
            id=self.id,
            team_id=self.team_id,
            name=self.name,
            type=self.type,
            enabled=self.enabled,
            notify_on=dict(self.notify_on or {}),
            cooldown_minutes=self.cooldown_minutes,
            last_alert_at=TimeHelper.ensure_utc(self.last_alert_at),
            alerts_sent=self.alerts_sent,
            last_error=self.last_error,
            config=dict(self.config or {}),
        )


def monitor_columns() -> Dict[str, Any]:
    """Column name → Column for MonitorRecord."""
    return {column.name: column for column in MonitorRecord.__table__.columns}
