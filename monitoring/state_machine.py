"""
============================================================================
UPTIME ENGINE - STATUS TRANSITION & INCIDENT STATE MACHINE
============================================================================
Consumes the outcome of one check and decides what happens next:

    evaluate_transition()   ← pure rules, no I/O
    IncidentStateMachine    ← applies a decision through the stores

Rules, evaluated in order
-------------------------
1. Down alert   new status is down and the failure streak equals the
                threshold, or exceeds it while no incident is linked
                → open incident + "down" alert
2. Recovery     status changed from down to up
                → resolve linked incident + "up" alert
3. SSL expiry   certificate days remaining is exactly one of
                30, 14, 7, 3, 1 and differs from the stored count
                → "ssl_expiry" alert, once per threshold

A change away from "pending" never counts as a status change.
============================================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from config.constants import (
    INCIDENT_AUTO_RESOLVED,
    INCIDENT_DESCRIPTION_DEFAULT,
    INCIDENT_DETECTED_DEFAULT,
    SSL_ALERT_DAYS,
    AlertEvent,
    IncidentOrigin,
    IncidentSeverity,
    IncidentStatus,
    MonitorStatus,
)
from monitoring.interfaces import AlertSink, IncidentStore, MonitorStore
from monitoring.models import CheckResult, MonitorSnapshot, SSLInfo, TimelineEntry, TransitionInfo
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("StateMachine")


# ============================================================================
# PURE TRANSITION RULES
# ============================================================================

@dataclass(frozen=True)
class TransitionDecision:
    """What the state machine should do after one check."""

    status_changed: bool
    open_incident: bool = False
    resolve_incident: bool = False
    ssl_alert: bool = False

    @property
    def alerts(self) -> List[str]:
        events = []
        if self.open_incident:
            events.append(AlertEvent.DOWN.value)
        if self.resolve_incident:
            events.append(AlertEvent.UP.value)
        if self.ssl_alert:
            events.append(AlertEvent.SSL_EXPIRY.value)
        return events


def evaluate_transition(
    snapshot: MonitorSnapshot,
    transition: TransitionInfo,
    ssl: Optional[SSLInfo] = None,
) -> TransitionDecision:
    """
    Decide incident and alert actions for one check outcome.

    Parameters
    ----------
    snapshot : MonitorSnapshot
        Freshly read monitor. ``current_incident_id``, the alert
        threshold and the last stored ``ssl_days_remaining`` are taken
        from it.
    transition : TransitionInfo
        Status before/after the check and the new failure streak.
    ssl : SSLInfo, optional
        Certificate metadata gathered by the check.
    """
    threshold = snapshot.alert_after_failures or 1
    failures = transition.consecutive_failures
    is_down = transition.new_status == MonitorStatus.DOWN.value

    threshold_reached = is_down and failures == threshold
    missing_incident = is_down and failures > threshold and snapshot.current_incident_id is None

    recovered = (
        transition.status_changed
        and transition.new_status == MonitorStatus.UP.value
        and transition.previous_status == MonitorStatus.DOWN.value
    )

    # snapshot.ssl_days_remaining holds the count stored by the previous check
    ssl_alert = bool(
        ssl
        and ssl.days_remaining in SSL_ALERT_DAYS
        and ssl.days_remaining != snapshot.ssl_days_remaining
    )

    return TransitionDecision(
        status_changed=transition.status_changed,
        open_incident=threshold_reached or missing_incident,
        resolve_incident=recovered,
        ssl_alert=ssl_alert,
    )


# ============================================================================
# STATE MACHINE
# ============================================================================

class IncidentStateMachine:
    """
    Applies transition decisions: opens and resolves incidents, links
    them to monitors, and requests alerts from the sink.

    Parameters
    ----------
    monitors : MonitorStore
        Used to link/unlink the current incident.
    incidents : IncidentStore
        Incident persistence.
    alerts : AlertSink
        Receives fire-and-forget alert requests.
    now : callable, optional
        Wall clock returning an aware UTC datetime.
    """

    def __init__(
        self,
        monitors: MonitorStore,
        incidents: IncidentStore,
        alerts: AlertSink,
        now: Callable[[], datetime] = TimeHelper.get_utc_now,
    ):
        self.monitors = monitors
        self.incidents = incidents
        self.alerts = alerts
        self.now = now

    @staticmethod
    def _base_payload(snapshot: MonitorSnapshot) -> Dict[str, Any]:
        return {
            "monitor_id": snapshot.id,
            "monitor_name": snapshot.name,
            "url": snapshot.url,
            "team_id": snapshot.team_id,
        }

    async def handle(
        self,
        snapshot: MonitorSnapshot,
        transition: TransitionInfo,
        result: CheckResult,
    ) -> TransitionDecision:
        """Evaluate and apply the rules for one completed check."""
        decision = evaluate_transition(snapshot, transition, result.ssl)

        if decision.open_incident:
            await self._open_incident(snapshot, result)

        if decision.resolve_incident:
            await self._resolve_incident(snapshot, result)

        if decision.ssl_alert:
            self._request_ssl_alert(snapshot, result.ssl)

        return decision

    async def _open_incident(self, snapshot: MonitorSnapshot, result: CheckResult) -> None:
        now = self.now()
        error = result.error

        incident = await self.incidents.create_incident({
            "team_id": snapshot.team_id,
            "monitor_id": snapshot.id,
            "title": f"{snapshot.name} is down",
            "description": error or INCIDENT_DESCRIPTION_DEFAULT,
            "status": IncidentStatus.INVESTIGATING.value,
            "severity": IncidentSeverity.MAJOR.value,
            "origin": IncidentOrigin.AUTO.value,
            "started_at": now,
            "timeline": [
                TimelineEntry(
                    status=IncidentStatus.INVESTIGATING.value,
                    message=f"Detected: {error or INCIDENT_DETECTED_DEFAULT}",
                    created_at=now,
                )
            ],
        })
        await self.monitors.set_current_incident(snapshot.id, incident.id)

        logger.warning(
            f"[StateMachine] 🔴 {snapshot.name} is DOWN, incident {incident.id} opened"
        )

        payload = self._base_payload(snapshot)
        payload.update({"error": error, "incident_id": incident.id})
        self.alerts.request_alert(snapshot.team_id, AlertEvent.DOWN.value, payload)

    async def _resolve_incident(self, snapshot: MonitorSnapshot, result: CheckResult) -> None:
        downtime_ms: Optional[int] = None

        if snapshot.current_incident_id:
            incident = await self.incidents.get_incident(snapshot.current_incident_id)
            if incident is not None and not incident.is_resolved:
                resolved = await self.incidents.resolve_incident(
                    incident.id, self.now(), INCIDENT_AUTO_RESOLVED
                )
                downtime_ms = resolved.duration_ms

            await self.monitors.set_current_incident(snapshot.id, None)

        downtime = (
            TimeHelper.seconds_to_human_readable(downtime_ms // 1000)
            if downtime_ms is not None else None
        )
        logger.info(
            f"[StateMachine] 🟢 {snapshot.name} is back UP"
            + (f" after {downtime}" if downtime else "")
        )

        payload = self._base_payload(snapshot)
        payload.update({
            "response_ms": result.response_ms,
            "downtime_ms": downtime_ms,
            "downtime": downtime,
        })
        self.alerts.request_alert(snapshot.team_id, AlertEvent.UP.value, payload)

    def _request_ssl_alert(self, snapshot: MonitorSnapshot, ssl: SSLInfo) -> None:
        logger.warning(
            f"[StateMachine] 🔐 SSL certificate for {snapshot.name} expires in "
            f"{ssl.days_remaining} days"
        )
        payload = self._base_payload(snapshot)
        payload.update({
            "days_remaining": ssl.days_remaining,
            "expires_at": ssl.expires_at.isoformat() if ssl.expires_at else None,
            "issuer": ssl.issuer,
        })
        self.alerts.request_alert(snapshot.team_id, AlertEvent.SSL_EXPIRY.value, payload)
