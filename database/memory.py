"""
============================================================================
UPTIME ENGINE - IN-MEMORY STORE
============================================================================
Dict-backed implementation of MonitorStore, IncidentStore and
ChannelStore. Used by the test suite and for running the engine without
a database. Passive tokens are kept in their own index so lookups are
O(1), mirroring the unique index of the SQL schema.
============================================================================
"""

import asyncio
import uuid
from dataclasses import fields as dataclass_fields, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from exceptions import RecordNotFoundError
from monitoring.models import (
    AlertChannel,
    HistoryRecord,
    Incident,
    MonitorSnapshot,
    TimelineEntry,
)


_SNAPSHOT_FIELDS = {f.name for f in dataclass_fields(MonitorSnapshot)}


class InMemoryStore:
    """
    All three stores in one object.

    Fields written through ``update_monitor_status`` that are not part
    of MonitorSnapshot (last_checked, ssl_*, ...) are kept in ``extras``.
    """

    def __init__(self):
        self.monitors: Dict[str, MonitorSnapshot] = {}
        self.extras: Dict[str, Dict[str, Any]] = {}
        self.history: List[HistoryRecord] = []
        self.incidents: Dict[str, Incident] = {}
        self.channels: Dict[str, AlertChannel] = {}
        self._tokens: Dict[Tuple[str, str], str] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # SEEDING
    # ------------------------------------------------------------------

    def add_monitor(self, snapshot: MonitorSnapshot) -> MonitorSnapshot:
        self.monitors[snapshot.id] = snapshot
        self.extras.setdefault(snapshot.id, {})
        if snapshot.heartbeat_token:
            self._tokens[(snapshot.heartbeat_token, snapshot.type)] = snapshot.id
        return snapshot

    def add_channel(self, channel: AlertChannel) -> AlertChannel:
        self.channels[channel.id] = channel
        return channel

    # ------------------------------------------------------------------
    # MonitorStore
    # ------------------------------------------------------------------

    async def list_active_monitors(self) -> List[MonitorSnapshot]:
        return [m for m in self.monitors.values() if m.active]

    async def get_monitor(self, monitor_id: str) -> Optional[MonitorSnapshot]:
        return self.monitors.get(monitor_id)

    async def _update(self, monitor_id: str, fields: Dict[str, Any]) -> None:
        async with self._lock:
            snapshot = self.monitors.get(monitor_id)
            if snapshot is None:
                return
            known = {k: v for k, v in fields.items() if k in _SNAPSHOT_FIELDS}
            extra = {k: v for k, v in fields.items() if k not in _SNAPSHOT_FIELDS}
            if known:
                self.monitors[monitor_id] = snapshot.with_changes(**known)
            self.extras.setdefault(monitor_id, {}).update(extra)

    async def update_monitor_status(self, monitor_id: str, fields: Dict[str, Any]) -> None:
        await self._update(monitor_id, fields)

    async def update_monitor_fields(self, monitor_id: str, fields: Dict[str, Any]) -> None:
        await self._update(monitor_id, fields)

    async def append_history(self, record: HistoryRecord) -> None:
        self.history.append(record)

    async def set_current_incident(self, monitor_id: str, incident_id: Optional[str]) -> None:
        await self._update(monitor_id, {"current_incident_id": incident_id})

    async def find_by_token(self, token: str, monitor_type: str) -> Optional[MonitorSnapshot]:
        monitor_id = self._tokens.get((token, monitor_type))
        if monitor_id is None:
            return None
        snapshot = self.monitors.get(monitor_id)
        return snapshot if snapshot is not None and snapshot.active else None

    # ------------------------------------------------------------------
    # IncidentStore
    # ------------------------------------------------------------------

    async def create_incident(self, fields: Dict[str, Any]) -> Incident:
        values = dict(fields)
        values.setdefault("id", str(uuid.uuid4()))
        values["timeline"] = list(values.get("timeline", []))
        incident = Incident(**values)
        self.incidents[incident.id] = incident
        return incident

    async def get_incident(self, incident_id: str) -> Optional[Incident]:
        return self.incidents.get(incident_id)

    async def resolve_incident(self, incident_id: str, resolved_at: datetime, message: str) -> Incident:
        incident = self.incidents.get(incident_id)
        if incident is None:
            raise RecordNotFoundError(
                f"Incident {incident_id} not found", entity_type="Incident", entity_id=incident_id
            )
        if not incident.is_resolved:
            incident.resolve(resolved_at, message)
        return incident

    async def append_timeline(self, incident_id: str, entry: TimelineEntry) -> None:
        incident = self.incidents.get(incident_id)
        if incident is None:
            raise RecordNotFoundError(
                f"Incident {incident_id} not found", entity_type="Incident", entity_id=incident_id
            )
        incident.timeline.append(entry)

    # ------------------------------------------------------------------
    # ChannelStore
    # ------------------------------------------------------------------

    async def list_channels(self, team_id: str, event: str) -> List[AlertChannel]:
        # copies, like rows read from a database
        return [
            replace(channel, notify_on=dict(channel.notify_on), config=dict(channel.config))
            for channel in self.channels.values()
            if channel.team_id == team_id and channel.wants(event)
        ]

    async def record_channel_success(self, channel_id: str, at: datetime) -> None:
        channel = self.channels.get(channel_id)
        if channel is not None:
            channel.last_alert_at = at
            channel.alerts_sent += 1
            channel.last_error = None

    async def record_channel_error(self, channel_id: str, error: str) -> None:
        channel = self.channels.get(channel_id)
        if channel is not None:
            channel.last_error = error
