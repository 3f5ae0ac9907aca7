"""
============================================================================
UPTIME ENGINE - COLLABORATOR CONTRACTS
============================================================================
The engine never talks to a database, a message bus or a notifier
directly. Everything it needs from the outside world is described
here; database.manager.SQLStore and database.memory.InMemoryStore are
the two shipped implementations.
============================================================================
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from monitoring.models import (
    AlertChannel,
    HistoryRecord,
    Incident,
    MonitorSnapshot,
    TimelineEntry,
)


@runtime_checkable
class MonitorStore(Protocol):
    """Monitor persistence."""

    async def list_active_monitors(self) -> List[MonitorSnapshot]: ...

    async def get_monitor(self, monitor_id: str) -> Optional[MonitorSnapshot]: ...

    async def update_monitor_status(self, monitor_id: str, fields: Dict[str, Any]) -> None:
        """Write check bookkeeping (last_status, last_checked, failures, ...)."""
        ...

    async def update_monitor_fields(self, monitor_id: str, fields: Dict[str, Any]) -> None:
        """Write passive-check fields (last_heartbeat, last_cron_run, ...)."""
        ...

    async def append_history(self, record: HistoryRecord) -> None: ...

    async def set_current_incident(self, monitor_id: str, incident_id: Optional[str]) -> None: ...

    async def find_by_token(self, token: str, monitor_type: str) -> Optional[MonitorSnapshot]:
        """Look a passive monitor up by its unique token."""
        ...


@runtime_checkable
class IncidentStore(Protocol):
    """Incident persistence."""

    async def create_incident(self, fields: Dict[str, Any]) -> Incident: ...

    async def get_incident(self, incident_id: str) -> Optional[Incident]: ...

    async def resolve_incident(self, incident_id: str, resolved_at: datetime, message: str) -> Incident: ...

    async def append_timeline(self, incident_id: str, entry: TimelineEntry) -> None: ...


@runtime_checkable
class ChannelStore(Protocol):
    """Alert channel lookup and delivery bookkeeping."""

    async def list_channels(self, team_id: str, event: str) -> List[AlertChannel]:
        """Enabled channels of a team subscribed to ``event``."""
        ...

    async def record_channel_success(self, channel_id: str, at: datetime) -> None: ...

    async def record_channel_error(self, channel_id: str, error: str) -> None: ...


@runtime_checkable
class AlertSink(Protocol):
    """Fire-and-forget alert requests."""

    def request_alert(self, team_id: str, event: str, payload: Dict[str, Any]) -> None: ...


@runtime_checkable
class ChannelSender(Protocol):
    """Delivers one alert over one channel. Raises on failure."""

    async def send(self, channel: AlertChannel, event: str, payload: Dict[str, Any]) -> None: ...
