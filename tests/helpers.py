from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from monitoring.models import AlertChannel, CheckResult, MonitorSnapshot, SSLInfo


T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeWallClock:
    """Aware UTC clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class FakeEpochClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> float:
        self.current += seconds
        return self.current


class RecordingSink:
    """AlertSink that keeps every request."""

    def __init__(self) -> None:
        self.requests: List[Tuple[str, str, Dict[str, Any]]] = []

    def request_alert(self, team_id: str, event: str, payload: Dict[str, Any]) -> None:
        self.requests.append((team_id, event, dict(payload)))

    def events(self) -> List[str]:
        return [event for _, event, _ in self.requests]


class ScriptedDispatcher:
    """Stands in for CheckDispatcher, answering from a list of outcomes."""

    def __init__(self, outcomes: List[bool], ssl: Optional[SSLInfo] = None, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes)
        self.ssl = ssl
        self.delay = delay
        self.calls: List[str] = []
        self.unknown_type_fallbacks = 0
        self.in_flight = 0
        self.peak_in_flight = 0

    async def execute(self, monitor: MonitorSnapshot) -> CheckResult:
        self.calls.append(monitor.id)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        success = self.outcomes.pop(0) if self.outcomes else True
        if success:
            return CheckResult(success=True, response_ms=12, status_code=200, ssl=self.ssl)
        return CheckResult(success=False, response_ms=30, error="Connection error: refused", ssl=self.ssl)

    def validate(self, monitor: MonitorSnapshot):
        from monitoring.dispatcher import validate_monitor_config
        return validate_monitor_config(monitor)

    def ensure_valid(self, monitor: MonitorSnapshot) -> None:
        from monitoring.dispatcher import CheckDispatcher
        CheckDispatcher.ensure_valid(monitor)

    def stats(self) -> Dict[str, Any]:
        return {"unknown_type_fallbacks": self.unknown_type_fallbacks}


def make_monitor(monitor_id: str = "m1", **overrides: Any) -> MonitorSnapshot:
    values: Dict[str, Any] = {
        "id": monitor_id,
        "team_id": "team-1",
        "name": f"Monitor {monitor_id}",
        "type": "http",
        "url": "https://example.com/health",
        "interval_sec": 60,
        "timeout_ms": 5000,
        "alert_after_failures": 1,
        "ssl_check": False,
    }
    values.update(overrides)
    return MonitorSnapshot(**values)


def make_channel(channel_id: str = "c1", **overrides: Any) -> AlertChannel:
    values: Dict[str, Any] = {
        "id": channel_id,
        "team_id": "team-1",
        "name": f"Channel {channel_id}",
        "type": "webhook",
        "cooldown_minutes": 5,
    }
    values.update(overrides)
    return AlertChannel(**values)
