"""
============================================================================
UPTIME ENGINE - MONITORING PACKAGE
============================================================================
Runtime monitoring core:
    • checks/            - one executor per monitor type
    • CheckDispatcher    - type → executor, config validation
    • ScheduleCache      - what is due now, per-monitor status/streak
    • CheckRunner        - in-process tick loop
    • QueueWorker        - queue-backed alternative
    • IncidentStateMachine
    • AlertDispatcher    - cooldown gate + channel fan-out
    • PassiveCheckService / EngineServer - heartbeat & cronjob endpoints

File layout
-----------
monitoring/
├── __init__.py          ← this file
├── models.py            ← value types
├── interfaces.py        ← store / sink / sender protocols
├── checks/              ← HTTP, keyword, port, DNS, ping, heartbeat, cronjob
├── dispatcher.py
├── cache.py
├── runner.py            ← CheckRunner + CheckProcessor
├── queue_worker.py      ← QueueWorker + InMemoryJobQueue
├── state_machine.py
├── alerts.py
├── passive.py
└── server.py            ← aiohttp endpoints
============================================================================
"""

from monitoring.models import (
    AlertChannel,
    CachedScheduleEntry,
    CheckResult,
    HistoryRecord,
    Incident,
    MonitorSnapshot,
    SSLInfo,
    TimelineEntry,
    TransitionInfo,
)
from monitoring.dispatcher import CheckDispatcher, validate_monitor_config
from monitoring.cache import ScheduleCache, compute_transition
from monitoring.state_machine import IncidentStateMachine, TransitionDecision, evaluate_transition
from monitoring.alerts import AlertCooldownGate, AlertDispatcher, DeliveryReport, LoggingSender
from monitoring.runner import CheckProcessor, CheckRunner
from monitoring.queue_worker import CheckJob, InMemoryJobQueue, QueueWorker
from monitoring.passive import CronRunReceipt, HeartbeatReceipt, PassiveCheckService

__all__ = [
    # Models
    "AlertChannel",
    "CachedScheduleEntry",
    "CheckResult",
    "HistoryRecord",
    "Incident",
    "MonitorSnapshot",
    "SSLInfo",
    "TimelineEntry",
    "TransitionInfo",

    # Dispatch & scheduling
    "CheckDispatcher",
    "validate_monitor_config",
    "ScheduleCache",
    "compute_transition",
    "CheckProcessor",
    "CheckRunner",
    "CheckJob",
    "InMemoryJobQueue",
    "QueueWorker",

    # Incidents & alerts
    "IncidentStateMachine",
    "TransitionDecision",
    "evaluate_transition",
    "AlertCooldownGate",
    "AlertDispatcher",
    "DeliveryReport",
    "LoggingSender",

    # Passive checks
    "PassiveCheckService",
    "HeartbeatReceipt",
    "CronRunReceipt",
]
