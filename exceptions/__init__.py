"""
Exceptions Package for Uptime Engine

Provides the exception hierarchy used for error handling
throughout the engine.
"""

from exceptions.base import UptimeEngineException

from exceptions.storage import (
    StorageException,
    StorageConnectionError,
    StorageQueryError,
    RecordNotFoundError
)

from exceptions.validation import (
    ValidationException,
    InvalidIntervalError,
    MonitorConfigError
)

from exceptions.monitoring import (
    MonitoringException,
    QueueJobError
)

__all__ = [
    # Base exceptions
    "UptimeEngineException",

    # Storage exceptions
    "StorageException",
    "StorageConnectionError",
    "StorageQueryError",
    "RecordNotFoundError",

    # Validation exceptions
    "ValidationException",
    "InvalidIntervalError",
    "MonitorConfigError",

    # Monitoring exceptions
    "MonitoringException",
    "QueueJobError"
]
