"""
Monitoring Exception Classes for Uptime Engine

Probe failures never surface as exceptions; they are captured in
check results. These cover failures of the execution machinery.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import UptimeEngineException


class MonitoringException(UptimeEngineException):
    """Parent class for scheduler and worker errors."""

    default_error_code = 4000


class QueueJobError(MonitoringException):
    """
    Queue Job Error

    Raised when a queued check job fails after all attempts.
    """

    default_error_code = 4001

    def __init__(
        self,
        message: str,
        monitor_id: Optional[str] = None,
        attempts: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize queue job error.

        Args:
            message: Error message
            monitor_id: The monitor whose job failed
            attempts: How many attempts were made
            **kwargs: Additional arguments
        """
        super().__init__(message, monitor_id=monitor_id, **kwargs)

        if attempts is not None:
            self.details["attempts"] = attempts
