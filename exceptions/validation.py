"""
Validation Exception Classes for Uptime Engine

Raised when a monitor configuration is rejected before it
ever reaches the scheduler.
"""

from __future__ import annotations

from typing import Any, List, Optional

from exceptions.base import UptimeEngineException


class ValidationException(UptimeEngineException):
    """
    Base Validation Exception

    Parent class for all validation-related exceptions.
    """

    default_error_code = 3000

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize validation exception.

        Args:
            message: Error message
            field: The field that failed validation
            value: The invalid value (sanitized)
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if field:
            self.details["field"] = field

        if value is not None:
            self.details["value"] = self._sanitize_value(value)

    @staticmethod
    def _sanitize_value(value: Any) -> str:
        """Truncate long values for logging."""
        str_value = str(value)

        if len(str_value) > 100:
            str_value = str_value[:100] + "..."

        return str_value


class InvalidIntervalError(ValidationException):
    """
    Invalid Interval Error

    Raised when a check interval is below the allowed minimum.
    """

    default_error_code = 3002

    def __init__(
        self,
        message: str = "Invalid interval",
        interval: Optional[int] = None,
        min_interval: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize invalid interval error.

        Args:
            message: Error message
            interval: The invalid interval value
            min_interval: Minimum allowed interval
            **kwargs: Additional arguments
        """
        super().__init__(message, field="interval_sec", value=interval, **kwargs)

        if min_interval is not None:
            self.details["min_interval"] = min_interval


class MonitorConfigError(ValidationException):
    """
    Monitor Configuration Error

    Raised when a monitor fails per-type validation. Carries every
    problem found, not just the first one.
    """

    default_error_code = 3010

    def __init__(
        self,
        message: str = "Invalid monitor configuration",
        errors: Optional[List[str]] = None,
        monitor_id: Optional[str] = None,
        monitor_type: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize monitor configuration error.

        Args:
            message: Error message
            errors: Individual validation failures
            monitor_id: The monitor being validated
            monitor_type: The declared monitor type
            **kwargs: Additional arguments
        """
        super().__init__(message, monitor_id=monitor_id, **kwargs)

        self.errors = list(errors or [])
        self.details["errors"] = self.errors

        if monitor_type:
            self.details["monitor_type"] = monitor_type
