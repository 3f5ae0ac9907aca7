"""
Base Exception Classes for Uptime Engine

Root of the engine's error taxonomy. Probe failures are never
raised; these cover configuration, persistence and job machinery.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class UptimeEngineException(Exception):
    """
    Base Exception Class

    Every engine error carries a numeric code, a details mapping and,
    when it wraps a lower-level failure, the original cause.

    Attributes:
        message: Human-readable error message
        error_code: Numeric code; the thousands digit names the area
            (2 storage, 3 validation, 4 monitoring)
        details: Structured context, including monitor_id when known
        cause: The wrapped exception, if any
        raised_at: UTC time the error was created
    """

    default_error_code: int = 1000

    def __init__(
        self,
        message: str = "Engine error",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        monitor_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = dict(details or {})
        self.cause = cause
        self.raised_at = datetime.now(timezone.utc)

        if monitor_id:
            self.details["monitor_id"] = monitor_id

    @property
    def monitor_id(self) -> Optional[str]:
        return self.details.get("monitor_id")

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, used for structured log records."""
        return {
            "type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "cause": repr(self.cause) if self.cause else None,
            "raised_at": self.raised_at.isoformat(),
        }

    def log_format(self) -> str:
        """One-line form: ``Name[code] message | k=v ... | cause: ...``."""
        line = f"{self.__class__.__name__}[{self.error_code}] {self.message}"

        if self.details:
            line += " | " + " ".join(f"{key}={value}" for key, value in self.details.items())

        if self.cause:
            line += f" | cause: {self.cause!r}"

        return line

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, error_code={self.error_code})"
