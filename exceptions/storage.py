"""
Storage Exception Classes for Uptime Engine

Errors raised by the persistence adapters. The SQL adapter wraps
SQLAlchemy errors in these so callers never depend on the driver.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from exceptions.base import UptimeEngineException


class StorageException(UptimeEngineException):
    """
    Base Storage Exception

    Parent class for all persistence-related exceptions.
    """

    default_error_code = 2000

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize storage exception.

        Args:
            message: Error message
            operation: The store operation that failed
            table: The table involved
            **kwargs: Additional arguments
        """
        super().__init__(self._sanitize(message), **kwargs)

        if operation:
            self.details["operation"] = operation

        if table:
            self.details["table"] = table

    @staticmethod
    def _sanitize(message: str) -> str:
        """Strip quoted literals out of driver messages."""
        message = re.sub(r"'[^']*'", "'***'", message)

        if len(message) > 500:
            message = message[:500] + "..."

        return message


class StorageConnectionError(StorageException):
    """
    Storage Connection Error

    Raised when the backing database cannot be reached.
    """

    default_error_code = 2001


class StorageQueryError(StorageException):
    """
    Storage Query Error

    Raised when a read or write fails to execute.
    """

    default_error_code = 2002


class RecordNotFoundError(StorageException):
    """
    Record Not Found Error

    Raised when an update targets a record that does not exist.
    """

    default_error_code = 2003

    def __init__(
        self,
        message: str = "Record not found",
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize not found error.

        Args:
            message: Error message
            entity_type: Type of entity not found (Monitor, Incident, ...)
            entity_id: ID of the entity
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type

        if entity_id is not None:
            self.details["entity_id"] = str(entity_id)
