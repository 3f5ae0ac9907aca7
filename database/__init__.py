"""
Database Package for Uptime Engine

Provides the SQLAlchemy async engine, ORM tables and the store
implementations used by the monitoring core.
"""

from database.models import (
    Base,
    MonitorRecord,
    MonitorHistoryRecord,
    IncidentRecord,
    AlertChannelRecord
)

from database.manager import (
    DatabaseManager,
    SQLStore
)

from database.memory import InMemoryStore

__all__ = [
    # Models
    "Base",
    "MonitorRecord",
    "MonitorHistoryRecord",
    "IncidentRecord",
    "AlertChannelRecord",

    # Connection & stores
    "DatabaseManager",
    "SQLStore",
    "InMemoryStore"
]
