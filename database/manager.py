"""
============================================================================
UPTIME ENGINE - DATABASE MANAGER & SQL STORE
============================================================================
DatabaseManager owns the async engine and hands out transactional
sessions. SQLStore implements the MonitorStore, IncidentStore and
ChannelStore contracts on top of it.

Every SQLAlchemyError leaving SQLStore is wrapped in a StorageException
so callers never depend on driver exception types.
============================================================================
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional

from sqlalchemy import event, select, text, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from config.constants import MonitorType
from config.settings import DatabaseSettings
from database.models import (
    AlertChannelRecord,
    Base,
    IncidentRecord,
    MonitorHistoryRecord,
    MonitorRecord,
    monitor_columns,
)
from exceptions import (
    RecordNotFoundError,
    StorageConnectionError,
    StorageQueryError,
)
from monitoring.models import (
    AlertChannel,
    HistoryRecord,
    Incident,
    MonitorSnapshot,
    TimelineEntry,
)
from utils.helpers import TimeHelper, generate_token
from utils.logger import get_logger


logger = get_logger("database")


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Owns the async engine and session factory.

    SQLite in-memory URLs share one connection (StaticPool) so that all
    sessions see the same database.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self.settings = settings or DatabaseSettings()
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

        self.database_url = self.settings.url
        logger.info(f"DatabaseManager initialized with URL: {self._mask_password(self.database_url)}")

    @staticmethod
    def _mask_password(url: str) -> str:
        """
        Mask password in database URL for logging.
        """
        if "://" not in url:
            return url

        protocol, rest = url.split("://", 1)
        if "@" not in rest:
            return url

        credentials, host_part = rest.split("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:****@{host_part}"

        return url

    def _engine_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"echo": self.settings.echo}

        if self.settings.is_sqlite:
            options["connect_args"] = {"check_same_thread": False}
            if self.settings.sqlite_path is None:
                options["poolclass"] = StaticPool
            else:
                self.settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        else:
            options.update({
                "pool_size": self.settings.pool_size,
                "max_overflow": self.settings.max_overflow,
                "pool_pre_ping": True,  # Enable connection health checks
            })
        return options

    async def initialize(self) -> None:
        """
        Create the engine and session factory, then the tables if enabled.
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("Database already initialized")
                return

            try:
                self.engine = create_async_engine(self.database_url, **self._engine_options())
                self._register_event_listeners()

                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

                if self.settings.create_tables:
                    await self.create_tables()

                self._is_initialized = True
                logger.info("Database initialized successfully")

            except SQLAlchemyError as e:
                logger.exception(f"Failed to initialize database: {e}")
                raise StorageConnectionError(
                    f"Failed to initialize database: {e}", operation="initialize", cause=e
                ) from e

    def _register_event_listeners(self) -> None:
        """Register SQLAlchemy event listeners for connection management."""

        is_sqlite = self.settings.is_sqlite

        @event.listens_for(self.engine.sync_engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            """Handle new database connections."""
            if is_sqlite:
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
            logger.debug("New database connection established")

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for database operations.

        Example:
            async with db_manager.session() as session:
                record = await session.get(MonitorRecord, monitor_id)
        """
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def close(self) -> None:
        """
        Close database connections and cleanup resources.
        """
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")
        self.engine = None
        self._is_initialized = False


# ============================================================================
# SQL STORE
# ============================================================================

class SQLStore:
    """
    MonitorStore + IncidentStore + ChannelStore over SQLAlchemy.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db
        self._monitor_columns = set(monitor_columns())

    @asynccontextmanager
    async def _operation(self, operation: str, table: str) -> AsyncIterator[AsyncSession]:
        """Session scope that wraps driver errors into StorageExceptions."""
        try:
            async with self.db.session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"[SQLStore] {operation} on {table} failed: {e}")
            if isinstance(e, DBAPIError) and e.connection_invalidated:
                raise StorageConnectionError(
                    f"{operation} failed: {e}", operation=operation, table=table, cause=e
                ) from e
            raise StorageQueryError(
                f"{operation} failed: {e}", operation=operation, table=table, cause=e
            ) from e

    def _checked_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - self._monitor_columns
        if unknown:
            raise StorageQueryError(
                f"Unknown monitor fields: {', '.join(sorted(unknown))}",
                operation="update",
                table=MonitorRecord.__tablename__,
            )
        return fields

    # ------------------------------------------------------------------
    # MONITORS
    # ------------------------------------------------------------------

    async def create_monitor(self, snapshot: MonitorSnapshot) -> MonitorSnapshot:
        """Insert a monitor. Passive monitors without a token get one."""
        monitor_type = MonitorType.resolve(snapshot.type)
        if monitor_type is not None and monitor_type.is_passive and not snapshot.heartbeat_token:
            snapshot = snapshot.with_changes(heartbeat_token=generate_token())

        values = {
            key: value for key, value in asdict(snapshot).items()
            if key in self._monitor_columns and value is not None
        }
        async with self._operation("create_monitor", "monitors") as session:
            record = MonitorRecord(**values)
            session.add(record)
            await session.flush()
            return record.to_snapshot()

    async def list_active_monitors(self) -> List[MonitorSnapshot]:
        async with self._operation("list_active_monitors", "monitors") as session:
            result = await session.execute(
                select(MonitorRecord).where(MonitorRecord.active.is_(True))
            )
            return [record.to_snapshot() for record in result.scalars().all()]

    async def get_monitor(self, monitor_id: str) -> Optional[MonitorSnapshot]:
        async with self._operation("get_monitor", "monitors") as session:
            record = await session.get(MonitorRecord, monitor_id)
            return record.to_snapshot() if record else None

    async def _update_monitor(self, operation: str, monitor_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        values = self._checked_fields(fields)
        async with self._operation(operation, "monitors") as session:
            result = await session.execute(
                update(MonitorRecord).where(MonitorRecord.id == monitor_id).values(**values)
            )
        if result.rowcount == 0:
            logger.debug(f"[SQLStore] {operation}: monitor {monitor_id} no longer exists")

    async def update_monitor_status(self, monitor_id: str, fields: Dict[str, Any]) -> None:
        await self._update_monitor("update_monitor_status", monitor_id, fields)

    async def update_monitor_fields(self, monitor_id: str, fields: Dict[str, Any]) -> None:
        await self._update_monitor("update_monitor_fields", monitor_id, fields)

    async def set_current_incident(self, monitor_id: str, incident_id: Optional[str]) -> None:
        await self._update_monitor(
            "set_current_incident", monitor_id, {"current_incident_id": incident_id}
        )

    async def find_by_token(self, token: str, monitor_type: str) -> Optional[MonitorSnapshot]:
        async with self._operation("find_by_token", "monitors") as session:
            record = await session.scalar(
                select(MonitorRecord).where(
                    MonitorRecord.heartbeat_token == token,
                    MonitorRecord.type == monitor_type,
                    MonitorRecord.active.is_(True),
                )
            )
            return record.to_snapshot() if record else None

    # ------------------------------------------------------------------
    # HISTORY
    # ------------------------------------------------------------------

    async def append_history(self, record: HistoryRecord) -> None:
        async with self._operation("append_history", "monitor_history") as session:
            session.add(MonitorHistoryRecord(
                monitor_id=record.monitor_id,
                success=record.success,
                status_code=record.status_code,
                response_ms=record.response_ms,
                error=record.error,
                checked_at=record.checked_at,
            ))

    async def list_history(self, monitor_id: str, limit: int = 100) -> List[HistoryRecord]:
        """Most recent history rows first."""
        async with self._operation("list_history", "monitor_history") as session:
            result = await session.execute(
                select(MonitorHistoryRecord)
                .where(MonitorHistoryRecord.monitor_id == monitor_id)
                .order_by(MonitorHistoryRecord.checked_at.desc(), MonitorHistoryRecord.id.desc())
                .limit(limit)
            )
            return [
                HistoryRecord(
                    monitor_id=row.monitor_id,
                    success=row.success,
                    response_ms=row.response_ms,
                    checked_at=TimeHelper.ensure_utc(row.checked_at),
                    status_code=row.status_code,
                    error=row.error,
                )
                for row in result.scalars().all()
            ]

    # ------------------------------------------------------------------
    # INCIDENTS
    # ------------------------------------------------------------------

    async def create_incident(self, fields: Dict[str, Any]) -> Incident:
        values = dict(fields)
        values["timeline"] = [
            entry.to_dict() if isinstance(entry, TimelineEntry) else entry
            for entry in values.get("timeline", [])
        ]
        async with self._operation("create_incident", "incidents") as session:
            record = IncidentRecord(**values)
            session.add(record)
            await session.flush()
            return record.to_incident()

    async def get_incident(self, incident_id: str) -> Optional[Incident]:
        async with self._operation("get_incident", "incidents") as session:
            record = await session.get(IncidentRecord, incident_id)
            return record.to_incident() if record else None

    async def resolve_incident(self, incident_id: str, resolved_at: datetime, message: str) -> Incident:
        async with self._operation("resolve_incident", "incidents") as session:
            record = await session.get(IncidentRecord, incident_id)
            if record is None:
                raise RecordNotFoundError(
                    f"Incident {incident_id} not found",
                    entity_type="Incident",
                    entity_id=incident_id,
                )
            incident = record.to_incident()
            if not incident.is_resolved:
                incident.resolve(resolved_at, message)
                record.apply(incident)
            return incident

    async def append_timeline(self, incident_id: str, entry: TimelineEntry) -> None:
        async with self._operation("append_timeline", "incidents") as session:
            record = await session.get(IncidentRecord, incident_id)
            if record is None:
                raise RecordNotFoundError(
                    f"Incident {incident_id} not found",
                    entity_type="Incident",
                    entity_id=incident_id,
                )
            record.timeline = list(record.timeline or []) + [entry.to_dict()]

    # ------------------------------------------------------------------
    # ALERT CHANNELS
    # ------------------------------------------------------------------

    async def create_channel(self, channel: AlertChannel) -> AlertChannel:
        values = {key: value for key, value in asdict(channel).items() if value is not None}
        async with self._operation("create_channel", "alert_channels") as session:
            record = AlertChannelRecord(**values)
            session.add(record)
            await session.flush()
            return record.to_channel()

    async def list_channels(self, team_id: str, event: str) -> List[AlertChannel]:
        async with self._operation("list_channels", "alert_channels") as session:
            result = await session.execute(
                select(AlertChannelRecord).where(
                    AlertChannelRecord.team_id == team_id,
                    AlertChannelRecord.enabled.is_(True),
                )
            )
            channels = [record.to_channel() for record in result.scalars().all()]
        # JSON filtering differs per dialect; the subscription check is done here
        return [channel for channel in channels if channel.wants(event)]

    async def record_channel_success(self, channel_id: str, at: datetime) -> None:
        async with self._operation("record_channel_success", "alert_channels") as session:
            await session.execute(
                update(AlertChannelRecord)
                .where(AlertChannelRecord.id == channel_id)
                .values(
                    last_alert_at=at,
                    alerts_sent=AlertChannelRecord.alerts_sent + 1,
                    last_error=None,
                )
            )

    async def record_channel_error(self, channel_id: str, error: str) -> None:
        async with self._operation("record_channel_error", "alert_channels") as session:
            await session.execute(
                update(AlertChannelRecord)
                .where(AlertChannelRecord.id == channel_id)
                .values(last_error=error)
            )
