"""
============================================================================
UPTIME ENGINE - MAIN APPLICATION
============================================================================
Wires every layer of the engine together:

    Layer 1 - Core & Storage
        • Settings (pydantic-settings)
        • SQLAlchemy async engine + SQLStore
        • Logging (loguru)

    Layer 2 - Monitoring
        • CheckDispatcher     - per-type check executors
        • IncidentStateMachine
        • AlertDispatcher     - cooldown gate + channel fan-out
        • CheckRunner (local tick loop) or QueueWorker (queue mode)

    Layer 3 - Inbound
        • EngineServer        - heartbeat / cronjob endpoints, /health

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize DatabaseManager (create tables if needed)
3.  Build alerting, state machine, dispatcher and the scheduler for the
    configured mode
4.  Start AlertDispatcher dispatch loop
5.  Load monitors and start CheckRunner / QueueWorker
6.  Start EngineServer (aiohttp, non-critical)

Shutdown Order (reverse)
-------------------------
On SIGINT or SIGTERM:
    stop server → stop scheduler (waits for in-flight checks) →
    stop alert dispatcher (drains queue) → close DB → exit
============================================================================
"""

import asyncio
import signal
import sys
from typing import Any, Dict, Optional, Union

from config.settings import SchedulerMode, Settings, get_settings
from database.manager import DatabaseManager, SQLStore
from monitoring.alerts import AlertDispatcher
from monitoring.cache import ScheduleCache
from monitoring.dispatcher import CheckDispatcher
from monitoring.passive import PassiveCheckService
from monitoring.queue_worker import InMemoryJobQueue, QueueWorker
from monitoring.runner import CheckProcessor, CheckRunner
from monitoring.server import EngineServer
from monitoring.state_machine import IncidentStateMachine
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class UptimeEngineApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order. No module-level singletons besides the cached Settings.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.store: Optional[SQLStore] = None
        self.alert_dispatcher: Optional[AlertDispatcher] = None
        self.check_dispatcher: Optional[CheckDispatcher] = None
        self.scheduler: Optional[Union[CheckRunner, QueueWorker]] = None
        self.server: Optional[EngineServer] = None

        # --- lifecycle ---
        self._is_running = False
        self._shutdown_event = asyncio.Event()

    def _print_banner(self) -> None:
        logger.info("=" * 74)
        logger.info(f"  🚀 {self.settings.app_name} v{self.settings.app_version}")
        logger.info(
            f"  environment={self.settings.environment.value}, "
            f"mode={self.settings.scheduler.mode.value}"
        )
        logger.info("=" * 74)

    # ==================================================================
    # PHASE 1 - DATABASE
    # ==================================================================

    async def _init_database(self) -> bool:
        """Initialize the database manager and verify connectivity."""
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings.database)
            await self.db_manager.initialize()

            if not await self.db_manager.check_connection():
                logger.error("✗ Database connection check failed")
                return False

            self.store = SQLStore(self.db_manager)
            logger.info("  ✓ Database ready")
            return True

        except Exception as e:
            logger.exception(f"  ✗ Database init failed: {e}")
            return False

    # ==================================================================
    # PHASE 2 - MONITORING
    # ==================================================================

    async def _init_monitoring(self) -> bool:
        """Wire alerting, the state machine and the configured scheduler."""
        logger.info("── Phase 2: Monitoring ───────────────────────────")
        try:
            self.alert_dispatcher = AlertDispatcher(
                channels=self.store,
                settings=self.settings.alerts,
            )
            state_machine = IncidentStateMachine(
                monitors=self.store,
                incidents=self.store,
                alerts=self.alert_dispatcher,
            )
            self.check_dispatcher = CheckDispatcher(settings=self.settings.checks)

            if self.settings.scheduler.mode == SchedulerMode.QUEUE:
                self.scheduler = QueueWorker(
                    queue=InMemoryJobQueue(),
                    dispatcher=self.check_dispatcher,
                    monitors=self.store,
                    processor=CheckProcessor(self.store, state_machine, strict=True),
                    settings=self.settings.queue,
                )
            else:
                self.scheduler = CheckRunner(
                    cache=ScheduleCache(),
                    dispatcher=self.check_dispatcher,
                    monitors=self.store,
                    processor=CheckProcessor(self.store, state_machine),
                    settings=self.settings.scheduler,
                )

            logger.info(f"  ✓ {type(self.scheduler).__name__} and AlertDispatcher created")
            return True

        except Exception as e:
            logger.exception(f"  ✗ Monitoring init failed: {e}")
            return False

    # ==================================================================
    # PHASE 3 - INBOUND SERVER
    # ==================================================================

    async def _init_server(self) -> bool:
        logger.info("── Phase 3: Server ───────────────────────────────")
        if not self.settings.server.enabled:
            logger.info("  Server disabled")
            return True
        try:
            self.server = EngineServer(
                settings=self.settings.server,
                passive=PassiveCheckService(self.store),
                stats_provider=self.stats,
                app_name=self.settings.app_name,
                app_version=self.settings.app_version,
            )
            return True
        except Exception as e:
            logger.exception(f"  ✗ Server init failed: {e}")
            return False

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any critical phase fails.
        """
        self._print_banner()

        if not await self._init_database():
            return False

        if not await self._init_monitoring():
            return False

        if not await self._init_server():
            logger.warning("  ⚠ Server init failed, continuing without inbound endpoints")
            self.server = None

        logger.info("── Starting background services ───────────────────")

        await self.alert_dispatcher.start()

        if isinstance(self.scheduler, CheckRunner):
            await self.scheduler.load_from_storage()
        await self.scheduler.start()

        if self.server:
            try:
                await self.server.start()
            except OSError as e:
                logger.error(f"  ✗ Server failed to bind: {e}")
                self.server = None

        self._is_running = True

        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        logger.info("=" * 74)
        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order.
        Each step is wrapped in try/except so a failure in one subsystem
        doesn't prevent the others from cleaning up.
        """
        logger.info("=" * 74)
        logger.info("  SHUTTING DOWN …")
        logger.info("=" * 74)

        self._is_running = False

        # 1. Stop inbound server
        if self.server:
            try:
                await self.server.stop()
            except Exception as e:
                logger.error(f"  ✗ Server stop error: {e}")

        # 2. Stop scheduler (finish in-flight checks)
        if self.scheduler:
            try:
                await self.scheduler.stop()
            except Exception as e:
                logger.error(f"  ✗ Scheduler stop error: {e}")

        # 3. Stop alert dispatcher (drains queue)
        if self.alert_dispatcher:
            try:
                await self.alert_dispatcher.stop()
            except Exception as e:
                logger.error(f"  ✗ AlertDispatcher stop error: {e}")

        # 4. Close database connections
        if self.db_manager:
            try:
                await self.db_manager.close()
            except Exception as e:
                logger.error(f"  ✗ Database close error: {e}")

        logger.info("  ✓ SHUTDOWN COMPLETE")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run(self) -> None:
        """Block until a shutdown is requested."""
        await self._shutdown_event.wait()

    def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {}
        if self.scheduler:
            stats["scheduler"] = self.scheduler.stats()
        if self.alert_dispatcher:
            stats["alerts"] = self.alert_dispatcher.get_stats()
        return stats


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: UptimeEngineApplication) -> None:
    """
    Install SIGTERM / SIGINT handlers so that the engine shuts down
    gracefully even when killed by the OS.
    """
    loop = asyncio.get_running_loop()

    def _handle_signal() -> None:
        logger.info("  ⚡ Signal received, initiating graceful shutdown…")
        app.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except (NotImplementedError, OSError):
            # Not supported on Windows; KeyboardInterrupt still works
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main() -> int:
    """
    Async main: creates the app, starts it, and runs until shutdown.
    """
    settings = get_settings()
    setup_logging(settings.logging)

    app = UptimeEngineApplication(settings)
    _install_signal_handlers(app)

    if not await app.startup():
        logger.error("  ✗ Startup failed, exiting")
        await app.shutdown()
        return 1

    try:
        await app.run()
    except Exception as e:
        logger.exception(f"  ✗ Unhandled error in run: {e}")
    finally:
        await app.shutdown()
    return 0


def run() -> None:
    """Console script entry point."""
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
