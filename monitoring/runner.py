"""
============================================================================
UPTIME ENGINE - CHECK RUNNER (IN-PROCESS MODE)
============================================================================
Drives checks from the scheduling cache.

Architecture
------------
┌─────────────────────────────────────────────────────────────────────┐
│                          CheckRunner                                │
│                                                                     │
│  _tick_loop() ── every tick_interval ──► tick()                     │
│       │                                    │                        │
│       │          sweep running? ── yes ──► skipped_ticks += 1       │
│       │                                    │ no                     │
│       ▼                                    ▼                        │
│  run_sweep()  ── due_now() ── batches of batch_size ── gather()     │
│                                                │                    │
│                     _run_one(entry)  ◄─────────┘                    │
│                       ├─ get_monitor()        fresh snapshot        │
│                       ├─ dispatcher.execute() never raises          │
│                       ├─ cache.record_result()                      │
│                       └─ CheckProcessor.process()                   │
│                             ├─ update_monitor_status()              │
│                             ├─ append_history()                     │
│                             └─ IncidentStateMachine.handle()        │
└─────────────────────────────────────────────────────────────────────┘

A sweep finishes before the next one starts, so a monitor's checks
never overlap. ``stop()`` waits for the sweep in flight.
============================================================================
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from config.settings import SchedulerSettings
from monitoring.cache import ScheduleCache
from monitoring.dispatcher import CheckDispatcher
from monitoring.interfaces import MonitorStore
from monitoring.models import (
    CachedScheduleEntry,
    CheckResult,
    HistoryRecord,
    MonitorSnapshot,
    TransitionInfo,
)
from monitoring.state_machine import IncidentStateMachine, TransitionDecision
from utils.helpers import BatchProcessor, TimeHelper
from utils.logger import get_logger


logger = get_logger("Runner")


# ============================================================================
# SHARED POST-CHECK BOOKKEEPING
# ============================================================================

class CheckProcessor:
    """
    Persists one check outcome and runs the incident state machine.

    Used by both the in-process runner and the queue worker.

    Parameters
    ----------
    monitors : MonitorStore
        Status and history persistence.
    state_machine : IncidentStateMachine
        Applies incident and alert rules.
    strict : bool
        When True persistence errors propagate (queue mode retries the
        job); otherwise they are logged and swallowed so one monitor
        cannot stall a sweep.
    now : callable, optional
        Wall clock returning an aware UTC datetime.
    """

    def __init__(
        self,
        monitors: MonitorStore,
        state_machine: IncidentStateMachine,
        strict: bool = False,
        now: Callable[[], datetime] = TimeHelper.get_utc_now,
    ):
        self.monitors = monitors
        self.state_machine = state_machine
        self.strict = strict
        self.now = now
        self.errors = 0

    @staticmethod
    def status_fields(
        transition: TransitionInfo,
        result: CheckResult,
        checked_at: datetime,
    ) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            "last_status": transition.new_status,
            "last_checked": checked_at,
            "last_response_ms": result.response_ms,
            "last_error": result.error,
            "consecutive_failures": transition.consecutive_failures,
        }
        ssl = result.ssl
        if ssl is not None and ssl.days_remaining is not None:
            fields.update({
                "ssl_expires_at": ssl.expires_at,
                "ssl_days_remaining": ssl.days_remaining,
                "ssl_issuer": ssl.issuer,
            })
        return fields

    async def process(
        self,
        snapshot: MonitorSnapshot,
        transition: TransitionInfo,
        result: CheckResult,
    ) -> Optional[TransitionDecision]:
        """Persist status and history, then evaluate incidents and alerts."""
        checked_at = self.now()
        try:
            await self.monitors.update_monitor_status(
                snapshot.id, self.status_fields(transition, result, checked_at)
            )
            await self.monitors.append_history(HistoryRecord(
                monitor_id=snapshot.id,
                success=result.success,
                response_ms=result.response_ms,
                checked_at=checked_at,
                status_code=result.status_code,
                error=result.error,
            ))

            status_emoji = "🟢" if result.success else "🔴"
            logger.debug(
                f"{status_emoji} {snapshot.name} - {transition.new_status.upper()} "
                f"({result.response_ms}ms)" + (f" - {result.error}" if result.error else "")
            )

            return await self.state_machine.handle(snapshot, transition, result)

        except Exception as e:
            self.errors += 1
            if self.strict:
                raise
            logger.opt(exception=e).error(
                f"[Runner] Failed to persist check result for monitor {snapshot.id}: {e}"
            )
            return None


# ============================================================================
# RUNNER
# ============================================================================

class CheckRunner:
    """
    In-process scheduler: a 1 s tick loop over the scheduling cache.

    Lifecycle
    ---------
    1.  ``await runner.load_from_storage()``  seeds the cache
    2.  ``await runner.start()``              launches the tick loop
    3.  ``await runner.stop()``               waits for the sweep in flight
    """

    def __init__(
        self,
        cache: ScheduleCache,
        dispatcher: CheckDispatcher,
        monitors: MonitorStore,
        processor: CheckProcessor,
        settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or SchedulerSettings()
        self.cache = cache
        self.dispatcher = dispatcher
        self.monitors = monitors
        self.processor = processor
        self.clock = clock

        self._tick_interval = self.settings.tick_interval
        self._batch_size = self.settings.batch_size

        # --- lifecycle ---
        self._running = False
        self._tick_task: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None
        self._sweep_in_progress = False

        # --- counters ---
        self.skipped_ticks = 0
        self.sweeps = 0
        self.checks_run = 0

        logger.info(
            f"CheckRunner created, tick_interval={self._tick_interval}s, "
            f"batch_size={self._batch_size}"
        )

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the tick loop."""
        if self._running:
            logger.warning("CheckRunner is already running")
            return
        self._running = True
        self._tick_task = asyncio.create_task(self._tick_loop())
        logger.info("✓ CheckRunner started, tick loop is active")

    async def stop(self) -> None:
        """Wait for the sweep in flight, then cancel the timer."""
        self._running = False

        if self._sweep_task and not self._sweep_task.done():
            logger.info("[Runner] Waiting for in-flight sweep to finish")
            await self._sweep_task
        self._sweep_task = None

        if self._tick_task:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None

        logger.info("✓ CheckRunner stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def sweep_in_progress(self) -> bool:
        return self._sweep_in_progress

    # ------------------------------------------------------------------
    # TICK LOOP
    # ------------------------------------------------------------------

    async def _tick_loop(self) -> None:
        logger.info("[Runner] Tick loop started")
        while self._running:
            self.tick()
            try:
                await asyncio.sleep(self._tick_interval)
            except asyncio.CancelledError:
                break
        logger.info("[Runner] Tick loop exited")

    def tick(self) -> Optional[asyncio.Task]:
        """
        Launch a sweep unless one is still running. Overlapping ticks
        are coalesced, not queued.
        """
        if self._sweep_in_progress:
            self.skipped_ticks += 1
            logger.debug(f"[Runner] Sweep still running, tick skipped ({self.skipped_ticks} total)")
            return None

        self._sweep_in_progress = True
        self._sweep_task = asyncio.create_task(self._guarded_sweep())
        return self._sweep_task

    async def _guarded_sweep(self) -> None:
        try:
            await self.run_sweep()
        except Exception as e:
            logger.opt(exception=e).error(f"[Runner] Unhandled error in sweep: {e}")
        finally:
            self._sweep_in_progress = False

    # ------------------------------------------------------------------
    # SWEEP
    # ------------------------------------------------------------------

    async def run_sweep(self, now: Optional[float] = None) -> int:
        """
        Run every due check, ``batch_size`` at a time.

        Returns the number of checks dispatched.
        """
        now = self.clock() if now is None else now
        due = self.cache.due_now(now)
        if not due:
            return 0

        logger.debug(f"[Runner] Sweep found {len(due)} monitors to check")

        results = await BatchProcessor.process_in_batches(due, self._batch_size, self._run_one)

        # _run_one handles its own errors; anything here is a bug
        for entry, outcome in zip(due, results):
            if isinstance(outcome, BaseException):
                logger.opt(exception=outcome).error(
                    f"[Runner] Check for monitor {entry.monitor_id} raised: {outcome}"
                )

        self.sweeps += 1
        self.checks_run += len(due)
        return len(due)

    async def _fresh_snapshot(self, entry: CachedScheduleEntry) -> Optional[MonitorSnapshot]:
        try:
            snapshot = await self.monitors.get_monitor(entry.monitor_id)
        except Exception as e:
            logger.warning(
                f"[Runner] Could not re-read monitor {entry.monitor_id}, "
                f"using cached snapshot: {e}"
            )
            return entry.snapshot

        if snapshot is None or not snapshot.active:
            logger.info(f"[Runner] Monitor {entry.monitor_id} is gone or inactive, unscheduling")
            self.cache.remove(entry.monitor_id)
            return None
        return snapshot

    async def _run_one(self, entry: CachedScheduleEntry) -> Optional[TransitionInfo]:
        snapshot = await self._fresh_snapshot(entry)
        if snapshot is None:
            return None

        result = await self.dispatcher.execute(snapshot)

        transition = self.cache.record_result(
            snapshot.id,
            result.success,
            result.response_ms,
            next_run_at=self.clock() + snapshot.interval_sec,
        )
        if transition is None:
            logger.debug(f"[Runner] Monitor {snapshot.id} removed while its check was in flight")
            return None

        await self.processor.process(snapshot, transition, result)
        return transition

    # ------------------------------------------------------------------
    # CRUD HOOKS
    # ------------------------------------------------------------------

    async def load_from_storage(self) -> int:
        """Seed the cache with every valid active monitor. Returns how many."""
        monitors = await self.monitors.list_active_monitors()
        loaded = 0
        for snapshot in monitors:
            result = self.dispatcher.validate(snapshot)
            if not result:
                logger.warning(f"[Runner] Skipping monitor {snapshot.id}: {result.message}")
                continue
            self.cache.restore(snapshot)
            loaded += 1

        logger.info(f"[Runner] Loaded {loaded}/{len(monitors)} active monitors into the cache")
        return loaded

    def add_monitor(self, snapshot: MonitorSnapshot) -> None:
        self.dispatcher.ensure_valid(snapshot)
        self.cache.add(snapshot)

    def update_monitor(self, snapshot: MonitorSnapshot) -> None:
        self.dispatcher.ensure_valid(snapshot)
        self.cache.update(snapshot)

    def remove_monitor(self, monitor_id: str) -> bool:
        return self.cache.remove(monitor_id)

    def pause_monitor(self, monitor_id: str) -> bool:
        return self.cache.pause(monitor_id)

    def resume_monitor(self, snapshot: MonitorSnapshot) -> None:
        self.dispatcher.ensure_valid(snapshot)
        self.cache.resume(snapshot)

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        return {
            "mode": "local",
            "is_running": self._running,
            "sweep_in_progress": self._sweep_in_progress,
            "sweeps": self.sweeps,
            "checks_run": self.checks_run,
            "skipped_ticks": self.skipped_ticks,
            "persistence_errors": self.processor.errors,
            "cache": self.cache.stats(),
            "dispatcher": self.dispatcher.stats(),
        }
