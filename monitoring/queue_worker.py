"""
============================================================================
UPTIME ENGINE - QUEUE-BACKED WORKER
============================================================================
Alternative to the tick loop: every monitor owns exactly one job chain
on a delayed job queue.

    start()
      └─ enqueue(CheckJob(id), delay=random(0, stagger_max))   per monitor
    consumer × concurrency
      └─ get() → handle_job()
            ├─ get_monitor()          fresh state, skip if gone/inactive
            ├─ dispatcher.execute()
            ├─ compute_transition()   from the stored status and streak
            └─ CheckProcessor(strict).process()
         on error   → enqueue(attempt + 1, delay=backoff_base * 2**(attempt-1))
         otherwise  → enqueue(next check, delay=interval_sec)

After the last attempt fails a QueueJobError is logged and the chain
continues with the next regular check.

InMemoryJobQueue is non-durable: pending jobs are lost on restart and
rebuilt by start().
============================================================================
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Set, runtime_checkable

from config.settings import QueueSettings
from exceptions import QueueJobError
from monitoring.cache import compute_transition
from monitoring.dispatcher import CheckDispatcher
from monitoring.interfaces import MonitorStore
from monitoring.models import MonitorSnapshot
from monitoring.runner import CheckProcessor
from utils.logger import get_logger


logger = get_logger("QueueWorker")


# ============================================================================
# JOB QUEUE
# ============================================================================

@dataclass(frozen=True)
class CheckJob:
    monitor_id: str
    attempt: int = 1


@runtime_checkable
class JobQueue(Protocol):
    """Delayed job queue holding at most one pending job per monitor."""

    async def enqueue(self, job: CheckJob, delay: float = 0.0) -> None: ...

    async def get(self) -> CheckJob: ...

    async def remove(self, monitor_id: str) -> bool: ...

    async def close(self) -> None: ...


class InMemoryJobQueue:
    """
    asyncio implementation of JobQueue.

    Delayed jobs wait on ``loop.call_later`` handles and move to a ready
    queue when due. Enqueueing for a monitor that already has a pending
    job replaces it.
    """

    def __init__(self):
        self._ready: asyncio.Queue = asyncio.Queue()
        self._ready_ids: Set[str] = set()
        self._delayed: Dict[str, asyncio.TimerHandle] = {}
        self._closed = False

    async def enqueue(self, job: CheckJob, delay: float = 0.0) -> None:
        if self._closed:
            return

        handle = self._delayed.pop(job.monitor_id, None)
        if handle is not None:
            handle.cancel()

        if delay <= 0:
            self._release(job)
            return

        loop = asyncio.get_running_loop()
        self._delayed[job.monitor_id] = loop.call_later(delay, self._release, job)

    def _release(self, job: CheckJob) -> None:
        self._delayed.pop(job.monitor_id, None)
        if self._closed or job.monitor_id in self._ready_ids:
            return
        self._ready_ids.add(job.monitor_id)
        self._ready.put_nowait(job)

    async def get(self) -> CheckJob:
        job = await self._ready.get()
        self._ready_ids.discard(job.monitor_id)
        return job

    async def remove(self, monitor_id: str) -> bool:
        """Cancel a delayed job. A job already ready is skipped by the worker."""
        handle = self._delayed.pop(monitor_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    async def close(self) -> None:
        self._closed = True
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()

    @property
    def delayed_count(self) -> int:
        return len(self._delayed)

    @property
    def ready_count(self) -> int:
        return self._ready.qsize()


# ============================================================================
# WORKER
# ============================================================================

class QueueWorker:
    """
    Consumes check jobs with ``concurrency`` parallel consumers.

    Parameters
    ----------
    queue : JobQueue
        Where job chains live.
    dispatcher : CheckDispatcher
        Runs the checks.
    monitors : MonitorStore
        Source of fresh monitor state.
    processor : CheckProcessor
        Must be strict so persistence errors reach the retry logic.
    settings : QueueSettings, optional
        Attempts, backoff, stagger and concurrency.
    rng : random.Random, optional
        Source of the bootstrap stagger.
    """

    def __init__(
        self,
        queue: JobQueue,
        dispatcher: CheckDispatcher,
        monitors: MonitorStore,
        processor: CheckProcessor,
        settings: Optional[QueueSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or QueueSettings()
        self.queue = queue
        self.dispatcher = dispatcher
        self.monitors = monitors
        self.processor = processor
        self.rng = rng or random.Random()

        if not processor.strict:
            logger.warning("QueueWorker got a non-strict CheckProcessor, persistence errors will not be retried")

        # --- lifecycle ---
        self._running = False
        self._consumers: List[asyncio.Task] = []

        # --- counters ---
        self.completed = 0
        self.retried = 0
        self.failed = 0
        self.skipped = 0

        logger.info(
            f"QueueWorker created, concurrency={self.settings.concurrency}, "
            f"attempts={self.settings.attempts}, backoff_base={self.settings.backoff_base}s"
        )

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> int:
        """Enqueue every valid active monitor and start the consumers."""
        if self._running:
            logger.warning("QueueWorker is already running")
            return 0
        self._running = True

        monitors = await self.monitors.list_active_monitors()
        loaded = 0
        for snapshot in monitors:
            result = self.dispatcher.validate(snapshot)
            if not result:
                logger.warning(f"[QueueWorker] Skipping monitor {snapshot.id}: {result.message}")
                continue
            # Stagger initial checks to avoid a thundering herd
            delay = self.rng.uniform(0, self.settings.stagger_max)
            await self.queue.enqueue(CheckJob(snapshot.id), delay=delay)
            loaded += 1

        self._consumers = [
            asyncio.create_task(self._consume(n))
            for n in range(self.settings.concurrency)
        ]
        logger.info(
            f"✓ QueueWorker started, {loaded}/{len(monitors)} monitors enqueued, "
            f"{len(self._consumers)} consumers"
        )
        return loaded

    async def stop(self) -> None:
        """Close the queue and let consumers finish their current job."""
        self._running = False
        await self.queue.close()
        if self._consumers:
            await asyncio.gather(*self._consumers, return_exceptions=True)
            self._consumers = []
        logger.info("✓ QueueWorker stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # CONSUMER LOOP
    # ------------------------------------------------------------------

    async def _consume(self, number: int) -> None:
        logger.debug(f"[QueueWorker] Consumer {number} started")
        while self._running:
            try:
                job = await asyncio.wait_for(self.queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue  # loop back and check self._running

            try:
                await self.handle_job(job)
            except Exception as e:
                logger.opt(exception=e).error(
                    f"[QueueWorker] Unhandled error for monitor {job.monitor_id}: {e}"
                )
        logger.debug(f"[QueueWorker] Consumer {number} exited")

    # ------------------------------------------------------------------
    # JOB HANDLING
    # ------------------------------------------------------------------

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after ``attempt`` failed."""
        return self.settings.backoff_base * 2 ** (attempt - 1)

    async def handle_job(self, job: CheckJob) -> bool:
        """
        Run one job. Returns True when it completed, False when it was
        rescheduled for a retry or gave up.
        """
        try:
            await self.process_job(job)
        except Exception as e:
            if job.attempt < self.settings.attempts:
                delay = self.backoff_delay(job.attempt)
                self.retried += 1
                logger.warning(
                    f"[QueueWorker] Attempt {job.attempt}/{self.settings.attempts} for monitor "
                    f"{job.monitor_id} failed: {e}. Retrying in {delay:.1f}s"
                )
                await self.queue.enqueue(CheckJob(job.monitor_id, job.attempt + 1), delay=delay)
                return False

            self.failed += 1
            error = QueueJobError(
                f"Check job for monitor {job.monitor_id} failed after {job.attempt} attempts",
                monitor_id=job.monitor_id,
                attempts=job.attempt,
                cause=e,
            )
            logger.opt(exception=e).error(f"[QueueWorker] {error.log_format()}")
            await self._schedule_next(job.monitor_id)
            return False

        self.completed += 1
        await self._schedule_next(job.monitor_id)
        return True

    async def process_job(self, job: CheckJob) -> Optional[MonitorSnapshot]:
        """Check one monitor against its stored state. Errors propagate."""
        snapshot = await self.monitors.get_monitor(job.monitor_id)
        if snapshot is None or not snapshot.active:
            self.skipped += 1
            logger.info(f"[QueueWorker] Monitor {job.monitor_id} is gone or inactive, skipping")
            return None

        result = await self.dispatcher.execute(snapshot)
        transition = compute_transition(
            snapshot.last_status, snapshot.consecutive_failures, result.success
        )
        await self.processor.process(snapshot, transition, result)
        return snapshot

    async def _schedule_next(self, monitor_id: str) -> None:
        try:
            snapshot = await self.monitors.get_monitor(monitor_id)
        except Exception as e:
            logger.error(f"[QueueWorker] Failed to schedule next check for monitor {monitor_id}: {e}")
            return

        if snapshot is not None and snapshot.active:
            await self.queue.enqueue(CheckJob(monitor_id), delay=snapshot.interval_sec)

    # ------------------------------------------------------------------
    # CRUD HOOKS
    # ------------------------------------------------------------------

    async def add_monitor(self, snapshot: MonitorSnapshot) -> None:
        self.dispatcher.ensure_valid(snapshot)
        if snapshot.active:
            await self.queue.enqueue(CheckJob(snapshot.id), delay=0)

    async def remove_monitor(self, monitor_id: str) -> bool:
        return await self.queue.remove(monitor_id)

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "mode": "queue",
            "is_running": self._running,
            "consumers": len(self._consumers),
            "completed": self.completed,
            "retried": self.retried,
            "failed": self.failed,
            "skipped": self.skipped,
            "dispatcher": self.dispatcher.stats(),
        }
        if isinstance(self.queue, InMemoryJobQueue):
            stats["delayed"] = self.queue.delayed_count
            stats["ready"] = self.queue.ready_count
        return stats
