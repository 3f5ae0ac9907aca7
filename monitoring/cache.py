"""
============================================================================
UPTIME ENGINE - SCHEDULING CACHE
============================================================================
In-memory map of monitor id → CachedScheduleEntry. It answers "what is
due right now" without touching storage, and tracks each monitor's last
status and failure streak between checks.

The cache is an explicit object owned by the runner; it is rebuilt from
storage on startup. CRUD hooks may call it from other threads, so every
access to an entry happens under that entry's lock. Lock creation is
guarded by a registry lock, and a key keeps its lock for the life of the
cache so concurrent callers always contend on the same lock object.
============================================================================
"""

import threading
import time
from typing import Dict, List, Optional

from config.constants import MIN_INTERVAL_SEC, MonitorStatus
from exceptions import InvalidIntervalError
from monitoring.models import CachedScheduleEntry, MonitorSnapshot, TransitionInfo
from utils.logger import get_logger


logger = get_logger("ScheduleCache")


def compute_transition(previous_status: str, previous_failures: int, success: bool) -> TransitionInfo:
    """
    Apply one check outcome to a (status, failures) pair.

    Success resets the failure streak, failure extends it by one.
    """
    if success:
        return TransitionInfo(previous_status, MonitorStatus.UP.value, 0)
    return TransitionInfo(previous_status, MonitorStatus.DOWN.value, max(0, previous_failures) + 1)


class ScheduleCache:
    """
    Thread-safe scheduling cache.

    All times are epoch seconds. ``now`` arguments default to
    ``time.time()`` and exist so tests can drive the clock.
    """

    def __init__(self):
        self._entries: Dict[str, CachedScheduleEntry] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # LOCKING
    # ------------------------------------------------------------------

    def _lock_for(self, monitor_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(monitor_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[monitor_id] = lock
            return lock

    def _snapshot_entries(self) -> List[CachedScheduleEntry]:
        with self._registry_lock:
            return list(self._entries.values())

    def _snapshot_ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._entries)

    @staticmethod
    def _fresh_entry(snapshot: MonitorSnapshot, now: float) -> CachedScheduleEntry:
        if snapshot.interval_sec < MIN_INTERVAL_SEC:
            raise InvalidIntervalError(
                f"Monitor {snapshot.id} interval {snapshot.interval_sec}s is below {MIN_INTERVAL_SEC}s",
                interval=snapshot.interval_sec,
                min_interval=MIN_INTERVAL_SEC,
            )
        return CachedScheduleEntry(
            monitor_id=snapshot.id,
            team_id=snapshot.team_id,
            snapshot=snapshot,
            next_run_at=now,
        )

    # ------------------------------------------------------------------
    # MUTATIONS
    # ------------------------------------------------------------------

    def add(self, snapshot: MonitorSnapshot, now: Optional[float] = None) -> None:
        """Schedule an active monitor to run immediately, state reset to pending."""
        if not snapshot.active:
            logger.debug(f"[Cache] Monitor {snapshot.id} is inactive, not scheduling")
            return

        entry = self._fresh_entry(snapshot, time.time() if now is None else now)
        with self._lock_for(snapshot.id):
            with self._registry_lock:
                self._entries[snapshot.id] = entry

        logger.debug(f"[Cache] Added monitor {snapshot.id} ({snapshot.name})")

    def restore(self, snapshot: MonitorSnapshot, now: Optional[float] = None) -> None:
        """
        Schedule a monitor loaded at startup, due immediately, carrying
        its stored status and failure streak. Restarting while a monitor
        is down must not look like a fresh first failure.
        """
        if not snapshot.active:
            return

        entry = self._fresh_entry(snapshot, time.time() if now is None else now)
        entry.last_status = snapshot.last_status or MonitorStatus.PENDING.value
        entry.consecutive_failures = max(0, snapshot.consecutive_failures or 0)
        with self._lock_for(snapshot.id):
            with self._registry_lock:
                self._entries[snapshot.id] = entry

    def update(self, snapshot: MonitorSnapshot, now: Optional[float] = None) -> None:
        """
        Replace the snapshot, keeping next_run_at, status, response time
        and failure streak. An inactive snapshot removes the entry; an
        unknown id is added.
        """
        if not snapshot.active:
            self.remove(snapshot.id)
            return

        if snapshot.interval_sec < MIN_INTERVAL_SEC:
            raise InvalidIntervalError(
                f"Monitor {snapshot.id} interval {snapshot.interval_sec}s is below {MIN_INTERVAL_SEC}s",
                interval=snapshot.interval_sec,
                min_interval=MIN_INTERVAL_SEC,
            )

        with self._lock_for(snapshot.id):
            entry = self._entries.get(snapshot.id)
            if entry is None:
                with self._registry_lock:
                    self._entries[snapshot.id] = self._fresh_entry(
                        snapshot, time.time() if now is None else now
                    )
                return
            entry.snapshot = snapshot
            entry.team_id = snapshot.team_id
            entry.active = True

    def remove(self, monitor_id: str) -> bool:
        """Delete an entry. Returns True if something was removed."""
        with self._lock_for(monitor_id):
            with self._registry_lock:
                removed = self._entries.pop(monitor_id, None) is not None

        if removed:
            logger.debug(f"[Cache] Removed monitor {monitor_id}")
        return removed

    def pause(self, monitor_id: str) -> bool:
        """Keep the entry but stop it from being due."""
        with self._lock_for(monitor_id):
            entry = self._entries.get(monitor_id)
            if entry is None:
                return False
            entry.active = False
            return True

    def resume(self, snapshot: MonitorSnapshot, now: Optional[float] = None) -> None:
        """Re-schedule with fresh state (pending, no failures, due now)."""
        self.add(snapshot.with_changes(active=True), now=now)

    def record_result(
        self,
        monitor_id: str,
        success: bool,
        response_ms: Optional[int],
        next_run_at: float,
    ) -> Optional[TransitionInfo]:
        """
        Store a check outcome.

        Returns the status transition, or None if the monitor was removed
        while its check was in flight.
        """
        with self._lock_for(monitor_id):
            entry = self._entries.get(monitor_id)
            if entry is None:
                return None

            transition = compute_transition(entry.last_status, entry.consecutive_failures, success)
            entry.last_status = transition.new_status
            entry.consecutive_failures = transition.consecutive_failures
            entry.last_response_ms = response_ms
            entry.next_run_at = next_run_at
            return transition

    # ------------------------------------------------------------------
    # QUERIES
    # ------------------------------------------------------------------

    def due_now(self, now: Optional[float] = None) -> List[CachedScheduleEntry]:
        """Copies of active entries whose next_run_at has passed."""
        now = time.time() if now is None else now
        due = []
        for monitor_id in self._snapshot_ids():
            with self._lock_for(monitor_id):
                entry = self._entries.get(monitor_id)
                if entry is not None and entry.active and entry.next_run_at <= now:
                    due.append(entry.copy())
        return due

    def get(self, monitor_id: str) -> Optional[CachedScheduleEntry]:
        with self._lock_for(monitor_id):
            entry = self._entries.get(monitor_id)
            return entry.copy() if entry else None

    def stats(self) -> Dict[str, int]:
        entries = self._snapshot_entries()
        return {
            "total": len(entries),
            "active": sum(1 for e in entries if e.active),
            "up": sum(1 for e in entries if e.last_status == MonitorStatus.UP.value),
            "down": sum(1 for e in entries if e.last_status == MonitorStatus.DOWN.value),
            "pending": sum(1 for e in entries if e.last_status == MonitorStatus.PENDING.value),
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, monitor_id: object) -> bool:
        return monitor_id in self._entries
