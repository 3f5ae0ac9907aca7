from __future__ import annotations

import threading
import time

import pytest

from exceptions import InvalidIntervalError
from monitoring.cache import ScheduleCache, compute_transition
from tests.helpers import make_monitor


def test_add_rejects_interval_below_minimum() -> None:
    cache = ScheduleCache()
    with pytest.raises(InvalidIntervalError):
        cache.add(make_monitor(interval_sec=29), now=0.0)
    assert len(cache) == 0


def test_added_monitor_is_due_immediately_and_pending() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor("a"), now=100.0)

    due = cache.due_now(100.0)
    assert [e.monitor_id for e in due] == ["a"]
    assert due[0].last_status == "pending"
    assert due[0].consecutive_failures == 0


def test_inactive_monitor_is_not_added() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor(active=False), now=0.0)
    assert "m1" not in cache


def test_due_now_returns_copies() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor(), now=0.0)

    cache.due_now(0.0)[0].consecutive_failures = 99
    assert cache.get("m1").consecutive_failures == 0


def test_record_result_failure_streak_and_reset() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor(), now=0.0)

    first = cache.record_result("m1", False, 30, next_run_at=60.0)
    second = cache.record_result("m1", False, 30, next_run_at=120.0)
    assert (first.previous_status, first.new_status, first.consecutive_failures) == ("pending", "down", 1)
    assert (second.previous_status, second.new_status, second.consecutive_failures) == ("down", "down", 2)

    recovered = cache.record_result("m1", True, 12, next_run_at=180.0)
    assert recovered.new_status == "up"
    assert recovered.consecutive_failures == 0
    assert recovered.status_changed is True

    entry = cache.get("m1")
    assert entry.next_run_at == 180.0
    assert entry.last_response_ms == 12


def test_next_run_moves_into_the_future() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor(), now=0.0)
    cache.record_result("m1", True, 10, next_run_at=60.0)

    assert cache.due_now(59.0) == []
    assert len(cache.due_now(60.0)) == 1


def test_record_result_for_removed_monitor_returns_none() -> None:
    cache = ScheduleCache()
    assert cache.record_result("ghost", True, 1, next_run_at=0.0) is None


def test_update_keeps_runtime_state() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor(), now=0.0)
    cache.record_result("m1", False, 30, next_run_at=60.0)

    cache.update(make_monitor(name="Renamed", interval_sec=120), now=5.0)

    entry = cache.get("m1")
    assert entry.snapshot.name == "Renamed"
    assert entry.last_status == "down"
    assert entry.consecutive_failures == 1
    assert entry.next_run_at == 60.0


def test_update_with_inactive_snapshot_removes_entry() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor(), now=0.0)
    cache.update(make_monitor(active=False))
    assert "m1" not in cache


def test_update_unknown_id_adds_it() -> None:
    cache = ScheduleCache()
    cache.update(make_monitor("new"), now=7.0)
    assert cache.get("new").next_run_at == 7.0


def test_update_rejects_short_interval() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor(), now=0.0)
    with pytest.raises(InvalidIntervalError):
        cache.update(make_monitor(interval_sec=10))


def test_pause_then_resume_resets_state() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor(), now=0.0)
    cache.record_result("m1", False, 30, next_run_at=10.0)

    assert cache.pause("m1") is True
    assert cache.due_now(1_000.0) == []

    cache.resume(make_monitor(), now=500.0)
    entry = cache.get("m1")
    assert entry.active is True
    assert entry.last_status == "pending"
    assert entry.consecutive_failures == 0
    assert entry.next_run_at == 500.0


def test_pause_unknown_returns_false() -> None:
    assert ScheduleCache().pause("nope") is False


def test_restore_carries_stored_status() -> None:
    cache = ScheduleCache()
    cache.restore(make_monitor(last_status="down", consecutive_failures=4), now=3.0)

    entry = cache.get("m1")
    assert entry.last_status == "down"
    assert entry.consecutive_failures == 4
    assert entry.next_run_at == 3.0

    transition = cache.record_result("m1", False, 30, next_run_at=63.0)
    assert transition.previous_status == "down"
    assert transition.consecutive_failures == 5


def test_remove_and_stats() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor("a"), now=0.0)
    cache.add(make_monitor("b"), now=0.0)
    cache.record_result("a", True, 5, next_run_at=60.0)
    cache.record_result("b", False, 5, next_run_at=60.0)

    assert cache.stats() == {"total": 2, "active": 2, "up": 1, "down": 1, "pending": 0}
    assert cache.remove("a") is True
    assert cache.remove("a") is False
    assert cache.stats()["total"] == 1


def test_compute_transition_from_pending_is_not_a_change() -> None:
    transition = compute_transition("pending", 0, False)
    assert transition.new_status == "down"
    assert transition.status_changed is False


def test_remove_keeps_the_key_lock() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor("a"), now=0.0)
    lock = cache._lock_for("a")

    with lock:
        remover = threading.Thread(target=cache.remove, args=("a",))
        remover.start()
        time.sleep(0.05)

        # remove is parked on the entry lock; later callers must queue on the same one
        assert "a" in cache
        assert cache._lock_for("a") is lock
        assert cache._lock_for("a").acquire(blocking=False) is False

    remover.join(timeout=2)
    assert "a" not in cache
    assert cache._lock_for("a") is lock

    cache.add(make_monitor("a"), now=0.0)
    assert cache._lock_for("a") is lock


def test_due_now_skips_entries_removed_meanwhile() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor("a"), now=0.0)
    cache.add(make_monitor("b"), now=0.0)
    cache.remove("b")

    assert [e.monitor_id for e in cache.due_now(0.0)] == ["a"]


def test_concurrent_writers_do_not_lose_updates() -> None:
    cache = ScheduleCache()
    snapshot = make_monitor("a")
    cache.add(snapshot, now=0.0)
    workers, rounds = 8, 250
    start = threading.Barrier(workers + 1)

    def record() -> None:
        start.wait()
        for i in range(rounds):
            cache.record_result("a", False, i, next_run_at=60.0)

    def churn() -> None:
        start.wait()
        for _ in range(rounds):
            cache.pause("a")
            cache.update(snapshot)

    threads = [threading.Thread(target=record) for _ in range(workers)]
    threads.append(threading.Thread(target=churn))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    entry = cache.get("a")
    assert entry.consecutive_failures == workers * rounds
    assert entry.active is True


def test_remove_add_against_record_result() -> None:
    cache = ScheduleCache()
    cache.add(make_monitor("a"), now=0.0)
    lock = cache._lock_for("a")
    start = threading.Barrier(2)
    outcomes = []

    def record() -> None:
        start.wait()
        for _ in range(500):
            outcomes.append(cache.record_result("a", False, 1, next_run_at=60.0))

    def churn() -> None:
        start.wait()
        for _ in range(500):
            cache.remove("a")
            cache.add(make_monitor("a"), now=0.0)

    threads = [threading.Thread(target=record), threading.Thread(target=churn)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    entry = cache.get("a")
    recorded = [t for t in outcomes if t is not None]
    assert entry is not None
    # each fresh entry restarts the streak, so no streak outruns the writes seen
    assert all(1 <= t.consecutive_failures <= len(recorded) for t in recorded)
    assert entry.consecutive_failures <= len(recorded)
    assert cache._lock_for("a") is lock
