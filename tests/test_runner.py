from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import List, Optional

import pytest

from config.settings import SchedulerSettings
from database.memory import InMemoryStore
from exceptions import MonitorConfigError
from monitoring.cache import ScheduleCache
from monitoring.models import CheckResult, SSLInfo
from monitoring.runner import CheckProcessor, CheckRunner
from monitoring.state_machine import IncidentStateMachine
from tests.helpers import FakeEpochClock, FakeWallClock, RecordingSink, ScriptedDispatcher, make_monitor


def _runner(
    store: InMemoryStore,
    sink: RecordingSink,
    wall_clock: FakeWallClock,
    epoch_clock: FakeEpochClock,
    outcomes: List[bool],
    dispatcher: Optional[ScriptedDispatcher] = None,
    **settings,
) -> CheckRunner:
    machine = IncidentStateMachine(monitors=store, incidents=store, alerts=sink, now=wall_clock)
    return CheckRunner(
        cache=ScheduleCache(),
        dispatcher=dispatcher or ScriptedDispatcher(outcomes),
        monitors=store,
        processor=CheckProcessor(store, machine, now=wall_clock),
        settings=SchedulerSettings(**settings),
        clock=epoch_clock,
    )


def _seed(store: InMemoryStore, runner: CheckRunner, *ids: str, **overrides) -> None:
    for monitor_id in ids:
        snapshot = store.add_monitor(make_monitor(monitor_id, **overrides))
        runner.cache.add(snapshot, now=runner.clock())


@pytest.mark.asyncio
async def test_sweep_runs_due_checks_and_reschedules(store, sink, wall_clock, epoch_clock) -> None:
    runner = _runner(store, sink, wall_clock, epoch_clock, [True, True, True], batch_size=2)
    _seed(store, runner, "a", "b", "c")

    assert await runner.run_sweep() == 3
    assert sorted(runner.dispatcher.calls) == ["a", "b", "c"]
    assert len(store.history) == 3
    assert all(m.last_status == "up" for m in store.monitors.values())
    assert store.extras["a"]["last_response_ms"] == 12
    assert runner.cache.get("a").next_run_at == epoch_clock() + 60

    assert await runner.run_sweep() == 0
    epoch_clock.advance(60)
    assert await runner.run_sweep() == 3
    assert runner.stats()["checks_run"] == 6


@pytest.mark.asyncio
async def test_sweep_never_exceeds_batch_size(store, sink, wall_clock, epoch_clock) -> None:
    dispatcher = ScriptedDispatcher([], delay=0.01)
    runner = _runner(store, sink, wall_clock, epoch_clock, [], dispatcher=dispatcher, batch_size=2)
    _seed(store, runner, "a", "b", "c", "d", "e")

    assert await runner.run_sweep() == 5
    assert len(dispatcher.calls) == 5
    assert dispatcher.peak_in_flight == 2


@pytest.mark.asyncio
async def test_ssl_alert_once_per_threshold(store, sink, wall_clock, epoch_clock) -> None:
    ssl = SSLInfo(expires_at=wall_clock() + timedelta(days=7), days_remaining=7, issuer="R3", valid=True)
    dispatcher = ScriptedDispatcher([], ssl=ssl)
    runner = _runner(store, sink, wall_clock, epoch_clock, [], dispatcher=dispatcher)
    _seed(store, runner, "a", ssl_check=True)

    for _ in range(3):
        await runner.run_sweep()
        epoch_clock.advance(60)

    assert sink.events() == ["ssl_expiry"]
    assert store.monitors["a"].ssl_days_remaining == 7

    dispatcher.ssl = SSLInfo(days_remaining=6, valid=True)
    await runner.run_sweep()
    epoch_clock.advance(60)
    dispatcher.ssl = SSLInfo(days_remaining=3, valid=True)
    await runner.run_sweep()

    assert sink.events() == ["ssl_expiry", "ssl_expiry"]
    assert sink.requests[-1][2]["days_remaining"] == 3


@pytest.mark.asyncio
async def test_failure_at_threshold_opens_incident(store, sink, wall_clock, epoch_clock) -> None:
    runner = _runner(store, sink, wall_clock, epoch_clock, [False])
    _seed(store, runner, "a")

    await runner.run_sweep()

    monitor = store.monitors["a"]
    assert monitor.last_status == "down"
    assert monitor.consecutive_failures == 1
    assert monitor.current_incident_id in store.incidents
    assert store.extras["a"]["last_error"] == "Connection error: refused"
    assert sink.events() == ["down"]
    assert store.history[0].success is False


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped(store, sink, wall_clock, epoch_clock) -> None:
    runner = _runner(store, sink, wall_clock, epoch_clock, [])
    _seed(store, runner, "a")

    release = asyncio.Event()
    original = runner.dispatcher.execute

    async def slow_execute(monitor) -> CheckResult:
        await release.wait()
        return await original(monitor)

    runner.dispatcher.execute = slow_execute

    task = runner.tick()
    await asyncio.sleep(0)
    assert runner.sweep_in_progress is True

    assert runner.tick() is None
    assert runner.tick() is None
    assert runner.skipped_ticks == 2

    release.set()
    await task
    assert runner.sweep_in_progress is False
    assert runner.dispatcher.calls == ["a"]


@pytest.mark.asyncio
async def test_persistence_error_does_not_stop_the_sweep(store, sink, wall_clock, epoch_clock, monkeypatch) -> None:
    runner = _runner(store, sink, wall_clock, epoch_clock, [True, True])
    _seed(store, runner, "a", "b")

    original = store.update_monitor_status

    async def flaky(monitor_id, fields) -> None:
        if monitor_id == "a":
            raise RuntimeError("disk I/O error")
        await original(monitor_id, fields)

    monkeypatch.setattr(store, "update_monitor_status", flaky)

    assert await runner.run_sweep() == 2
    assert runner.processor.errors == 1
    assert [record.monitor_id for record in store.history] == ["b"]
    assert runner.stats()["persistence_errors"] == 1


@pytest.mark.asyncio
async def test_vanished_or_inactive_monitor_is_unscheduled(store, sink, wall_clock, epoch_clock) -> None:
    runner = _runner(store, sink, wall_clock, epoch_clock, [])
    _seed(store, runner, "gone", "paused")
    del store.monitors["gone"]
    store.monitors["paused"] = store.monitors["paused"].with_changes(active=False)

    await runner.run_sweep()

    assert runner.dispatcher.calls == []
    assert "gone" not in runner.cache
    assert "paused" not in runner.cache


@pytest.mark.asyncio
async def test_read_error_falls_back_to_cached_snapshot(store, sink, wall_clock, epoch_clock, monkeypatch) -> None:
    runner = _runner(store, sink, wall_clock, epoch_clock, [True])
    _seed(store, runner, "a")

    async def broken(monitor_id):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(store, "get_monitor", broken)

    await runner.run_sweep()
    assert runner.dispatcher.calls == ["a"]


@pytest.mark.asyncio
async def test_load_from_storage_restores_valid_active_monitors(store, sink, wall_clock, epoch_clock) -> None:
    runner = _runner(store, sink, wall_clock, epoch_clock, [])
    store.add_monitor(make_monitor("ok", last_status="down", consecutive_failures=2))
    store.add_monitor(make_monitor("bad", interval_sec=10))
    store.add_monitor(make_monitor("off", active=False))

    assert await runner.load_from_storage() == 1

    entry = runner.cache.get("ok")
    assert entry.last_status == "down"
    assert entry.consecutive_failures == 2
    assert "bad" not in runner.cache


def test_crud_hooks_validate(store, sink, wall_clock, epoch_clock) -> None:
    runner = _runner(store, sink, wall_clock, epoch_clock, [])

    with pytest.raises(MonitorConfigError):
        runner.add_monitor(make_monitor(url="not-a-url"))

    runner.add_monitor(make_monitor("a"))
    assert runner.pause_monitor("a") is True
    assert runner.cache.due_now(epoch_clock() + 10_000) == []
    runner.resume_monitor(make_monitor("a"))
    assert runner.cache.get("a").active is True
    runner.update_monitor(make_monitor("a", name="Renamed"))
    assert runner.cache.get("a").snapshot.name == "Renamed"
    assert runner.remove_monitor("a") is True


@pytest.mark.asyncio
async def test_start_and_stop(store, sink, wall_clock, epoch_clock) -> None:
    runner = _runner(store, sink, wall_clock, epoch_clock, [True], tick_interval=0.01)
    _seed(store, runner, "a")

    await runner.start()
    for _ in range(100):
        if runner.checks_run:
            break
        await asyncio.sleep(0.01)
    await runner.stop()

    assert runner.is_running is False
    assert runner.checks_run == 1
    assert runner.stats()["mode"] == "local"
