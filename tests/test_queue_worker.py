from __future__ import annotations

import asyncio
import random
from typing import List, Tuple

import pytest

from config.settings import QueueSettings
from database.memory import InMemoryStore
from monitoring.queue_worker import CheckJob, InMemoryJobQueue, JobQueue, QueueWorker
from monitoring.runner import CheckProcessor
from monitoring.state_machine import IncidentStateMachine
from tests.helpers import FakeWallClock, RecordingSink, ScriptedDispatcher, make_monitor


class RecordingQueue:
    def __init__(self) -> None:
        self.enqueued: List[Tuple[CheckJob, float]] = []
        self.removed: List[str] = []
        self.closed = False
        self._ready: asyncio.Queue = asyncio.Queue()

    async def enqueue(self, job: CheckJob, delay: float = 0.0) -> None:
        self.enqueued.append((job, delay))

    async def get(self) -> CheckJob:
        return await self._ready.get()

    async def remove(self, monitor_id: str) -> bool:
        self.removed.append(monitor_id)
        return True

    async def close(self) -> None:
        self.closed = True


def _worker(
    store: InMemoryStore,
    sink: RecordingSink,
    wall_clock: FakeWallClock,
    queue,
    outcomes: List[bool],
    **settings,
) -> QueueWorker:
    machine = IncidentStateMachine(monitors=store, incidents=store, alerts=sink, now=wall_clock)
    return QueueWorker(
        queue=queue,
        dispatcher=ScriptedDispatcher(outcomes),
        monitors=store,
        processor=CheckProcessor(store, machine, strict=True, now=wall_clock),
        settings=QueueSettings(**settings),
        rng=random.Random(7),
    )


def test_in_memory_queue_satisfies_protocol() -> None:
    assert isinstance(InMemoryJobQueue(), JobQueue)


@pytest.mark.asyncio
async def test_completed_job_schedules_next_check(store, sink, wall_clock) -> None:
    queue = RecordingQueue()
    worker = _worker(store, sink, wall_clock, queue, [True])
    store.add_monitor(make_monitor("a", interval_sec=90))

    assert await worker.handle_job(CheckJob("a")) is True

    assert worker.completed == 1
    assert queue.enqueued == [(CheckJob("a", 1), 90)]
    assert store.monitors["a"].last_status == "up"
    assert len(store.history) == 1


@pytest.mark.asyncio
async def test_failed_attempts_back_off_exponentially(store, sink, wall_clock, monkeypatch) -> None:
    queue = RecordingQueue()
    worker = _worker(store, sink, wall_clock, queue, [True, True, True], attempts=3, backoff_base=1.0)
    store.add_monitor(make_monitor("a"))

    async def broken(record) -> None:
        raise RuntimeError("database is locked")

    monkeypatch.setattr(store, "append_history", broken)

    assert await worker.handle_job(CheckJob("a", 1)) is False
    assert await worker.handle_job(CheckJob("a", 2)) is False
    assert queue.enqueued == [(CheckJob("a", 2), 1.0), (CheckJob("a", 3), 2.0)]
    assert worker.retried == 2

    # last attempt gives up and continues with the regular schedule
    assert await worker.handle_job(CheckJob("a", 3)) is False
    assert worker.failed == 1
    assert queue.enqueued[-1] == (CheckJob("a", 1), 60)


def test_backoff_delay_doubles() -> None:
    worker = QueueWorker(
        queue=RecordingQueue(),
        dispatcher=ScriptedDispatcher([]),
        monitors=InMemoryStore(),
        processor=CheckProcessor(InMemoryStore(), state_machine=None, strict=True),
        settings=QueueSettings(backoff_base=1.5),
    )
    assert [worker.backoff_delay(n) for n in (1, 2, 3, 4)] == [1.5, 3.0, 6.0, 12.0]


@pytest.mark.asyncio
async def test_gone_monitor_is_skipped_without_rescheduling(store, sink, wall_clock) -> None:
    queue = RecordingQueue()
    worker = _worker(store, sink, wall_clock, queue, [True])
    store.add_monitor(make_monitor("paused", active=False))

    await worker.handle_job(CheckJob("missing"))
    await worker.handle_job(CheckJob("paused"))

    assert worker.skipped == 2
    assert worker.dispatcher.calls == []
    assert queue.enqueued == []


@pytest.mark.asyncio
async def test_transition_uses_stored_state(store, sink, wall_clock) -> None:
    queue = RecordingQueue()
    worker = _worker(store, sink, wall_clock, queue, [False])
    store.add_monitor(make_monitor("a", alert_after_failures=3, last_status="down", consecutive_failures=2))

    await worker.handle_job(CheckJob("a"))

    assert store.monitors["a"].consecutive_failures == 3
    assert sink.events() == ["down"]
    assert len(store.incidents) == 1


@pytest.mark.asyncio
async def test_start_staggers_initial_jobs(store, sink, wall_clock) -> None:
    queue = RecordingQueue()
    worker = _worker(store, sink, wall_clock, queue, [], stagger_max=10.0, concurrency=3)
    store.add_monitor(make_monitor("a"))
    store.add_monitor(make_monitor("b"))
    store.add_monitor(make_monitor("bad", interval_sec=5))

    assert await worker.start() == 2
    assert worker.stats()["consumers"] == 3
    await worker.stop()

    assert [job.monitor_id for job, _ in queue.enqueued] == ["a", "b"]
    assert all(0.0 <= delay <= 10.0 for _, delay in queue.enqueued)
    assert queue.closed is True


@pytest.mark.asyncio
async def test_crud_hooks(store, sink, wall_clock) -> None:
    queue = RecordingQueue()
    worker = _worker(store, sink, wall_clock, queue, [])

    await worker.add_monitor(make_monitor("a"))
    await worker.add_monitor(make_monitor("b", active=False))
    assert queue.enqueued == [(CheckJob("a"), 0)]

    assert await worker.remove_monitor("a") is True
    assert queue.removed == ["a"]


# ----------------------------------------------------------------------
# InMemoryJobQueue
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_queue_holds_one_pending_job_per_monitor() -> None:
    queue = InMemoryJobQueue()

    await queue.enqueue(CheckJob("a"), delay=30)
    await queue.enqueue(CheckJob("a"), delay=60)
    assert queue.delayed_count == 1

    await queue.enqueue(CheckJob("a"), delay=0)
    await queue.enqueue(CheckJob("a"), delay=0)
    assert queue.delayed_count == 0
    assert queue.ready_count == 1

    assert await queue.get() == CheckJob("a")
    await queue.close()


@pytest.mark.asyncio
async def test_delayed_job_is_released() -> None:
    queue = InMemoryJobQueue()
    await queue.enqueue(CheckJob("a", attempt=2), delay=0.01)

    job = await asyncio.wait_for(queue.get(), timeout=1.0)
    assert job == CheckJob("a", attempt=2)
    await queue.close()


@pytest.mark.asyncio
async def test_remove_and_close() -> None:
    queue = InMemoryJobQueue()
    await queue.enqueue(CheckJob("a"), delay=30)

    assert await queue.remove("a") is True
    assert await queue.remove("a") is False

    await queue.close()
    await queue.enqueue(CheckJob("b"), delay=0)
    assert queue.ready_count == 0


@pytest.mark.asyncio
async def test_worker_runs_jobs_end_to_end(store, sink, wall_clock) -> None:
    queue = InMemoryJobQueue()
    worker = _worker(store, sink, wall_clock, queue, [True], stagger_max=0.0, concurrency=2)
    store.add_monitor(make_monitor("a"))

    await worker.start()
    for _ in range(100):
        if worker.completed:
            break
        await asyncio.sleep(0.01)

    assert worker.completed == 1
    assert queue.delayed_count == 1
    await worker.stop()
    assert worker.stats()["mode"] == "queue"
