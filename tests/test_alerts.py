from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Tuple

import pytest

from config.settings import AlertSettings
from database.memory import InMemoryStore
from monitoring.alerts import AlertCooldownGate, AlertDispatcher, AlertRequest
from tests.helpers import FakeWallClock, make_channel


class RecordingSender:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []

    async def send(self, channel, event: str, payload: Dict[str, Any]) -> None:
        self.sent.append((channel.id, event, payload))


class BrokenSender:
    async def send(self, channel, event: str, payload: Dict[str, Any]) -> None:
        raise RuntimeError("SMTP connection refused")


def _dispatcher(store: InMemoryStore, clock: FakeWallClock, **senders: Any) -> AlertDispatcher:
    return AlertDispatcher(channels=store, senders=senders, now=clock)


def test_gate_allows_first_alert_and_after_cooldown(wall_clock) -> None:
    gate = AlertCooldownGate()
    channel = make_channel(cooldown_minutes=5)

    assert gate.allow(channel, wall_clock()) is True
    gate.record_success(channel, wall_clock())
    assert channel.alerts_sent == 1

    assert gate.allow(channel, wall_clock.advance(minutes=4, seconds=59)) is False
    assert gate.allow(channel, wall_clock.advance(seconds=1)) is True


def test_gate_zero_cooldown_always_allows(wall_clock) -> None:
    gate = AlertCooldownGate()
    channel = make_channel(cooldown_minutes=0, last_alert_at=wall_clock())
    assert gate.allow(channel, wall_clock()) is True


@pytest.mark.asyncio
async def test_cooldown_suppresses_second_alert_without_touching_timestamp(store, wall_clock) -> None:
    store.add_channel(make_channel())
    sender = RecordingSender()
    dispatcher = _dispatcher(store, wall_clock, webhook=sender)

    first = await dispatcher.deliver(AlertRequest("team-1", "down", {"monitor_name": "api"}))
    first_sent_at = store.channels["c1"].last_alert_at

    wall_clock.advance(minutes=1)
    second = await dispatcher.deliver(AlertRequest("team-1", "down", {"monitor_name": "api"}))

    assert first.sent == ["c1"]
    assert second.suppressed == ["c1"]
    assert len(sender.sent) == 1
    assert store.channels["c1"].last_alert_at == first_sent_at
    assert store.channels["c1"].alerts_sent == 1

    wall_clock.advance(minutes=4)
    third = await dispatcher.deliver(AlertRequest("team-1", "down", {"monitor_name": "api"}))
    assert third.sent == ["c1"]
    assert store.channels["c1"].alerts_sent == 2


@pytest.mark.asyncio
async def test_failing_channel_does_not_block_others(store, wall_clock) -> None:
    store.add_channel(make_channel("mail", type="email"))
    store.add_channel(make_channel("hook", type="webhook"))
    sender = RecordingSender()
    dispatcher = _dispatcher(store, wall_clock, email=BrokenSender(), webhook=sender)

    report = await dispatcher.deliver(AlertRequest("team-1", "up", {"monitor_name": "api"}))

    assert report.sent == ["hook"]
    assert report.failed == {"mail": "SMTP connection refused"}
    assert store.channels["mail"].last_error == "SMTP connection refused"
    assert store.channels["mail"].last_alert_at is None
    assert store.channels["hook"].last_alert_at == wall_clock()
    assert dispatcher.get_stats()["failed"] == 1


@pytest.mark.asyncio
async def test_only_subscribed_enabled_channels_of_the_team_receive(store, wall_clock) -> None:
    store.add_channel(make_channel("wants", notify_on={"down": True}))
    store.add_channel(make_channel("mute", notify_on={"down": False}))
    store.add_channel(make_channel("off", enabled=False))
    store.add_channel(make_channel("other", team_id="team-2"))
    sender = RecordingSender()
    dispatcher = _dispatcher(store, wall_clock, webhook=sender)

    report = await dispatcher.deliver(AlertRequest("team-1", "down", {}))

    assert report.sent == ["wants"]
    assert [channel_id for channel_id, _, _ in sender.sent] == ["wants"]


@pytest.mark.asyncio
async def test_full_queue_drops_and_counts(store, wall_clock) -> None:
    dispatcher = AlertDispatcher(channels=store, settings=AlertSettings(queue_maxsize=1), now=wall_clock)

    dispatcher.request_alert("team-1", "down", {"monitor_id": "m1"})
    dispatcher.request_alert("team-1", "down", {"monitor_id": "m2"})

    stats = dispatcher.get_stats()
    assert stats["queue_size"] == 1
    assert stats["dropped"] == 1


@pytest.mark.asyncio
async def test_stop_delivers_queued_alerts(store, wall_clock) -> None:
    store.add_channel(make_channel())
    sender = RecordingSender()
    dispatcher = _dispatcher(store, wall_clock, webhook=sender)

    dispatcher.request_alert("team-1", "down", {"monitor_name": "api"})
    await dispatcher.stop()

    assert [event for _, event, _ in sender.sent] == ["down"]
    assert dispatcher.get_stats()["queue_size"] == 0


@pytest.mark.asyncio
async def test_running_loop_delivers_requests(store, wall_clock) -> None:
    store.add_channel(make_channel(cooldown_minutes=0))
    sender = RecordingSender()
    dispatcher = _dispatcher(store, wall_clock, webhook=sender)

    await dispatcher.start()
    dispatcher.request_alert("team-1", "down", {"monitor_name": "api"})
    dispatcher.request_alert("team-1", "up", {"monitor_name": "api"})
    await dispatcher._queue.join()
    await dispatcher.stop()

    assert [event for _, event, _ in sender.sent] == ["down", "up"]
    assert dispatcher.get_stats()["delivered"] == 2


@pytest.mark.asyncio
async def test_channel_bookkeeping_failure_is_logged_not_raised(store, wall_clock, monkeypatch) -> None:
    store.add_channel(make_channel())
    dispatcher = _dispatcher(store, wall_clock, webhook=RecordingSender())

    async def boom(channel_id, at) -> None:
        raise RuntimeError("database is locked")

    monkeypatch.setattr(store, "record_channel_success", boom)

    report = await dispatcher.deliver(AlertRequest("team-1", "down", {}))
    assert report.sent == ["c1"]


def test_cooldown_window_uses_timedelta(wall_clock) -> None:
    gate = AlertCooldownGate(default_cooldown_minutes=10)
    channel = make_channel(cooldown_minutes=None, last_alert_at=wall_clock() - timedelta(minutes=9))
    assert gate.allow(channel, wall_clock()) is False


@pytest.mark.asyncio
async def test_registered_sender_handles_its_channel_type(store, wall_clock) -> None:
    store.add_channel(make_channel("hook"))
    store.add_channel(make_channel("chat", type="slack"))
    slack = RecordingSender()
    dispatcher = _dispatcher(store, wall_clock)
    dispatcher.register_sender("slack", slack)

    report = await dispatcher.deliver(AlertRequest("team-1", "down", {"monitor_name": "api"}))

    assert sorted(report.sent) == ["chat", "hook"]
    assert slack.sent == [("chat", "down", {"monitor_name": "api"})]
