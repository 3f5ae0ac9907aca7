from __future__ import annotations

from datetime import timedelta

import pytest

from monitoring.passive import PassiveCheckService
from tests.helpers import T0, make_monitor


@pytest.mark.asyncio
async def test_heartbeat_marks_monitor_up(store, wall_clock) -> None:
    store.add_monitor(make_monitor(
        "hb", type="heartbeat", heartbeat_token="tok-hb", last_status="down", consecutive_failures=3,
    ))
    service = PassiveCheckService(store, now=wall_clock)

    receipt = await service.record_heartbeat("tok-hb")

    assert receipt.monitor_id == "hb"
    monitor = store.monitors["hb"]
    assert monitor.last_heartbeat == T0
    assert monitor.last_status == "up"
    assert monitor.consecutive_failures == 0
    assert store.extras["hb"]["last_error"] is None


@pytest.mark.asyncio
async def test_heartbeat_token_is_scoped_to_type_and_active(store, wall_clock) -> None:
    store.add_monitor(make_monitor("cron", type="cronjob", heartbeat_token="tok-cron", cron_expression="* * * * *"))
    store.add_monitor(make_monitor("off", type="heartbeat", heartbeat_token="tok-off", active=False))
    service = PassiveCheckService(store, now=wall_clock)

    assert await service.record_heartbeat("tok-cron") is None
    assert await service.record_heartbeat("tok-off") is None
    assert await service.record_heartbeat("unknown") is None


@pytest.mark.asyncio
async def test_cron_success_sets_next_expected_run(store, wall_clock) -> None:
    store.add_monitor(make_monitor(
        "job", type="cronjob", heartbeat_token="tok-job", cron_expression="0 * * * *", consecutive_failures=2,
    ))
    service = PassiveCheckService(store, now=wall_clock)

    receipt = await service.record_cron_run("tok-job", "success", duration_ms=4200)

    assert receipt.next_expected_run == T0 + timedelta(hours=1)
    monitor = store.monitors["job"]
    assert monitor.last_cron_run == T0
    assert monitor.expected_cron_run == T0 + timedelta(hours=1)
    assert monitor.last_status == "up"
    assert monitor.consecutive_failures == 0
    assert store.extras["job"]["last_response_ms"] == 4200


@pytest.mark.asyncio
async def test_cron_failure_status_marks_down(store, wall_clock) -> None:
    store.add_monitor(make_monitor(
        "job", type="cronjob", heartbeat_token="tok-job", cron_expression="0 * * * *", consecutive_failures=1,
    ))
    service = PassiveCheckService(store, now=wall_clock)

    await service.record_cron_run("tok-job", "fail")

    monitor = store.monitors["job"]
    assert monitor.last_status == "down"
    assert monitor.consecutive_failures == 2
    assert store.extras["job"]["last_error"] == "fail"
