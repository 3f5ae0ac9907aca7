from __future__ import annotations

import httpx
import pytest

from config.constants import MonitorType
from exceptions import MonitorConfigError
from monitoring.checks import HTTPChecker
from monitoring.dispatcher import CheckDispatcher, validate_monitor_config
from monitoring.models import CheckResult
from tests.helpers import make_monitor


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"interval_sec": 10}, "Interval must be at least 30 seconds"),
        ({"timeout_ms": 500}, "Timeout must be between 1000 and 120000 ms"),
        ({"alert_after_failures": 0}, "Alert threshold must be at least 1"),
        ({"url": "ftp://example.com"}, "URL must start with http:// or https://"),
        ({"type": "keyword", "keyword": None}, "Keyword is required"),
        ({"type": "port", "url": "db.internal", "port": None}, "Port is required"),
        ({"type": "port", "url": "db.internal", "port": 70000}, "Port must be 1-65535"),
        ({"type": "port", "url": "db.internal", "port": 53, "port_protocol": "sctp"}, "Protocol must be tcp or udp"),
        ({"type": "dns", "url": "example.com", "dns_record_type": "SRV"}, "Unsupported DNS record type: SRV"),
        ({"type": "ping", "url": ""}, "Host/URL is required"),
        ({"type": "cronjob", "cron_expression": None}, "Cron expression is required"),
        ({"type": "cronjob", "cron_expression": "61 * * * *"}, "Invalid cron expression: 61 * * * *"),
    ],
)
def test_validation_messages(overrides, message) -> None:
    result = validate_monitor_config(make_monitor(**overrides))
    assert not result
    assert message in result.errors


@pytest.mark.parametrize(
    "overrides",
    [
        {},
        {"type": "keyword", "keyword": "ok"},
        {"type": "port", "url": "db.internal:5432", "port": 5432},
        {"type": "dns", "url": "example.com", "dns_record_type": "aaaa"},
        {"type": "ping", "url": "10.0.0.1"},
        {"type": "heartbeat", "url": None, "heartbeat_interval": 300},
        {"type": "cronjob", "url": None, "cron_expression": "0 3 * * *"},
    ],
)
def test_valid_configurations(overrides) -> None:
    assert validate_monitor_config(make_monitor(**overrides))


def test_ensure_valid_raises_with_all_errors() -> None:
    with pytest.raises(MonitorConfigError) as exc_info:
        CheckDispatcher.ensure_valid(make_monitor(interval_sec=5, url=None))

    assert exc_info.value.details["errors"][0] == "Interval must be at least 30 seconds"
    assert "URL is required" in exc_info.value.details["errors"]


def test_every_type_has_an_executor() -> None:
    dispatcher = CheckDispatcher()
    for monitor_type in MonitorType:
        checker = dispatcher.checker_for(make_monitor(type=monitor_type.value))
        assert checker.name == monitor_type.value
    assert dispatcher.unknown_type_fallbacks == 0


@pytest.mark.asyncio
async def test_unknown_type_falls_back_to_http_and_counts() -> None:
    http = HTTPChecker(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    dispatcher = CheckDispatcher(checkers={MonitorType.HTTP: http})

    result = await dispatcher.execute(make_monitor(type="smtp"))

    assert result.success is True
    assert dispatcher.unknown_type_fallbacks == 1
    assert dispatcher.stats() == {"unknown_type_fallbacks": 1}


@pytest.mark.asyncio
async def test_type_is_matched_case_insensitively() -> None:
    dispatcher = CheckDispatcher()
    assert dispatcher.checker_for(make_monitor(type="DNS")).name == "dns"
    assert dispatcher.unknown_type_fallbacks == 0


class _RaisingChecker:
    name = "raising"

    async def check(self, monitor) -> CheckResult:
        raise RuntimeError("checker bug")


@pytest.mark.asyncio
async def test_execute_never_raises() -> None:
    dispatcher = CheckDispatcher(checkers={MonitorType.HTTP: _RaisingChecker()})
    result = await dispatcher.execute(make_monitor())

    assert result.success is False
    assert result.error == "checker bug"
