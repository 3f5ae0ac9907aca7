"""
============================================================================
UPTIME ENGINE - PASSIVE CHECKERS
============================================================================
Heartbeat and cronjob monitors make no outbound request. The target
reports in through the inbound endpoints; these checkers only judge
whether the last report is recent enough.
============================================================================
"""

from datetime import datetime, timedelta
from typing import Optional

from croniter import croniter

from config.constants import DEFAULT_CRON_GRACE_PERIOD, DEFAULT_HEARTBEAT_INTERVAL
from monitoring.checks.base import BaseChecker
from monitoring.models import CheckResult, MonitorSnapshot
from utils.helpers import TimeHelper


def is_valid_cron(expression: Optional[str]) -> bool:
    return bool(expression) and croniter.is_valid(expression)


def next_cron_run(expression: str, after: datetime) -> datetime:
    """First fire time of ``expression`` strictly after ``after`` (UTC)."""
    return croniter(expression, TimeHelper.ensure_utc(after)).get_next(datetime)


class HeartbeatChecker(BaseChecker):
    """
    Up while the last heartbeat is within interval + grace seconds.
    """

    name = "heartbeat"

    async def _check(self, monitor: MonitorSnapshot) -> CheckResult:
        last = TimeHelper.ensure_utc(monitor.last_heartbeat)
        payload = {"last_heartbeat": last.isoformat() if last else None}

        if last is None:
            return CheckResult(success=False, error="No heartbeat received yet", payload=payload)

        interval = monitor.heartbeat_interval or DEFAULT_HEARTBEAT_INTERVAL
        since = (self.now() - last).total_seconds()

        if since <= interval + self.settings.heartbeat_grace_seconds:
            return CheckResult(success=True, payload=payload)

        missed_by = round(since - interval)
        return CheckResult(
            success=False,
            error=f"Heartbeat missed by {missed_by} seconds",
            payload=payload,
        )


class CronjobChecker(BaseChecker):
    """
    Up while the job has reported for its latest expected run, allowing
    ``cron_grace_period`` seconds of lateness.
    """

    name = "cronjob"

    async def _check(self, monitor: MonitorSnapshot) -> CheckResult:
        expression = monitor.cron_expression
        if not expression:
            return CheckResult.failure("No cron expression specified")
        if not croniter.is_valid(expression):
            return CheckResult.failure(f"Invalid cron expression: {expression}")

        now = self.now()
        grace = timedelta(seconds=monitor.cron_grace_period or DEFAULT_CRON_GRACE_PERIOD)
        last_run = TimeHelper.ensure_utc(monitor.last_cron_run)
        payload = {"last_cron_run": last_run.isoformat() if last_run else None}

        if last_run is None:
            if monitor.created_at is None:
                return CheckResult(success=True, payload=payload)

            expected = next_cron_run(expression, monitor.created_at)
            if now > expected + grace:
                return CheckResult(success=False, error="Cron job never reported", payload=payload)
            return CheckResult(success=True, payload=payload)

        expected = TimeHelper.ensure_utc(monitor.expected_cron_run) or next_cron_run(expression, last_run)
        payload["expected_cron_run"] = expected.isoformat()

        if now > expected + grace and last_run < expected:
            return CheckResult(
                success=False,
                error=f"Cron job missed at {expected.isoformat()}",
                payload=payload,
            )

        return CheckResult(success=True, payload=payload)
