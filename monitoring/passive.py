"""
============================================================================
UPTIME ENGINE - PASSIVE CHECK RECORDING
============================================================================
Inbound side of heartbeat and cronjob monitors. A target calls its
unique URL; the token is looked up through the store's unique index and
the monitor's passive fields are written directly.

The scheduled HeartbeatChecker / CronjobChecker later judge whether the
last report is recent enough.
============================================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from config.constants import CronRunStatus, MonitorStatus, MonitorType
from monitoring.checks import is_valid_cron, next_cron_run
from monitoring.interfaces import MonitorStore
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("Passive")


@dataclass(frozen=True)
class HeartbeatReceipt:
    monitor_id: str
    monitor_name: str


@dataclass(frozen=True)
class CronRunReceipt:
    monitor_id: str
    monitor_name: str
    next_expected_run: Optional[datetime] = None


class PassiveCheckService:
    """
    Records heartbeats and cron job runs.

    Parameters
    ----------
    monitors : MonitorStore
        Token lookup and field updates.
    now : callable, optional
        Wall clock returning an aware UTC datetime.
    """

    def __init__(
        self,
        monitors: MonitorStore,
        now: Callable[[], datetime] = TimeHelper.get_utc_now,
    ):
        self.monitors = monitors
        self.now = now

    async def record_heartbeat(self, token: str) -> Optional[HeartbeatReceipt]:
        """Mark a heartbeat monitor up. None if the token is unknown."""
        monitor = await self.monitors.find_by_token(token, MonitorType.HEARTBEAT.value)
        if monitor is None or not monitor.active:
            logger.debug("[Passive] Heartbeat with unknown token rejected")
            return None

        now = self.now()
        await self.monitors.update_monitor_fields(monitor.id, {
            "last_heartbeat": now,
            "last_status": MonitorStatus.UP.value,
            "last_checked": now,
            "consecutive_failures": 0,
            "last_error": None,
        })

        logger.debug(f"[Passive] 💓 Heartbeat recorded for {monitor.name}")
        return HeartbeatReceipt(monitor_id=monitor.id, monitor_name=monitor.name)

    async def record_cron_run(
        self,
        token: str,
        status: str = CronRunStatus.SUCCESS.value,
        duration_ms: Optional[int] = None,
    ) -> Optional[CronRunReceipt]:
        """
        Record one run of a cron job.

        ``status`` other than "success" marks the monitor down and is
        stored as the error. None if the token is unknown.
        """
        monitor = await self.monitors.find_by_token(token, MonitorType.CRONJOB.value)
        if monitor is None or not monitor.active:
            logger.debug("[Passive] Cron run with unknown token rejected")
            return None

        now = self.now()
        fields: Dict[str, Any] = {
            "last_cron_run": now,
            "last_checked": now,
        }

        if status == CronRunStatus.SUCCESS.value:
            fields.update({
                "last_status": MonitorStatus.UP.value,
                "consecutive_failures": 0,
                "last_error": None,
                "last_response_ms": duration_ms or 0,
            })
        else:
            fields.update({
                "last_status": MonitorStatus.DOWN.value,
                "consecutive_failures": (monitor.consecutive_failures or 0) + 1,
                "last_error": status,
            })

        next_run: Optional[datetime] = None
        if is_valid_cron(monitor.cron_expression):
            next_run = next_cron_run(monitor.cron_expression, now)
            fields["expected_cron_run"] = next_run

        await self.monitors.update_monitor_fields(monitor.id, fields)

        logger.debug(f"[Passive] ⏱ Cron run ({status}) recorded for {monitor.name}")
        return CronRunReceipt(
            monitor_id=monitor.id,
            monitor_name=monitor.name,
            next_expected_run=next_run,
        )
