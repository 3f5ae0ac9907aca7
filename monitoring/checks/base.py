"""
Base class shared by all check executors.

A checker turns a MonitorSnapshot into a CheckResult and never lets an
exception escape: whatever goes wrong ends up in ``CheckResult.error``.
"""

import time
from datetime import datetime
from typing import Callable, Optional

from config.settings import CheckSettings
from monitoring.models import CheckResult, MonitorSnapshot
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("checks")


class BaseChecker:
    """
    Common plumbing for checkers.

    Parameters
    ----------
    settings : CheckSettings
        Probe defaults.
    clock : callable, optional
        Monotonic clock in seconds used for response timing.
    now : callable, optional
        Wall clock returning an aware UTC datetime.
    """

    name = "base"

    def __init__(
        self,
        settings: Optional[CheckSettings] = None,
        clock: Callable[[], float] = time.perf_counter,
        now: Callable[[], datetime] = TimeHelper.get_utc_now,
    ):
        self.settings = settings or CheckSettings()
        self.clock = clock
        self.now = now

    async def check(self, monitor: MonitorSnapshot) -> CheckResult:
        """Run the probe; unexpected errors become a failed result."""
        try:
            return await self._check(monitor)
        except Exception as e:
            logger.bind(monitor_id=monitor.id).exception(
                f"[{self.name}] unexpected error checking {monitor.name}: {e}"
            )
            return CheckResult.failure(str(e) or type(e).__name__)

    async def _check(self, monitor: MonitorSnapshot) -> CheckResult:
        raise NotImplementedError

    def _timeout(self, monitor: MonitorSnapshot) -> float:
        """Timeout in seconds, falling back to the configured default."""
        timeout_ms = monitor.timeout_ms or self.settings.default_timeout_ms
        return timeout_ms / 1000.0

    def _elapsed_ms(self, start: float) -> int:
        return max(0, int(round((self.clock() - start) * 1000)))
