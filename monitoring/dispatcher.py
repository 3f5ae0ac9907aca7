"""
============================================================================
UPTIME ENGINE - CHECK DISPATCHER
============================================================================
Maps a monitor's type onto its check executor and validates monitor
configuration before anything is scheduled.

Unknown types are still executed: they fall back to the HTTP checker,
a warning is logged with the monitor id and raw type, and the
``unknown_type_fallbacks`` counter is incremented.
============================================================================
"""

from typing import Any, Dict, List, Mapping, Optional

from config.constants import (
    DNSRecordType,
    KeywordMode,
    MAX_TIMEOUT_MS,
    MIN_INTERVAL_SEC,
    MIN_TIMEOUT_MS,
    MonitorType,
    PortProtocol,
)
from config.settings import CheckSettings
from exceptions import MonitorConfigError
from monitoring.checks import (
    BaseChecker,
    CronjobChecker,
    DNSChecker,
    HeartbeatChecker,
    HTTPChecker,
    KeywordChecker,
    PingChecker,
    PortChecker,
    is_valid_cron,
)
from monitoring.models import CheckResult, MonitorSnapshot
from utils.helpers import extract_host
from utils.logger import get_logger
from utils.validators import ValidationResult, is_http_url


logger = get_logger("dispatcher")


def build_default_checkers(settings: Optional[CheckSettings] = None, **kwargs: Any) -> Dict[MonitorType, BaseChecker]:
    """One checker per monitor type, sharing the same settings."""
    settings = settings or CheckSettings()
    return {
        MonitorType.HTTP: HTTPChecker(settings, **kwargs),
        MonitorType.KEYWORD: KeywordChecker(settings, **kwargs),
        MonitorType.PORT: PortChecker(settings),
        MonitorType.DNS: DNSChecker(settings),
        MonitorType.PING: PingChecker(settings),
        MonitorType.HEARTBEAT: HeartbeatChecker(settings),
        MonitorType.CRONJOB: CronjobChecker(settings),
    }


# ============================================================================
# VALIDATION
# ============================================================================

def validate_monitor_config(monitor: MonitorSnapshot) -> ValidationResult:
    """
    Per-type configuration rules.

    Parameters
    ----------
    monitor : MonitorSnapshot
        The monitor to validate.

    Returns
    -------
    ValidationResult
        ``errors`` lists every rule that failed.
    """
    errors: List[str] = []

    if monitor.interval_sec is None or monitor.interval_sec < MIN_INTERVAL_SEC:
        errors.append(f"Interval must be at least {MIN_INTERVAL_SEC} seconds")
    if monitor.timeout_ms is not None and not (MIN_TIMEOUT_MS <= monitor.timeout_ms <= MAX_TIMEOUT_MS):
        errors.append(f"Timeout must be between {MIN_TIMEOUT_MS} and {MAX_TIMEOUT_MS} ms")
    if monitor.alert_after_failures is None or monitor.alert_after_failures < 1:
        errors.append("Alert threshold must be at least 1")

    monitor_type = MonitorType.resolve(monitor.type)

    if monitor_type in (MonitorType.HTTP, MonitorType.KEYWORD, None):
        if not monitor.url:
            errors.append("URL is required")
        if not is_http_url(monitor.url):
            errors.append("URL must start with http:// or https://")
        if monitor_type == MonitorType.KEYWORD:
            if not monitor.keyword:
                errors.append("Keyword is required")
            if monitor.keyword_type not in (KeywordMode.CONTAINS.value, KeywordMode.NOT_CONTAINS.value):
                errors.append("Keyword type must be contains or not_contains")

    elif monitor_type == MonitorType.PING:
        if not extract_host(monitor.url):
            errors.append("Host/URL is required")

    elif monitor_type == MonitorType.PORT:
        if not extract_host(monitor.url):
            errors.append("Host is required")
        if not monitor.port:
            errors.append("Port is required")
        elif not 1 <= monitor.port <= 65535:
            errors.append("Port must be 1-65535")
        if (monitor.port_protocol or "").lower() not in (PortProtocol.TCP.value, PortProtocol.UDP.value):
            errors.append("Protocol must be tcp or udp")

    elif monitor_type == MonitorType.DNS:
        if not extract_host(monitor.url):
            errors.append("Domain is required")
        if (monitor.dns_record_type or "").upper() not in DNSRecordType.__members__:
            errors.append(f"Unsupported DNS record type: {monitor.dns_record_type}")

    elif monitor_type == MonitorType.HEARTBEAT:
        if not monitor.heartbeat_interval or monitor.heartbeat_interval <= 0:
            errors.append("Heartbeat interval must be positive")

    elif monitor_type == MonitorType.CRONJOB:
        if not monitor.cron_expression:
            errors.append("Cron expression is required")
        elif not is_valid_cron(monitor.cron_expression):
            errors.append(f"Invalid cron expression: {monitor.cron_expression}")

    return ValidationResult.from_errors(errors)


# ============================================================================
# DISPATCHER
# ============================================================================

class CheckDispatcher:
    """
    Routes snapshots to check executors.

    Parameters
    ----------
    checkers : mapping, optional
        Executor per MonitorType. Missing entries are filled with the
        defaults from :func:`build_default_checkers`.
    settings : CheckSettings, optional
        Passed to the default checkers.
    """

    def __init__(
        self,
        checkers: Optional[Mapping[MonitorType, BaseChecker]] = None,
        settings: Optional[CheckSettings] = None,
    ):
        self._checkers: Dict[MonitorType, BaseChecker] = build_default_checkers(settings)
        self._checkers.update(checkers or {})
        self.unknown_type_fallbacks = 0

    def checker_for(self, monitor: MonitorSnapshot) -> BaseChecker:
        """Pick the executor, falling back to HTTP for unknown types."""
        monitor_type = MonitorType.resolve(monitor.type)
        if monitor_type is not None:
            return self._checkers[monitor_type]

        self.unknown_type_fallbacks += 1
        logger.bind(monitor_id=monitor.id, monitor_type=monitor.type).warning(
            f"[Dispatcher] Unknown monitor type '{monitor.type}' for monitor "
            f"{monitor.id}, falling back to HTTP"
        )
        return self._checkers[MonitorType.HTTP]

    async def execute(self, monitor: MonitorSnapshot) -> CheckResult:
        """Run the check. Never raises."""
        checker = self.checker_for(monitor)
        try:
            return await checker.check(monitor)
        except Exception as e:
            logger.bind(monitor_id=monitor.id).exception(
                f"[Dispatcher] {checker.name} checker raised for monitor {monitor.id}: {e}"
            )
            return CheckResult.failure(str(e) or "Check failed")

    @staticmethod
    def validate(monitor: MonitorSnapshot) -> ValidationResult:
        return validate_monitor_config(monitor)

    @staticmethod
    def ensure_valid(monitor: MonitorSnapshot) -> None:
        """Raise MonitorConfigError if the monitor cannot be scheduled."""
        result = validate_monitor_config(monitor)
        if not result:
            raise MonitorConfigError(
                f"Invalid configuration for monitor {monitor.id}: {result.message}",
                errors=result.errors,
                monitor_id=monitor.id,
                monitor_type=monitor.type,
            )

    def stats(self) -> Dict[str, Any]:
        return {"unknown_type_fallbacks": self.unknown_type_fallbacks}
