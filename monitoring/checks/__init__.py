"""
Check executors, one per monitor type.

Every checker exposes ``async check(snapshot) -> CheckResult`` and never
raises; failures are reported in the result.
"""

from monitoring.checks.base import BaseChecker
from monitoring.checks.http import HTTPChecker, KeywordChecker, fetch_ssl_info, parse_peer_cert
from monitoring.checks.port import PortChecker
from monitoring.checks.dns import DNSChecker
from monitoring.checks.ping import PingChecker
from monitoring.checks.passive import HeartbeatChecker, CronjobChecker, next_cron_run, is_valid_cron

__all__ = [
    "BaseChecker",
    "HTTPChecker",
    "KeywordChecker",
    "PortChecker",
    "DNSChecker",
    "PingChecker",
    "HeartbeatChecker",
    "CronjobChecker",
    "fetch_ssl_info",
    "parse_peer_cert",
    "next_cron_run",
    "is_valid_cron",
]
