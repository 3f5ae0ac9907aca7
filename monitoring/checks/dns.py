"""
============================================================================
UPTIME ENGINE - DNS CHECKER
============================================================================
Resolves one record type with dnspython's asyncio resolver, normalises
the answers to plain strings and optionally looks for an expected value.
============================================================================
"""

from typing import Any, List, Optional

import dns.asyncresolver
import dns.exception
import dns.resolver

from config.constants import DNSRecordType
from monitoring.checks.base import BaseChecker
from monitoring.models import CheckResult, MonitorSnapshot
from utils.helpers import extract_host
from utils.logger import get_logger


logger = get_logger("checks.dns")


def normalize_record(record_type: str, rdata: Any) -> List[str]:
    """
    Render one rdata as text.

    MX becomes "preference exchange", SOA becomes "mname rname", TXT
    yields one item per character-string, names lose the final dot.
    """
    if record_type in (DNSRecordType.A.value, DNSRecordType.AAAA.value):
        return [rdata.address]
    if record_type == DNSRecordType.MX.value:
        return [f"{rdata.preference} {rdata.exchange.to_text(omit_final_dot=True)}"]
    if record_type in (DNSRecordType.CNAME.value, DNSRecordType.NS.value):
        return [rdata.target.to_text(omit_final_dot=True)]
    if record_type == DNSRecordType.TXT.value:
        return [chunk.decode("utf-8", errors="replace") for chunk in rdata.strings]
    if record_type == DNSRecordType.SOA.value:
        return [
            f"{rdata.mname.to_text(omit_final_dot=True)} "
            f"{rdata.rname.to_text(omit_final_dot=True)}"
        ]
    return [rdata.to_text()]


class DNSChecker(BaseChecker):
    """
    Resolves a domain and validates the answer.

    The hostname comes from ``monitor.url`` (scheme and path stripped).
    A resolver can be injected; otherwise the system configuration is
    used.
    """

    name = "dns"

    def __init__(self, settings=None, resolver: Optional[dns.asyncresolver.Resolver] = None, **kwargs):
        super().__init__(settings, **kwargs)
        self.resolver = resolver

    async def _query(self, hostname: str, record_type: str, lifetime: float) -> List[str]:
        resolver = self.resolver or dns.asyncresolver.Resolver()
        answer = await resolver.resolve(hostname, record_type, lifetime=lifetime)
        records: List[str] = []
        for rdata in answer:
            records.extend(normalize_record(record_type, rdata))
        return records

    async def _check(self, monitor: MonitorSnapshot) -> CheckResult:
        hostname = extract_host(monitor.url)
        record_type = (monitor.dns_record_type or DNSRecordType.A.value).upper()

        if record_type not in DNSRecordType.__members__:
            return CheckResult.failure(f"Unsupported record type: {record_type}")

        start = self.clock()
        try:
            records = await self._query(hostname, record_type, self._timeout(monitor))
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return CheckResult.failure("DNS record not found", response_ms=self._elapsed_ms(start))
        except dns.exception.Timeout:
            return CheckResult.failure("DNS timeout", response_ms=self._elapsed_ms(start))
        except dns.exception.DNSException as e:
            return CheckResult.failure(str(e) or "DNS check failed", response_ms=self._elapsed_ms(start))

        elapsed = self._elapsed_ms(start)
        resolved_value = ", ".join(records)
        payload = {"resolved_value": resolved_value, "records": records}

        expected = monitor.dns_expected_value
        if expected:
            found = any(expected.lower() in record.lower() for record in records)
            if not found:
                return CheckResult(
                    success=False,
                    response_ms=elapsed,
                    error=f'Expected "{expected}" not found in {resolved_value}',
                    payload=payload,
                )
            return CheckResult(success=True, response_ms=elapsed, payload=payload)

        if not records:
            return CheckResult(success=False, response_ms=elapsed, error="DNS record not found", payload=payload)

        logger.debug(f"[DNS] {hostname} ({record_type}) → {resolved_value} in {elapsed}ms")
        return CheckResult(success=True, response_ms=elapsed, payload=payload)
