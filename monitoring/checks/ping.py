"""
============================================================================
UPTIME ENGINE - PING CHECKER
============================================================================
ICMP needs raw sockets, so reachability is approximated: resolve the
IPv4 address, then try a TCP connect on 443, 80 and 22 in that order.
The whole probe shares one deadline.
============================================================================
"""

import asyncio
import ipaddress
from typing import List, Optional, Sequence

import dns.asyncresolver
import dns.exception

from config.constants import PING_PORTS
from monitoring.checks.base import BaseChecker
from monitoring.models import CheckResult, MonitorSnapshot
from utils.helpers import extract_host
from utils.logger import get_logger


logger = get_logger("checks.ping")


class PingChecker(BaseChecker):
    """TCP-connect approximation of ping."""

    name = "ping"

    def __init__(self, settings=None, ports: Sequence[int] = PING_PORTS, **kwargs):
        super().__init__(settings, **kwargs)
        self.ports = tuple(ports)

    async def _resolve4(self, host: str, lifetime: float) -> List[str]:
        try:
            ipaddress.IPv4Address(host)
            return [host]
        except ValueError:
            pass

        resolver = dns.asyncresolver.Resolver()
        answer = await resolver.resolve(host, "A", lifetime=lifetime)
        return [rdata.address for rdata in answer]

    async def _connect(self, address: str, port: int, timeout: float) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port), timeout=timeout
            )
        except (asyncio.TimeoutError, OSError):
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass  # connection already reset
        return True

    async def _check(self, monitor: MonitorSnapshot) -> CheckResult:
        host = extract_host(monitor.url)
        timeout = self._timeout(monitor)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        start = self.clock()

        try:
            addresses = await self._resolve4(host, timeout)
        except (dns.exception.DNSException, OSError):
            addresses = []

        if not addresses:
            return CheckResult.failure("DNS resolution failed", response_ms=self._elapsed_ms(start))

        address = addresses[0]
        reached: Optional[int] = None
        for port in self.ports:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            if await self._connect(address, port, remaining):
                reached = port
                break

        elapsed = self._elapsed_ms(start)
        if reached is None:
            logger.debug(f"[PING] {host} ({address}) unreachable on {self.ports}")
            return CheckResult.failure("Host unreachable", response_ms=elapsed, address=address)

        return CheckResult(
            success=True,
            response_ms=elapsed,
            payload={"address": address, "port": reached},
        )
