"""
============================================================================
UPTIME ENGINE - PORT CHECKER
============================================================================
TCP: a completed connect inside the timeout means the port is open.
UDP: an empty datagram is sent; a reply or silence until the timeout
     counts as open, an ICMP port-unreachable counts as closed.
============================================================================
"""

import asyncio
import socket
from typing import List, Optional, Tuple

from config.constants import PortProtocol
from monitoring.checks.base import BaseChecker
from monitoring.models import CheckResult, MonitorSnapshot
from utils.helpers import extract_host
from utils.logger import get_logger


logger = get_logger("checks.port")


class _UDPProbe(asyncio.DatagramProtocol):
    """Resolves ``done`` on the first reply or socket error."""

    def __init__(self, done: asyncio.Future):
        self.done = done

    def datagram_received(self, data: bytes, addr) -> None:
        if not self.done.done():
            self.done.set_result(True)

    def error_received(self, exc: Exception) -> None:
        if not self.done.done():
            self.done.set_exception(exc)


def _reason(exc: OSError) -> str:
    return exc.strerror or str(exc) or type(exc).__name__


class PortChecker(BaseChecker):
    """
    Raw TCP / UDP reachability check.

    The host comes from ``monitor.url`` (a bare host or any URL) and the
    port from ``monitor.port``.
    """

    name = "port"

    async def _resolve(self, host: str, port: int, sock_type: int) -> List[Tuple]:
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(host, port, type=sock_type)
        return [(family, sockaddr) for family, _, _, _, sockaddr in infos]

    async def _check(self, monitor: MonitorSnapshot) -> CheckResult:
        host = extract_host(monitor.url)
        port = monitor.port
        if not port:
            return CheckResult.failure("Port not specified")

        protocol = (monitor.port_protocol or PortProtocol.TCP.value).lower()
        timeout = self._timeout(monitor)
        start = self.clock()

        if protocol == PortProtocol.TCP.value:
            error = await self._probe_tcp(host, port, timeout)
            payload = {}
        elif protocol == PortProtocol.UDP.value:
            error, inconclusive = await self._probe_udp(host, port, timeout)
            payload = {"inconclusive": inconclusive}
        else:
            return CheckResult.failure(f"Unknown protocol: {protocol}")

        elapsed = self._elapsed_ms(start)
        if error:
            logger.debug(f"[PORT] {host}:{port}/{protocol} → {error}")
        return CheckResult(success=error is None, response_ms=elapsed, error=error, payload=payload)

    async def _probe_tcp(self, host: str, port: int, timeout: float) -> Optional[str]:
        """Return None when the connect succeeds, else the error string."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            addresses = await asyncio.wait_for(
                self._resolve(host, port, socket.SOCK_STREAM), timeout=timeout
            )
        except asyncio.TimeoutError:
            return f"Port {port} timeout"
        except OSError as e:
            return f"Port {port}: {_reason(e)}"

        last_error: Optional[str] = None
        for _, sockaddr in addresses:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return f"Port {port} timeout"
            try:
                _, writer = await asyncio.wait_for(
                    asyncio.open_connection(sockaddr[0], port), timeout=remaining
                )
            except asyncio.TimeoutError:
                return f"Port {port} timeout"
            except ConnectionRefusedError:
                last_error = f"Port {port} closed"
                continue
            except OSError as e:
                last_error = last_error or f"Port {port}: {_reason(e)}"
                continue

            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass  # connection already reset
            return None

        return last_error or f"Port {port}: no address for {host}"

    async def _probe_udp(self, host: str, port: int, timeout: float) -> Tuple[Optional[str], bool]:
        """Return (error, inconclusive)."""
        loop = asyncio.get_running_loop()

        try:
            addresses = await asyncio.wait_for(
                self._resolve(host, port, socket.SOCK_DGRAM), timeout=timeout
            )
        except asyncio.TimeoutError:
            return f"UDP port {port}: resolution timeout", False
        except OSError as e:
            return f"UDP port {port}: {_reason(e)}", False

        if not addresses:
            return f"UDP port {port}: no address for {host}", False

        family, sockaddr = addresses[0]
        done: asyncio.Future = loop.create_future()

        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _UDPProbe(done), remote_addr=sockaddr[:2], family=family
            )
        except OSError as e:
            return f"UDP send failed: {_reason(e)}", False

        try:
            transport.sendto(b"")
            await asyncio.wait_for(done, timeout=timeout)
            return None, False
        except asyncio.TimeoutError:
            # No reply and no ICMP refusal: the port may be open but silent
            return None, True
        except ConnectionRefusedError:
            return f"UDP port {port} refused", False
        except OSError as e:
            return f"UDP port {port}: {_reason(e)}", False
        finally:
            transport.close()
