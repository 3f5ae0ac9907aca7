"""
============================================================================
UPTIME ENGINE - HTTP / KEYWORD CHECKERS
============================================================================
HTTPChecker     ← issues the request via httpx, compares the status code
KeywordChecker  ← same request, then searches the body for a keyword
fetch_ssl_info  ← separate TLS handshake reading the certificate expiry

Any completed HTTP response is a non-exceptional outcome; only transport
failures (timeouts, refused connections, TLS errors) become error strings.
============================================================================
"""

import asyncio
import math
import ssl
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from config.constants import BODY_METHODS, DEFAULT_EXPECTED_CODE, KeywordMode
from config.settings import CheckSettings
from monitoring.checks.base import BaseChecker
from monitoring.models import CheckResult, MonitorSnapshot, SSLInfo
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("checks.http")

SSLFetcher = Callable[..., Awaitable[SSLInfo]]


# ============================================================================
# SSL CERTIFICATE METADATA
# ============================================================================

def _name_field(name: Any, key: str) -> Optional[str]:
    """Pull one attribute out of an ssl peercert distinguished name."""
    for rdn in name or ():
        for attr, value in rdn:
            if attr == key:
                return value
    return None


def parse_peer_cert(cert: Dict[str, Any], now: datetime) -> SSLInfo:
    """
    Turn the dict returned by ``SSLObject.getpeercert()`` into SSLInfo.

    Parameters
    ----------
    cert : dict
        Decoded peer certificate.
    now : datetime
        Reference time for the day count.

    Returns
    -------
    SSLInfo
        ``days_remaining`` is rounded up to whole days.
    """
    not_after = cert.get("notAfter")
    if not not_after:
        return SSLInfo(valid=False, error="Certificate has no expiry date")

    expires_at = datetime.fromtimestamp(ssl.cert_time_to_seconds(not_after), tz=timezone.utc)
    days_remaining = math.ceil((expires_at - now).total_seconds() / 86400)

    issuer = (
        _name_field(cert.get("issuer"), "organizationName")
        or _name_field(cert.get("issuer"), "commonName")
        or "Unknown"
    )
    subject = _name_field(cert.get("subject"), "commonName") or "Unknown"

    return SSLInfo(
        expires_at=expires_at,
        days_remaining=days_remaining,
        issuer=issuer,
        subject=subject,
        valid=days_remaining > 0,
    )


async def fetch_ssl_info(
    host: str,
    port: int = 443,
    timeout: float = 10.0,
    now: Optional[datetime] = None,
) -> SSLInfo:
    """
    Open a verified TLS connection and read the peer certificate.

    The standard library only decodes certificates that pass verification,
    so an untrusted or expired certificate is reported through ``error``
    with no day count.
    """
    now = now or TimeHelper.get_utc_now()
    context = ssl.create_default_context()

    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port, ssl=context, server_hostname=host),
            timeout=timeout,
        )
    except ssl.SSLCertVerificationError as e:
        return SSLInfo(valid=False, error=f"Certificate verification failed: {e.verify_message}")
    except asyncio.TimeoutError:
        return SSLInfo(valid=False, error="TLS handshake timeout")
    except (ssl.SSLError, OSError) as e:
        return SSLInfo(valid=False, error=f"TLS error: {str(e)[:200]}")

    try:
        ssl_object = writer.get_extra_info("ssl_object")
        cert = ssl_object.getpeercert() if ssl_object else None
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except (ssl.SSLError, OSError):
            pass  # peer may drop the connection first

    if not cert:
        return SSLInfo(valid=False, error="No peer certificate")

    return parse_peer_cert(cert, now)


# ============================================================================
# HTTP CHECKER
# ============================================================================

class HTTPChecker(BaseChecker):
    """
    Performs HTTP / HTTPS monitoring using the httpx async client.

    Features
    --------
    • Honours the monitor's method, headers and body (POST/PUT/PATCH)
    • Success means the status code equals the expected code
    • Optional certificate expiry lookup for https targets
    • Transport is injectable so tests can use httpx.MockTransport
    """

    name = "http"

    def __init__(
        self,
        settings: Optional[CheckSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        ssl_fetcher: Optional[SSLFetcher] = None,
        **kwargs: Any,
    ):
        super().__init__(settings, **kwargs)
        self.transport = transport
        self.ssl_fetcher = ssl_fetcher or fetch_ssl_info

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=self.settings.follow_redirects,
            transport=self.transport,
            headers={"User-Agent": self.settings.user_agent},
        )

    async def _send(self, monitor: MonitorSnapshot) -> Tuple[Optional[httpx.Response], int, Optional[str]]:
        """
        Issue the request.

        Returns
        -------
        tuple
            (response or None, elapsed ms, transport error or None)
        """
        timeout = self._timeout(monitor)
        method = (monitor.method or "GET").upper()
        content = monitor.body if method in BODY_METHODS and monitor.body else None

        start = self.clock()
        try:
            async with self._client(timeout) as client:
                response = await client.request(
                    method,
                    monitor.url,
                    headers=dict(monitor.headers or {}),
                    content=content,
                )
            return response, self._elapsed_ms(start), None

        except httpx.TimeoutException:
            return None, self._elapsed_ms(start), f"Timeout after {int(timeout * 1000)}ms"
        except httpx.ConnectError as e:
            return None, self._elapsed_ms(start), f"Connection error: {(str(e) or 'connection failed')[:200]}"
        except httpx.HTTPError as e:
            return None, self._elapsed_ms(start), f"Request failed: {(str(e) or type(e).__name__)[:200]}"
        except ssl.SSLError as e:
            return None, self._elapsed_ms(start), f"SSL error: {str(e)[:200]}"

    async def _ssl_info(self, monitor: MonitorSnapshot) -> Optional[SSLInfo]:
        if not monitor.ssl_check or not (monitor.url or "").lower().startswith("https://"):
            return None

        parts = urlsplit(monitor.url)
        if not parts.hostname:
            return None

        try:
            return await self.ssl_fetcher(
                parts.hostname,
                parts.port or 443,
                timeout=self.settings.ssl_timeout_seconds,
                now=self.now(),
            )
        except Exception as e:
            logger.warning(f"[SSL] certificate lookup for {parts.hostname} failed: {e}")
            return SSLInfo(valid=False, error=str(e)[:200])

    async def _check(self, monitor: MonitorSnapshot) -> CheckResult:
        response, elapsed, error = await self._send(monitor)
        if response is None:
            logger.debug(f"[HTTP] {monitor.url} → {error}")
            return CheckResult(success=False, response_ms=elapsed, error=error)

        expected = monitor.expected_code or DEFAULT_EXPECTED_CODE
        success = response.status_code == expected
        if not success:
            error = f"Expected {expected}, got {response.status_code}"

        logger.debug(f"[HTTP] {monitor.url} → {response.status_code} in {elapsed}ms")

        return CheckResult(
            success=success,
            response_ms=elapsed,
            status_code=response.status_code,
            error=error,
            ssl=await self._ssl_info(monitor),
        )


# ============================================================================
# KEYWORD CHECKER
# ============================================================================

class KeywordChecker(HTTPChecker):
    """
    HTTP request followed by a case-insensitive substring search of the
    body. ``keyword_type`` selects whether the keyword must be present
    (contains) or absent (not_contains).
    """

    name = "keyword"

    async def _check(self, monitor: MonitorSnapshot) -> CheckResult:
        response, elapsed, error = await self._send(monitor)
        if response is None:
            return CheckResult(success=False, response_ms=elapsed, error=error, payload={"keyword_found": False})

        status = response.status_code
        if status < 200 or status >= 400:
            return CheckResult(
                success=False,
                response_ms=elapsed,
                status_code=status,
                error=f"HTTP {status}",
                payload={"keyword_found": False},
            )

        keyword = monitor.keyword
        if not keyword:
            return CheckResult(
                success=False,
                response_ms=elapsed,
                status_code=status,
                error="No keyword specified",
                payload={"keyword_found": False},
            )

        found = keyword.lower() in response.text.lower()

        if monitor.keyword_type == KeywordMode.NOT_CONTAINS.value:
            success = not found
            error = None if success else f'Keyword "{keyword}" found (should not be present)'
        else:
            success = found
            error = None if success else f'Keyword "{keyword}" not found'

        return CheckResult(
            success=success,
            response_ms=elapsed,
            status_code=status,
            error=error,
            payload={"keyword_found": found},
        )
