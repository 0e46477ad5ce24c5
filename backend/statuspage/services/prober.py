"""Prober service - performs one HTTP health check against a service URL.

A probe is a GET with a 10 second budget. If the GET fails at the transport
level (timeout, DNS, refused connection...) a single HEAD with a 5 second
budget is tried before the service is declared down. There are no further
retries, so one probe never takes longer than 15 seconds.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

import httpx

from ..config import settings
from ..utils.time_utils import utcnow

logger = logging.getLogger(__name__)

STATUS_OPERATIONAL = "operational"
STATUS_DEGRADED = "degraded"
STATUS_DOWN = "down"

GET_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# Substrings of socket errors, as raised through httpx.ConnectError
_DNS_ERROR_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
)
_REFUSED_ERROR_MARKERS = (
    "connection refused",
    "connect call failed",
    "actively refused",
)


@dataclass
class ProbeOutcome:
    """Result of one probe, as stored in the status history."""
    status: str  # operational, degraded, down
    response_time_ms: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    checked_at: datetime = field(default_factory=utcnow)


def classify_response(
    status_code: int,
    latency_ms: int,
    slow_response_ms: int = 2500,
) -> Tuple[str, Optional[str]]:
    """Map an HTTP status code and latency to (status, message).

    Auth-gated endpoints (401/403) count as up and a 404 is only degraded,
    since many root paths legitimately return it.
    """
    if 200 <= status_code < 300:
        if latency_ms > slow_response_ms:
            return (STATUS_DEGRADED, "Slow response")
        return (STATUS_OPERATIONAL, None)
    if status_code in (401, 403):
        return (STATUS_OPERATIONAL, None)
    if status_code == 429:
        return (STATUS_DEGRADED, "Rate limited (429)")
    if status_code == 404:
        return (STATUS_DEGRADED, "Page not found (404)")
    if status_code >= 500:
        return (STATUS_DOWN, f"Server error ({status_code})")
    if status_code >= 400:
        return (STATUS_DEGRADED, f"Client error ({status_code})")
    if 300 <= status_code < 400:
        # Redirects are followed, so a 3xx here still means the server answered
        return (STATUS_OPERATIONAL, None)
    return (STATUS_DEGRADED, f"Unexpected status ({status_code})")


def is_timeout(exc: BaseException) -> bool:
    """True for httpx timeouts and for the overall probe budget expiring."""
    return isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError))


def describe_transport_error(exc: BaseException, timeout: float = 10.0) -> str:
    """Human readable cause of a failed request made with a ``timeout`` budget."""
    if is_timeout(exc):
        return f"Request timeout (>{timeout:g}s)"

    text = str(exc)
    lowered = text.lower()
    if any(marker in lowered for marker in _DNS_ERROR_MARKERS):
        return "Domain not found (DNS error)"
    if any(marker in lowered for marker in _REFUSED_ERROR_MARKERS):
        return "Connection refused"
    return text or "Connection failed"


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ProberService:
    """Performs HTTP health checks with a GET to HEAD fallback."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        head_timeout: Optional[float] = None,
        slow_response_ms: Optional[int] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.probe_timeout_seconds
        self.head_timeout = head_timeout if head_timeout is not None else settings.head_timeout_seconds
        self.slow_response_ms = slow_response_ms if slow_response_ms is not None else settings.slow_response_ms
        self.user_agent = user_agent or settings.user_agent
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        # Disable SSL verification to handle self-signed certificates
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            verify=False,
            transport=self._transport,
        )

    async def _status_of(self, method: str, url: str, timeout: float, headers: dict) -> int:
        """Send one request and return its status code without reading the body."""
        async def send() -> int:
            async with self._client(timeout) as client:
                async with client.stream(method, url, headers=headers) as response:
                    return response.status_code

        # httpx timeouts are per phase; wait_for bounds the whole request
        return await asyncio.wait_for(send(), timeout=timeout)

    async def probe(self, url: str, timeout: Optional[float] = None) -> ProbeOutcome:
        """Check a URL and classify the outcome. Transport errors are never raised."""
        timeout = timeout if timeout is not None else self.timeout

        start = time.perf_counter()
        try:
            status_code = await self._status_of(
                "GET",
                url,
                timeout,
                {
                    "User-Agent": self.user_agent,
                    "Accept": GET_ACCEPT,
                    "Cache-Control": "no-cache",
                },
            )
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as e:
            get_error = e
        else:
            latency = _elapsed_ms(start)
            status, message = classify_response(status_code, latency, self.slow_response_ms)
            return ProbeOutcome(
                status=status,
                response_time_ms=latency,
                status_code=status_code,
                error_message=message,
            )

        logger.debug(f"GET {url} failed ({get_error!r}), falling back to HEAD")

        # Fallback to a quick HEAD request (some sites block GET or are heavy)
        head_start = time.perf_counter()
        try:
            status_code = await self._status_of(
                "HEAD",
                url,
                self.head_timeout,
                {"User-Agent": self.user_agent},
            )
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as e:
            logger.debug(f"HEAD {url} failed: {e!r}")
            return ProbeOutcome(
                status=STATUS_DOWN,
                response_time_ms=None if is_timeout(get_error) else _elapsed_ms(start),
                status_code=None,
                error_message=describe_transport_error(get_error, timeout),
            )

        latency = _elapsed_ms(head_start)
        status, message = classify_response(status_code, latency, self.slow_response_ms)
        return ProbeOutcome(
            status=status,
            response_time_ms=latency,
            status_code=status_code,
            error_message=f"Fallback HEAD: {message}" if message else None,
        )


# Global instance
prober_service = ProberService()
