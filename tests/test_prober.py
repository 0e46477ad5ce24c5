import asyncio

import httpx
import pytest

from statuspage.services.prober import (
    STATUS_DEGRADED,
    STATUS_DOWN,
    STATUS_OPERATIONAL,
    ProberService,
    classify_response,
    describe_transport_error,
)


def _prober(handler, **kwargs) -> ProberService:
    kwargs.setdefault("timeout", 1.0)
    kwargs.setdefault("head_timeout", 1.0)
    kwargs.setdefault("user_agent", "StatusPage-Monitor/1.0")
    return ProberService(transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.parametrize(
    "status_code,latency,expected",
    [
        (200, 100, (STATUS_OPERATIONAL, None)),
        (204, 2500, (STATUS_OPERATIONAL, None)),
        (200, 2501, (STATUS_DEGRADED, "Slow response")),
        (200, 3000, (STATUS_DEGRADED, "Slow response")),
        (401, 50, (STATUS_OPERATIONAL, None)),
        (403, 50, (STATUS_OPERATIONAL, None)),
        (429, 50, (STATUS_DEGRADED, "Rate limited (429)")),
        (404, 50, (STATUS_DEGRADED, "Page not found (404)")),
        (500, 50, (STATUS_DOWN, "Server error (500)")),
        (503, 50, (STATUS_DOWN, "Server error (503)")),
        (418, 50, (STATUS_DEGRADED, "Client error (418)")),
        (301, 50, (STATUS_OPERATIONAL, None)),
        (101, 50, (STATUS_DEGRADED, "Unexpected status (101)")),
    ],
)
def test_classify_response(status_code, latency, expected) -> None:
    assert classify_response(status_code, latency) == expected


def test_describe_transport_error() -> None:
    assert describe_transport_error(httpx.ReadTimeout("read timed out")) == "Request timeout (>10s)"
    assert describe_transport_error(asyncio.TimeoutError()) == "Request timeout (>10s)"
    assert describe_transport_error(httpx.ConnectTimeout("timed out"), timeout=30.0) == "Request timeout (>30s)"
    assert describe_transport_error(asyncio.TimeoutError(), timeout=2.5) == "Request timeout (>2.5s)"
    assert (
        describe_transport_error(httpx.ConnectError("[Errno -2] Name or service not known"))
        == "Domain not found (DNS error)"
    )
    assert describe_transport_error(httpx.ConnectError("[Errno 111] Connection refused")) == "Connection refused"
    assert describe_transport_error(httpx.ConnectError("TLS handshake failed")) == "TLS handshake failed"
    assert describe_transport_error(httpx.ConnectError("")) == "Connection failed"


@pytest.mark.asyncio
async def test_probe_operational_sends_get_with_headers() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="ok")

    outcome = await _prober(handler).probe("https://example.com/")

    assert outcome.status == STATUS_OPERATIONAL
    assert outcome.status_code == 200
    assert outcome.error_message is None
    assert outcome.response_time_ms is not None and outcome.response_time_ms >= 0

    assert len(seen) == 1
    request = seen[0]
    assert request.method == "GET"
    assert request.headers["User-Agent"] == "StatusPage-Monitor/1.0"
    assert request.headers["Cache-Control"] == "no-cache"
    assert request.headers["Accept"].startswith("text/html")


@pytest.mark.asyncio
async def test_probe_server_error_is_down_without_head() -> None:
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        return httpx.Response(503)

    outcome = await _prober(handler).probe("https://example.com/")

    assert outcome.status == STATUS_DOWN
    assert outcome.status_code == 503
    assert outcome.error_message == "Server error (503)"
    assert methods == ["GET"]


@pytest.mark.asyncio
async def test_probe_follows_redirects() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": "https://example.com/new"})
        return httpx.Response(200)

    outcome = await _prober(handler).probe("https://example.com/old")

    assert outcome.status == STATUS_OPERATIONAL
    assert outcome.status_code == 200


@pytest.mark.asyncio
async def test_probe_slow_response_is_degraded() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200)

    # Any latency exceeds a negative threshold
    outcome = await _prober(handler, slow_response_ms=-1).probe("https://example.com/")

    assert outcome.status == STATUS_DEGRADED
    assert outcome.error_message == "Slow response"


@pytest.mark.asyncio
async def test_get_failure_falls_back_to_head() -> None:
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        if request.method == "GET":
            raise httpx.RemoteProtocolError("Server disconnected", request=request)
        return httpx.Response(200)

    outcome = await _prober(handler).probe("https://example.com/")

    assert methods == ["GET", "HEAD"]
    assert outcome.status == STATUS_OPERATIONAL
    assert outcome.status_code == 200
    assert outcome.error_message is None


@pytest.mark.asyncio
async def test_head_fallback_message_is_prefixed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)
        return httpx.Response(405)

    outcome = await _prober(handler).probe("https://example.com/")

    assert outcome.status == STATUS_DEGRADED
    assert outcome.status_code == 405
    assert outcome.error_message == "Fallback HEAD: Client error (405)"


@pytest.mark.asyncio
async def test_both_requests_refused_is_down() -> None:
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

    outcome = await _prober(handler).probe("https://example.com/")

    assert methods == ["GET", "HEAD"]
    assert outcome.status == STATUS_DOWN
    assert outcome.status_code is None
    assert outcome.error_message == "Connection refused"
    # Not a timeout: elapsed time is still reported
    assert outcome.response_time_ms is not None


@pytest.mark.asyncio
async def test_dns_failure_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

    outcome = await _prober(handler).probe("https://nonexistent.invalid/")

    assert outcome.status == STATUS_DOWN
    assert outcome.error_message == "Domain not found (DNS error)"


@pytest.mark.asyncio
async def test_timeout_is_down_without_response_time() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200)

    prober = _prober(handler, timeout=0.05, head_timeout=0.05)
    outcome = await prober.probe("https://slow.example.com/")

    assert outcome.status == STATUS_DOWN
    assert outcome.status_code is None
    assert outcome.response_time_ms is None
    assert outcome.error_message == "Request timeout (>0.05s)"



@pytest.mark.asyncio
async def test_timeout_message_uses_per_call_budget() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200)

    prober = _prober(handler, timeout=10.0, head_timeout=0.05)
    outcome = await prober.probe("https://slow.example.com/", timeout=0.1)

    assert outcome.status == STATUS_DOWN
    assert outcome.error_message == "Request timeout (>0.1s)"
