from __future__ import annotations

import time
from enum import Enum
from typing import Any, Mapping

import httpx

from loadharness.config import HttpClientConfig
from loadharness.metrics import TTFB_UNSET_MS, Measurement

REQUEST_METHOD = "POST"
REQUEST_BODY: Mapping[str, Any] = {
    "id": 1,
    "title": "Example Title",
    "content": "Example Content",
}
REQUEST_HEADERS: Mapping[str, str] = {"Content-Type": "application/json"}


class ErrorType(str, Enum):
    TIMEOUT = "timeout"
    CONNECT = "connect"
    READ = "read"
    OTHER = "other"


class TransportError(Exception):
    """The call never produced a complete response."""

    def __init__(self, url: str, error_type: ErrorType, cause: Exception, ttfb_ms: float) -> None:
        super().__init__(f"{error_type.value} error calling {url}: {cause!r}")
        self.url = url
        self.error_type = error_type
        self.ttfb_ms = ttfb_ms


def create_client(
    config: HttpClientConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    limits = httpx.Limits(
        max_connections=config.max_connections,
        max_keepalive_connections=config.max_keepalive_connections,
        keepalive_expiry=config.keepalive_expiry_sec,
    )
    return httpx.AsyncClient(
        limits=limits,
        timeout=config.timeout_sec,
        transport=transport,
    )


def _classify(exc: Exception) -> ErrorType:
    if isinstance(exc, httpx.TimeoutException):
        return ErrorType.TIMEOUT
    if isinstance(exc, httpx.ConnectError):
        return ErrorType.CONNECT
    if isinstance(exc, httpx.ReadError):
        return ErrorType.READ
    return ErrorType.OTHER


async def send_request(client: httpx.AsyncClient, url: str) -> Measurement:
    """One timed POST. TTFB is taken when headers arrive, completion after the body."""
    ttfb_ms = TTFB_UNSET_MS
    start = time.perf_counter()
    try:
        async with client.stream(
            REQUEST_METHOD,
            url,
            json=dict(REQUEST_BODY),
            headers=dict(REQUEST_HEADERS),
        ) as resp:
            ttfb_ms = (time.perf_counter() - start) * 1000.0
            await resp.aread()
            end = time.perf_counter()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise TransportError(url, _classify(exc), exc, ttfb_ms) from exc
    return Measurement(
        started_at=start,
        completed_at=end,
        duration_ms=(end - start) * 1000.0,
        ttfb_ms=ttfb_ms,
        status_code=resp.status_code,
    )
