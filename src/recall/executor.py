"""
Request execution for Recall.

This module re-issues stored requests and turns the exchange into snapshots
the History service can record. It is glue around httpx; the history core
never performs network I/O itself.

Behavior:
    - Transport failures never raise: they come back as ExchangeResult.error
      with no response, which the pipeline treats as a failed exchange
    - Binary bodies are kept as base64 so every snapshot serializes to JSON
    - Redirects are followed and the timing covers the whole exchange
"""

import time
from dataclasses import dataclass

import httpx

from recall.schema import RequestSnapshot, ResponseSnapshot

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ExchangeResult:
    """
    Outcome of executing one request.

    Attributes:
        request: The request that was sent
        response: The response snapshot, None if no response arrived
        error: Transport error message if the exchange failed
        duration_ms: Wall time of the exchange
    """

    request: RequestSnapshot
    response: ResponseSnapshot | None = None
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.response is not None


def snapshot_response(response: httpx.Response, duration_ms: float = 0.0) -> ResponseSnapshot:
    """
    Convert an httpx response into a ResponseSnapshot.

    Args:
        response: A response whose body has been read
        duration_ms: Time the exchange took

    Returns:
        Snapshot with headers in wire order (duplicates kept)
    """
    return ResponseSnapshot.from_bytes(
        status_code=response.status_code,
        body=response.content,
        status_text=response.reason_phrase,
        headers=list(response.headers.multi_items()),
        duration_ms=duration_ms,
    )


def execute_request(
    request: RequestSnapshot,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.Client | None = None,
) -> ExchangeResult:
    """
    Send a request and capture the exchange.

    Args:
        request: The request to send
        timeout: Request timeout in seconds (ignored when client is given)
        client: Optional pre-configured client (e.g., with a mock transport)

    Returns:
        ExchangeResult with either a response or an error message
    """
    owns_client = client is None
    if client is None:
        client = httpx.Client(timeout=timeout, follow_redirects=True)

    started = time.perf_counter()
    try:
        response = client.request(
            request.method.value,
            request.url,
            headers=request.headers,
            content=request.body_bytes,
        )
        duration_ms = (time.perf_counter() - started) * 1000
        return ExchangeResult(
            request=request,
            response=snapshot_response(response, duration_ms),
            duration_ms=duration_ms,
        )
    except httpx.TimeoutException:
        return ExchangeResult(
            request=request,
            error=f"Request timed out after {timeout} seconds",
            duration_ms=(time.perf_counter() - started) * 1000,
        )
    except httpx.TooManyRedirects:
        return ExchangeResult(
            request=request,
            error="Too many redirects",
            duration_ms=(time.perf_counter() - started) * 1000,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return ExchangeResult(
            request=request,
            error=f"Request failed: {e}",
            duration_ms=(time.perf_counter() - started) * 1000,
        )
    finally:
        if owns_client:
            client.close()
