"""HTTP client management for upstream calls."""

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Only reads are ever repeated; uploads and writes get a single attempt.
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})

DEFAULT_HEADERS = {
    "User-Agent": "stream-ingest-pipeline/0.3",
    "Accept": "*/*",
}

# Global client cache
_clients: dict[str, httpx.AsyncClient] = {}


def get_client(
    name: str = "default",
    timeout: float = 30.0,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Get or create a cached async HTTP client.

    Clients are reused to benefit from connection pooling. The ``external``
    client used for arbitrary source URLs never carries store credentials.

    Args:
        name: Client name for caching (use different names for different purposes)
        timeout: Per-request timeout in seconds
        headers: Extra default headers
        transport: Optional transport (tests pass ``httpx.MockTransport``)

    Returns:
        Configured httpx.AsyncClient instance
    """
    client = _clients.get(name)
    if client is not None and not client.is_closed:
        return client

    client = httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={**DEFAULT_HEADERS, **(headers or {})},
        follow_redirects=True,
        transport=transport,
    )
    _clients[name] = client
    return client


async def close_client(name: str = "default") -> None:
    """
    Close and remove a cached client.

    Args:
        name: Client name to close
    """
    client = _clients.pop(name, None)
    if client is not None:
        await client.aclose()


async def close_all_clients() -> None:
    """Close all cached clients."""
    for client in list(_clients.values()):
        await client.aclose()
    _clients.clear()


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    attempts: int = 3,
    backoff_factor: float = 0.5,
    **kwargs: Any,
) -> httpx.Response:
    """
    Issue an idempotent request, retrying transport errors and retryable statuses.

    Args:
        client: Client to send with
        method: HTTP method, must be idempotent
        url: Request URL
        attempts: Total attempts including the first
        backoff_factor: Delay multiplier (delay = backoff_factor * 2 ** attempt)
        **kwargs: Additional arguments passed to ``client.request``

    Returns:
        The last response received

    Raises:
        ValueError: If the method is not idempotent
        httpx.TransportError: If every attempt failed at the transport level
    """
    method = method.upper()
    if method not in IDEMPOTENT_METHODS:
        raise ValueError(f"Refusing to retry non-idempotent method {method}")

    attempts = max(1, attempts)
    for attempt in range(attempts):
        last = attempt == attempts - 1
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if last:
                raise
            logger.debug("Retrying %s %s after transport error: %s", method, url, e)
        else:
            if response.status_code not in RETRY_STATUSES or last:
                return response
            logger.debug("Retrying %s %s after HTTP %s", method, url, response.status_code)

        await asyncio.sleep(backoff_factor * (2**attempt))

    raise RuntimeError("unreachable")  # pragma: no cover
