"""Shared HTTP client with connection pooling."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_http_client: Optional[httpx.AsyncClient] = None

DEFAULT_TIMEOUT = 30.0


def get_http_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    """Return the process-wide HTTP client, creating it on first use."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            follow_redirects=True,
        )
        logger.debug("Created shared HTTP client (timeout=%.1fs)", timeout)
    return _http_client


async def close_http_client():
    """Close the shared HTTP client if it was created."""
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
        logger.debug("Closed shared HTTP client")
    _http_client = None
