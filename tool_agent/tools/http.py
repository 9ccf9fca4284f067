"""Shared async HTTP helper for the network-backed tools."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "tool-agent/0.1.0",
}


async def http_get(
    url: str,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = 30.0,
) -> httpx.Response:
    """
    Perform a GET request and return the response without raising on status.

    Callers inspect ``status_code`` themselves so that expected failures
    (unknown city, unknown coin) can be reported with a helpful message.
    Transport errors (DNS, connection refused, timeouts) propagate as
    ``httpx.HTTPError``.
    """
    merged_headers = {**DEFAULT_HEADERS, **(headers or {})}
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        logger.debug("GET %s params=%s", url, params)
        return await client.get(url, params=params, headers=merged_headers)
