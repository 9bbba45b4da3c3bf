"""Shared HTTP client manager.

Keeps one pooled httpx.AsyncClient per client id so repeated feed refreshes
reuse connections instead of opening a client per fetch.
"""

import asyncio
import logging
from typing import Optional

import httpx

from . import __version__

logger = logging.getLogger(__name__)

_shared_clients: dict[str, httpx.AsyncClient] = {}
_client_lock: Optional[asyncio.Lock] = None

DEFAULT_LIMITS = httpx.Limits(max_connections=8, max_keepalive_connections=4)

DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=30.0)

DEFAULT_HEADERS = {
    "User-Agent": f"roomstats/{__version__}",
    "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.1",
}


def _get_lock() -> asyncio.Lock:
    # Created lazily so the lock binds to the running loop
    global _client_lock
    if _client_lock is None:
        _client_lock = asyncio.Lock()
    return _client_lock


async def get_shared_client(
    client_id: str = "default",
    limits: Optional[httpx.Limits] = None,
    timeout: Optional[httpx.Timeout] = None,
) -> httpx.AsyncClient:
    """Get or create a shared HTTP client with connection pooling.

    Args:
        client_id: Identifier for the client (allows multiple clients if needed)
        limits: Custom connection limits
        timeout: Custom timeout configuration

    Returns:
        Shared httpx.AsyncClient
    """
    async with _get_lock():
        client = _shared_clients.get(client_id)
        if client is None or client.is_closed:
            effective_limits = limits or DEFAULT_LIMITS
            logger.debug(
                "Creating shared HTTP client '%s' with limits: max_connections=%s, max_keepalive=%s",
                client_id,
                effective_limits.max_connections,
                effective_limits.max_keepalive_connections,
            )
            client = httpx.AsyncClient(
                limits=effective_limits,
                timeout=timeout or DEFAULT_TIMEOUT,
                follow_redirects=True,
                verify=True,
                headers=DEFAULT_HEADERS,
            )
            _shared_clients[client_id] = client
            logger.info("Created shared HTTP client '%s'", client_id)
        return client


async def close_all_clients() -> None:
    """Close all shared HTTP clients.

    Called during application shutdown and between tests.
    """
    global _client_lock
    clients = list(_shared_clients.items())
    _shared_clients.clear()
    for client_id, client in clients:
        try:
            if not client.is_closed:
                await client.aclose()
                logger.debug("Closed shared HTTP client '%s'", client_id)
        except Exception as e:
            logger.warning("Error closing shared HTTP client '%s': %s", client_id, e)
    _client_lock = None
