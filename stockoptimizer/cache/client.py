"""Valkey connections.

redis.asyncio clients keep sockets bound to the event loop that opened them,
so one client (and its connection pool) is kept per running loop. The
service runs a single loop; test clients bring their own.
"""

from __future__ import annotations

import asyncio

from redis.asyncio import Redis

from stockoptimizer.core.config import settings
from stockoptimizer.core.logging import get_logger


logger = get_logger("cache.client")

SOCKET_TIMEOUT = 5.0
PING_TIMEOUT = 2.0

_clients: dict[int, Redis] = {}


def _loop_key() -> int:
    return id(asyncio.get_running_loop())


async def get_valkey_client() -> Redis:
    """Client of the running loop, created on first use."""
    key = _loop_key()
    client = _clients.get(key)
    if client is None:
        client = Redis.from_url(
            settings.valkey_url,
            max_connections=settings.valkey_max_connections,
            decode_responses=True,
            socket_timeout=SOCKET_TIMEOUT,
            socket_connect_timeout=SOCKET_TIMEOUT,
            retry_on_timeout=True,
        )
        _clients[key] = client
        logger.info(f"Valkey client created (pool size {settings.valkey_max_connections})")
    return client


async def close_valkey_client() -> None:
    """Close the running loop's client together with its pool."""
    client = _clients.pop(_loop_key(), None)
    if client is not None:
        await client.aclose()
        logger.info("Valkey client closed")


async def valkey_healthcheck() -> bool:
    try:
        client = await get_valkey_client()
        return bool(await asyncio.wait_for(client.ping(), timeout=PING_TIMEOUT))
    except Exception as e:
        logger.warning(f"Valkey ping failed: {e}")
        return False
