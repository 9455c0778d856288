"""JSON cache over Valkey, namespaced by prefix.

The cache is best effort: connection or serialization failures are logged
and behave like a miss, so callers always fall through to recomputation.

Keys look like ``stockoptimizer:v1:<prefix>:<key>``; bumping the version
orphans every stored value at once.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from stockoptimizer.core.config import settings
from stockoptimizer.core.logging import get_logger

from .client import get_valkey_client

logger = get_logger("cache")

CACHE_NAMESPACE = "stockoptimizer"
CACHE_VERSION = "v1"


class Cache:
    """Prefixed JSON values with a default TTL.

    A TTL of 0 turns ``set`` into a no-op, which disables caching without
    touching call sites.
    """

    def __init__(self, prefix: str, default_ttl: Optional[int] = None):
        self.prefix = prefix.replace(":", "_")
        self.default_ttl = settings.cache_default_ttl if default_ttl is None else default_ttl

    def key(self, key: str) -> str:
        return f"{CACHE_NAMESPACE}:{CACHE_VERSION}:{self.prefix}:{key.replace(':', '_')}"

    async def get(self, key: str) -> Optional[Any]:
        full_key = self.key(key)
        try:
            client = await get_valkey_client()
            raw = await client.get(full_key)
        except Exception as e:
            logger.warning(f"Cache read of {full_key} failed: {e}")
            return None

        if raw is None:
            logger.debug(f"Cache miss: {full_key}")
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(f"Discarding undecodable cache value at {full_key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store ``value``; returns whether it was written."""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return False
        full_key = self.key(key)
        try:
            client = await get_valkey_client()
            await client.set(full_key, json.dumps(value, default=str), ex=ttl)
        except Exception as e:
            logger.warning(f"Cache write of {full_key} failed: {e}")
            return False
        logger.debug(f"Cached {full_key} for {ttl}s")
        return True

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key of this prefix whose suffix matches the glob ``pattern``.

        ``pattern`` is passed to SCAN MATCH as is; callers escape or encode
        user-supplied parts.
        """
        match = self.key(pattern or "*")
        try:
            client = await get_valkey_client()
            keys = [k async for k in client.scan_iter(match=match, count=100)]
            if keys:
                await client.delete(*keys)
        except Exception as e:
            logger.warning(f"Cache invalidation of {match} failed: {e}")
            return 0
        if keys:
            logger.info(f"Invalidated {len(keys)} cache keys matching {match}")
        return len(keys)
