"""Redis client for Idempotency-Key replay.

Mutating HTTP commands may carry an ``Idempotency-Key`` header. The first
response for a key is cached; a retry with the same key gets the cached
response instead of running the command again.

Usage:
    from marketplace_escrow.infrastructure.redis_client import init_redis, IdempotencyCache

    cache = IdempotencyCache(await init_redis())
    cached = await cache.lookup("orders.accept", key)
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis
from tenacity import retry, stop_after_attempt, wait_exponential

from marketplace_escrow.config import get_settings
from marketplace_escrow.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    reraise=True,
)
async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup.

    Connection failures are retried with exponential backoff before the
    caller gives up and runs without idempotency replay.
    """
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis | None:
    """Return the Redis client singleton, or None when it was never initialized."""
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency ---


class IdempotencyCache:
    """Caches command responses by (scope, Idempotency-Key)."""

    def __init__(self, redis: aioredis.Redis, ttl_seconds: int | None = None) -> None:
        self._redis = redis
        self._ttl = ttl_seconds or get_settings().redis_idempotency_ttl_seconds

    @staticmethod
    def _key(scope: str, key: str) -> str:
        return f"idempotency:{scope}:{key}"

    async def lookup(self, scope: str, key: str) -> dict[str, Any] | None:
        """Return the cached response for this key, if any."""
        raw = await self._redis.get(self._key(scope, key))
        if raw is None:
            return None
        logger.info("idempotency.replayed", scope=scope, key=key)
        return json.loads(raw)

    async def remember(self, scope: str, key: str, response: dict[str, Any]) -> bool:
        """Store the first response for this key. Returns False if one already existed."""
        stored = await self._redis.set(
            self._key(scope, key),
            json.dumps(response, default=str),
            ex=self._ttl,
            nx=True,
        )
        return bool(stored)
