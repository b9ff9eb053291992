"""
Redis-based idempotency store.

Implements the IdempotencyStore protocol so idempotency keys survive a
process restart and are shared between workers. Expiry is delegated to
Redis via SETEX.
"""

import json
import time
from typing import Any, Optional

import redis.asyncio as aioredis

from brale_core.resilience.idempotency import (
    DEFAULT_TTL_SECONDS,
    IdempotencyRecord,
)


class RedisIdempotencyStore:
    """
    Redis implementation of the idempotency store.

    Results must be JSON serializable; anything else is stored via str().
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        ttl: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = "idempotency:",
    ):
        """
        Initialize Redis idempotency store.

        Args:
            redis_client: Connected redis.asyncio client
            ttl: Time to live in seconds (default: 24 hours)
            key_prefix: Namespace prepended to every key
        """
        self.redis = redis_client
        self.ttl = int(ttl)
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisIdempotencyStore":
        """Create store with a client built from a redis:// URL."""
        return cls(aioredis.from_url(url, decode_responses=False), **kwargs)

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get_async(self, key: str) -> Optional[IdempotencyRecord]:
        """
        Get record by idempotency key.

        Args:
            key: Idempotency key

        Returns:
            Stored record or None if not found
        """
        value = await self.redis.get(self._full_key(key))
        if not value:
            return None

        payload = json.loads(value)
        return IdempotencyRecord(
            key=key,
            created_at=payload["created_at"],
            result=payload.get("result"),
        )

    async def set_async(self, key: str, result: Any) -> None:
        """
        Store result with TTL.

        Args:
            key: Idempotency key
            result: Value to store
        """
        serialized = json.dumps(
            {"created_at": time.time(), "result": result}, default=str
        )
        await self.redis.setex(self._full_key(key), self.ttl, serialized)

    async def delete_async(self, key: str) -> None:
        await self.redis.delete(self._full_key(key))

    async def exists_async(self, key: str) -> bool:
        exists = await self.redis.exists(self._full_key(key))
        return bool(exists)

    async def close(self) -> None:
        await self.redis.aclose()


__all__ = ["RedisIdempotencyStore"]
