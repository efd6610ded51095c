from __future__ import annotations

import json
import logging
from typing import Any

import redis
import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60 * 24


class ResultCache:
    """
    Async TTL cache backed by Redis.

    Usage:

        value = await cache.get("k")            # read
        await cache.set("k", value, ttl=60)     # write with TTL

    - On read: returns cached value (deserialized JSON) or None if missing/expired.
    - Redis failures are logged and treated as cache misses; a cache outage
      never fails a retrieval call.
    """

    def __init__(self, redis_url: str, prefix: str = "lead_intel") -> None:
        self._redis_url = redis_url
        self._prefix = prefix

    def _client(self) -> aioredis.Redis:
        # Fresh client per call so Celery workers don't hold onto closed event loops.
        return aioredis.from_url(
            self._redis_url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> Any:
        client = self._client()
        try:
            val = await client.get(self._key(key))
            if val is not None:
                return json.loads(val)
            return None
        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None
        finally:
            await client.aclose()

    async def set(self, key: str, value: Any, ttl: int | None = DEFAULT_TTL_SECONDS) -> None:
        client = self._client()
        try:
            serialized = json.dumps(value)
            if ttl is not None:
                await client.set(self._key(key), serialized, ex=ttl)
            else:
                await client.set(self._key(key), serialized)
        except redis.RedisError as e:
            logger.warning("Cache write failed for %s: %s", key, e)
        finally:
            await client.aclose()
