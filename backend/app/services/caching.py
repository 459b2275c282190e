from __future__ import annotations

import json
from typing import Any

import redis
from ..core.config import get_settings

settings = get_settings()


def _get_sync_redis() -> redis.Redis:
    """
    Create a fresh sync Redis client per call so Celery workers
    don't hold onto closed event loops.
    """
    return redis.from_url(
        str(settings.REDIS_URL),
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
    )


def cached_get(
    key: str,
    set_value: Any | None = None,
    ttl: int | None = None,
) -> Any:
    """
    TTL cache backed by Redis.

        value = cached_get("k")                  # read
        cached_get("k", set_value=value, ttl=60) # write with TTL

    Returns None on a miss or when Redis is unreachable, so callers always
    fall through to the live source.
    """
    client = _get_sync_redis()
    try:
        if set_value is None:
            val = client.get(key)
            if val is not None:
                return json.loads(val)
            return None

        serialized = json.dumps(set_value, default=str)
        if ttl is not None:
            client.set(key, serialized, ex=ttl)
        else:
            client.set(key, serialized)
        return set_value

    except redis.RedisError:
        return None
    finally:
        try:
            client.close()
        except redis.RedisError:
            pass


def invalidate(prefix: str) -> int:
    """Delete every key starting with `prefix`. Returns the number removed."""
    client = _get_sync_redis()
    try:
        keys = list(client.scan_iter(match=f"{prefix}*"))
        if not keys:
            return 0
        return int(client.delete(*keys))
    except redis.RedisError:
        return 0
    finally:
        try:
            client.close()
        except redis.RedisError:
            pass
