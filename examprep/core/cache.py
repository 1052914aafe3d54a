import json
import logging
from typing import Any, Callable, Optional

import redis

from examprep.core.config import settings

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None


def get_client() -> redis.Redis:
    global _client
    if _client is None:
        _client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def pyq_stats_key() -> str:
    return "pyq:stats"


def cached_json(key: str, ttl: int, loader: Callable[[], Any]) -> Any:
    """Return the JSON value stored at key, computing and storing it on a miss.

    A ttl of 0 bypasses the cache. Redis failures fall back to the loader.
    """
    if ttl <= 0:
        return loader()
    client = get_client()
    try:
        raw = client.get(key)
    except redis.RedisError as e:
        logger.error(f"Cache get error: {e}")
        return loader()
    if raw is not None:
        return json.loads(raw)
    value = loader()
    try:
        client.set(key, json.dumps(value, default=str), ex=ttl)
    except redis.RedisError as e:
        logger.error(f"Cache set error: {e}")
    return value
