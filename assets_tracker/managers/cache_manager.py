from typing import Any, Optional
from assets_tracker.core.redis_client import redis_client
from assets_tracker.core.logger import logger
import json


class CacheManager:
    """
    Read-through key-value side cache with explicit invalidation.

    The backing client only needs get/set/delete/incr/scan_iter, so any
    redis-compatible client can be injected.
    """

    def __init__(self, prefix: str = "", client=None):
        self.prefix = prefix.rstrip(":")
        self.client = client if client is not None else redis_client

    def _build_key(self, *parts: Any, user_id: Optional[str] = None) -> str:
        """builds a cache key: portfolio:user:42:history or quotes:AAPL"""
        segments = [self.prefix]
        if user_id is not None:
            segments.append(f"user:{user_id}")
        segments.extend(str(p) for p in parts if p is not None)
        return ":".join(segments)

    def get(self, *parts, user_id: Optional[str] = None):
        key = self._build_key(*parts, user_id=user_id)
        data = self.client.get(key)
        if data:
            logger.debug(f"Cache hit: {key}")
            return json.loads(data)
        logger.debug(f"Cache miss: {key}")
        return None

    def set(self, data: Any, *parts, user_id: Optional[str] = None, ttl: int = 300):
        key = self._build_key(*parts, user_id=user_id)
        self.client.set(key, json.dumps(data), ex=ttl)
        logger.debug(f"Cache set: {key} (TTL={ttl}s)")

    def delete(self, *parts, user_id: Optional[str] = None):
        key = self._build_key(*parts, user_id=user_id)
        self.client.delete(key)
        logger.debug(f"Cache deleted: {key}")

    def incr(self, *parts, user_id: Optional[str] = None) -> int:
        key = self._build_key(*parts, user_id=user_id)
        value = int(self.client.incr(key))
        logger.debug(f"Cache incremented: {key} -> {value}")
        return value

    def clear(self, pattern: Optional[str] = None):
        """Delete all cache entries matching the given pattern."""
        pattern = pattern or f"{self.prefix}*"
        count = 0
        for key in self.client.scan_iter(pattern):
            self.client.delete(key)
            count += 1
        logger.info(f"Cleared {count} cache entries for pattern '{pattern}'")
        return count
