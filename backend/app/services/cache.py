"""
Response cache for computed wallet figures.
Uses Redis when configured, otherwise an in-process dict with expiry.
"""
import json
import logging
import time
from typing import Any, Optional

try:
    import redis
    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False

from ..config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """Cache service with Redis backend and in-memory fallback"""

    def __init__(self, redis_url: Optional[str] = None):
        self._redis_client: Optional[Any] = None
        self._memory_cache: dict[str, tuple[float, Any]] = {}
        self._use_redis = False

        url = settings.cache.redis_url if redis_url is None else redis_url
        if REDIS_AVAILABLE and url:
            try:
                self._redis_client = redis.from_url(
                    url,
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
                self._redis_client.ping()
                self._use_redis = True
                logger.info("Redis cache initialized successfully")
            except Exception as e:
                logger.warning(f"Redis connection failed, using in-memory cache: {e}")
                self._redis_client = None
        else:
            logger.info("Using in-memory cache (Redis not configured)")

    @property
    def backend(self) -> str:
        return "redis" if self._use_redis else "memory"

    def get(self, key: str) -> Optional[Any]:
        try:
            if self._use_redis and self._redis_client:
                value = self._redis_client.get(key)
                if value:
                    return json.loads(value)
                return None
            entry = self._memory_cache.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at < time.monotonic():
                self._memory_cache.pop(key, None)
                return None
            return value
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with optional TTL (seconds); a TTL of 0 disables caching"""
        try:
            if ttl is None:
                ttl = settings.cache.default_ttl
            if ttl <= 0:
                return False
            if self._use_redis and self._redis_client:
                self._redis_client.setex(key, ttl, json.dumps(value))
            else:
                self._memory_cache[key] = (time.monotonic() + ttl, value)
            return True
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a trailing-* pattern"""
        count = 0
        try:
            if self._use_redis and self._redis_client:
                keys = self._redis_client.keys(pattern)
                if keys:
                    count = self._redis_client.delete(*keys)
            else:
                prefix = pattern.rstrip("*")
                keys_to_delete = [k for k in self._memory_cache if k.startswith(prefix)]
                for key in keys_to_delete:
                    del self._memory_cache[key]
                count = len(keys_to_delete)
        except Exception as e:
            logger.error(f"Cache delete_pattern error for pattern {pattern}: {e}")
        return count

    def clear_all(self) -> bool:
        try:
            if self._use_redis and self._redis_client:
                self._redis_client.flushdb()
            else:
                self._memory_cache.clear()
            return True
        except Exception as e:
            logger.error(f"Cache clear error: {e}")
            return False

    def health_check(self) -> dict:
        if self._use_redis and self._redis_client:
            try:
                self._redis_client.ping()
                return {"status": "healthy", "backend": "redis"}
            except Exception as e:
                return {"status": "unhealthy", "backend": "redis", "error": str(e)}
        return {"status": "healthy", "backend": "memory", "keys_cached": len(self._memory_cache)}


# Global cache instance
cache = CacheService()


def wallet_cache_key(account: str, view: str) -> str:
    return f"wallet:{account.strip().lower()}:{view}"


def invalidate_wallet(account: str) -> int:
    return cache.delete_pattern(f"wallet:{account.strip().lower()}:*")
