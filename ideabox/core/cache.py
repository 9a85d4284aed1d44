"""Pluggable cache backend: in-memory (dev) or Redis (prod).

Usage:
    cache = get_cache()
    cache.set("key", "value", ttl=60)
    value = cache.get("key")
    cache.delete("key")
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Optional


class CacheBackend(ABC):
    """Abstract cache interface."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class InMemoryBackend(CacheBackend):
    """In-memory cache for development/testing. Not shared between processes."""

    def __init__(self):
        self._store: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and time.time() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = time.time() + ttl if ttl else None
        with self._lock:
            self._store[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        """Clear all keys (useful for testing)."""
        with self._lock:
            self._store.clear()


class RedisBackend(CacheBackend):
    """Redis cache backend for multi-process deployments."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0"):
        try:
            import redis
        except ImportError:
            raise RuntimeError("redis package required. Install with: pip install 'ideabox[redis]'")
        self._client = redis.from_url(redis_url, decode_responses=True)

    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            self._client.setex(key, ttl, value)
        else:
            self._client.set(key, value)

    def delete(self, key: str) -> None:
        self._client.delete(key)


# Singleton cache instance
_cache: Optional[CacheBackend] = None


def get_cache() -> CacheBackend:
    """Get the global cache instance."""
    global _cache
    if _cache is None:
        from ideabox.config import settings
        if settings.REDIS_URL:
            _cache = RedisBackend(settings.REDIS_URL)
        else:
            _cache = InMemoryBackend()
    return _cache


def set_cache(backend: CacheBackend) -> None:
    """Override the global cache (for testing)."""
    global _cache
    _cache = backend


def reset_cache() -> None:
    global _cache
    _cache = None
