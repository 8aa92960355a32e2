"""
Services - Cache Service

TTL-based caching with separate query and content tiers. Entries may be
stale; a hit is always an acceptable answer.
"""

from typing import Any, Optional
from cachetools import TTLCache
import hashlib
import threading

from veritas_server.config import get_settings


class CacheService:
    """TTL-based cache with query and content tiers."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self._lock = threading.Lock()

        # Query cache (short TTL for retrieval results)
        self._query_cache = TTLCache(
            maxsize=1000,
            ttl=self.settings.cache.ttl_query,
        )

        # Content cache (longer TTL for embeddings)
        self._content_cache = TTLCache(
            maxsize=10000,
            ttl=self.settings.cache.ttl_content,
        )

    @staticmethod
    def make_key(prefix: str, *parts: Any) -> str:
        """Build a `prefix:<sha256>` key from arbitrary parts."""
        raw = "\x1f".join(str(p) for p in parts)
        return f"{prefix}:{hashlib.sha256(raw.encode()).hexdigest()}"

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key (prefix determines tier)

        Returns:
            Cached value or None
        """
        if not self.settings.cache.enabled:
            return None

        with self._lock:
            cache = self._get_cache_tier(key)
            return cache.get(key)

    def set(self, key: str, value: Any) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key (prefix determines tier)
            value: Value to cache
        """
        if not self.settings.cache.enabled:
            return

        with self._lock:
            cache = self._get_cache_tier(key)
            cache[key] = value

    def delete(self, key: str) -> None:
        """Delete a key from cache."""
        with self._lock:
            cache = self._get_cache_tier(key)
            if key in cache:
                del cache[key]

    def clear_all(self) -> None:
        """Clear all caches."""
        with self._lock:
            self._query_cache.clear()
            self._content_cache.clear()

    def clear_tier(self, tier: str) -> None:
        """Clear a specific cache tier."""
        with self._lock:
            if tier == "query":
                self._query_cache.clear()
            elif tier == "content":
                self._content_cache.clear()

    def _get_cache_tier(self, key: str) -> TTLCache:
        """Determine cache tier based on key prefix."""
        if key.startswith("query:") or key.startswith("retrieval:"):
            return self._query_cache
        else:
            return self._content_cache

    def get_stats(self) -> dict:
        """Get cache statistics."""
        return {
            "query_cache": {
                "size": len(self._query_cache),
                "maxsize": self._query_cache.maxsize,
                "ttl": self._query_cache.ttl,
            },
            "content_cache": {
                "size": len(self._content_cache),
                "maxsize": self._content_cache.maxsize,
                "ttl": self._content_cache.ttl,
            },
            "enabled": self.settings.cache.enabled,
        }
