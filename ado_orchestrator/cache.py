"""
Caching infrastructure for Azure DevOps reads.

Implements a TTL-based in-memory cache with prefix invalidation. A cache
is an explicit object owned by whoever builds the services; nothing here
is process-global.
"""

import asyncio
import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional, Dict

logger = logging.getLogger(__name__)


class CacheEntry:
    """
    Represents a cached value with TTL.

    Attributes:
        data: The cached data
        expiry: When this entry expires
        created_at: When this entry was created
        hit_count: Number of times this entry was retrieved
    """

    def __init__(self, data: Any, ttl_seconds: int):
        self.data = data
        self.created_at = datetime.now()
        self.expiry = self.created_at + timedelta(seconds=ttl_seconds)
        self.hit_count = 0

    def is_expired(self) -> bool:
        return datetime.now() >= self.expiry

    def age_seconds(self) -> float:
        return (datetime.now() - self.created_at).total_seconds()

    def record_hit(self):
        self.hit_count += 1


class Cache:
    """
    In-memory TTL cache shared by the services of one ServiceManager.

    Features:
    - Expiration after a fixed TTL
    - Prefix invalidation (e.g. every entry of one work item)
    - Oldest-first eviction once max_size is reached
    - Optional periodic cleanup task, started with start_cleanup()
    """

    def __init__(
        self,
        default_ttl_seconds: int = 300,
        max_size: int = 1000,
        cleanup_interval_seconds: int = 60
    ):
        """
        Initialize cache.

        Args:
            default_ttl_seconds: Default TTL for cache entries (default: 300 = 5 minutes)
            max_size: Maximum number of entries (default: 1000)
            cleanup_interval_seconds: How often to clean expired entries (default: 60)
        """
        self.default_ttl = default_ttl_seconds
        self.max_size = max_size
        self.cleanup_interval = cleanup_interval_seconds

        self._cache: Dict[str, CacheEntry] = {}
        self._stats = {
            'hits': 0,
            'misses': 0,
            'evictions': 0,
            'expirations': 0
        }
        self._cleanup_task: Optional[asyncio.Task] = None

    def start_cleanup(self) -> bool:
        """
        Start the periodic cleanup task on the running event loop.

        Returns:
            True if the task was started, False when no loop is running
        """
        if self._cleanup_task and not self._cleanup_task.done():
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; cache cleanup will be manual")
            return False
        self._cleanup_task = loop.create_task(self._periodic_cleanup())
        return True

    async def _periodic_cleanup(self):
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup_expired()

    async def close(self):
        """Cancel the cleanup task, if any."""
        task, self._cleanup_task = self._cleanup_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def cleanup_expired(self) -> int:
        """
        Remove expired entries from cache.

        Returns:
            Number of entries removed
        """
        before_count = len(self._cache)
        self._cache = {
            key: entry
            for key, entry in self._cache.items()
            if not entry.is_expired()
        }
        removed_count = before_count - len(self._cache)

        if removed_count > 0:
            self._stats['expirations'] += removed_count
            logger.debug(f"Cache cleanup: removed {removed_count} expired entries")

        return removed_count

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Returns:
            Cached value or None if not found/expired
        """
        entry = self._cache.get(key)

        if entry is None:
            self._stats['misses'] += 1
            return None

        if entry.is_expired():
            del self._cache[key]
            self._stats['expirations'] += 1
            self._stats['misses'] += 1
            return None

        entry.record_hit()
        self._stats['hits'] += 1

        logger.debug(
            f"Cache hit: {key} (age: {entry.age_seconds():.1f}s, "
            f"hits: {entry.hit_count})"
        )

        return entry.data

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None):
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: TTL for this entry (uses default if None)
        """
        if len(self._cache) >= self.max_size and key not in self._cache:
            self._evict_oldest()

        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        self._cache[key] = CacheEntry(value, ttl)

        logger.debug(f"Cache set: {key} (TTL: {ttl}s)")

    def _evict_oldest(self):
        if not self._cache:
            return

        oldest_key = min(
            self._cache.keys(),
            key=lambda k: self._cache[k].created_at
        )

        del self._cache[oldest_key]
        self._stats['evictions'] += 1
        logger.debug(f"Cache eviction: {oldest_key}")

    def invalidate(self, key: str) -> bool:
        """
        Invalidate (remove) a cache entry.

        Returns:
            True if entry was removed, False if not found
        """
        if key in self._cache:
            del self._cache[key]
            logger.debug(f"Cache invalidation: {key}")
            return True
        return False

    def invalidate_prefix(self, prefix: str) -> int:
        """
        Invalidate all entries with keys starting with prefix.

        Returns:
            Number of entries invalidated
        """
        keys_to_remove = [
            key for key in self._cache.keys()
            if key.startswith(prefix)
        ]

        for key in keys_to_remove:
            del self._cache[key]

        if keys_to_remove:
            logger.debug(
                f"Cache invalidation: {len(keys_to_remove)} entries "
                f"with prefix '{prefix}'"
            )

        return len(keys_to_remove)

    def clear(self):
        """Clear all cache entries."""
        count = len(self._cache)
        self._cache.clear()
        logger.info(f"Cache cleared: {count} entries removed")

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_requests = self._stats['hits'] + self._stats['misses']
        hit_rate = (
            (self._stats['hits'] / total_requests * 100)
            if total_requests > 0
            else 0
        )

        return {
            'size': len(self._cache),
            'max_size': self.max_size,
            'hits': self._stats['hits'],
            'misses': self._stats['misses'],
            'hit_rate_percent': round(hit_rate, 2),
            'evictions': self._stats['evictions'],
            'expirations': self._stats['expirations'],
            'total_requests': total_requests
        }


def make_cache_key(*args, **kwargs) -> str:
    """
    Generate a short, stable cache key from arbitrary arguments.

    Returns:
        First 16 hex chars of the SHA-256 of the JSON-serialized arguments
    """
    key_data = {
        'args': args,
        'kwargs': sorted(kwargs.items())
    }

    key_json = json.dumps(key_data, sort_keys=True, default=str)
    return hashlib.sha256(key_json.encode()).hexdigest()[:16]


class CachedService:
    """
    Base class for services with optional caching.

    Every helper is a no-op when the service was built without a cache.
    Keys are namespaced: "<namespace>:<part>:<part>...", or just the
    joined parts when the namespace is empty.
    """

    def __init__(
        self,
        cache: Optional[Cache],
        cache_namespace: str,
        cache_ttl: Optional[int] = None
    ):
        """
        Initialize cached service.

        Args:
            cache: Cache to use, or None to disable caching
            cache_namespace: Namespace for this service's cache entries
            cache_ttl: TTL for entries (defaults to the cache's own TTL)
        """
        self.cache = cache
        self.cache_namespace = cache_namespace
        self.cache_ttl = cache_ttl

    def _make_cache_key(self, *parts) -> str:
        key_parts = [self.cache_namespace] if self.cache_namespace else []
        key_parts += [str(p) for p in parts]
        return ':'.join(key_parts)

    def _get_cached(self, *key_parts) -> Optional[Any]:
        if self.cache is None:
            return None
        return self.cache.get(self._make_cache_key(*key_parts))

    def _set_cached(self, value: Any, *key_parts, ttl: Optional[int] = None):
        if self.cache is None:
            return
        self.cache.set(self._make_cache_key(*key_parts), value, ttl or self.cache_ttl)

    def _invalidate_prefix(self, *key_parts):
        """Invalidate every entry under '<namespace>:<parts>:'."""
        if self.cache is not None:
            self.cache.invalidate_prefix(self._make_cache_key(*key_parts) + ':')

    def get_cache_stats(self) -> Dict[str, Any]:
        if self.cache is None:
            return {'enabled': False}
        return {'enabled': True, **self.cache.get_stats()}
