"""SQLite-based disk cache for the last good raw snapshot."""

import logging
from typing import Any, Dict, Optional, TypeVar

import diskcache

from config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotCache:
    """
    SQLite-based disk cache with TTL support.

    Stores raw JSON documents (never parsed models) so a restart can rebuild
    the previous read model with the current code. Cache failures are logged
    and reported as misses; they never stop the poll loop.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        namespace: str = "snapshots",
    ):
        self.settings = settings or get_settings()
        self.namespace = namespace
        self._cache: Optional[diskcache.Cache] = None

    def _get_cache(self) -> diskcache.Cache:
        """Get or create the cache instance."""
        if self._cache is None:
            cache_dir = self.settings.ensure_cache_dir() / self.namespace
            cache_dir.mkdir(parents=True, exist_ok=True)
            self._cache = diskcache.Cache(str(cache_dir))
        return self._cache

    def get(
        self,
        key: str,
        default: Optional[T] = None,
    ) -> Optional[T]:
        """
        Get a value from the cache.

        Args:
            key: Cache key
            default: Default value if not found or expired

        Returns:
            Cached value or default
        """
        try:
            cache = self._get_cache()
            return cache.get(key, default=default)
        except Exception as e:
            logger.warning(f"Cache get error for key {key}: {e}")
            return default

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
    ) -> bool:
        """
        Set a value in the cache.

        Args:
            key: Cache key
            value: JSON-like value to cache
            ttl: Time-to-live in seconds (None = use default)

        Returns:
            True if successful
        """
        if ttl is None:
            ttl = self.settings.cache_ttl_seconds

        try:
            cache = self._get_cache()
            cache.set(key, value, expire=ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache set error for key {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete a value; True if the key existed."""
        try:
            cache = self._get_cache()
            return cache.delete(key)
        except Exception as e:
            logger.warning(f"Cache delete error for key {key}: {e}")
            return False

    def clear(self) -> int:
        """
        Clear all values from the cache.

        Returns:
            Number of items cleared
        """
        try:
            cache = self._get_cache()
            count = len(cache)
            cache.clear()
            return count
        except Exception as e:
            logger.warning(f"Cache clear error: {e}")
            return 0

    # ========== SNAPSHOTS ==========

    def store_snapshot(self, raw: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None) -> bool:
        """Remember the last raw snapshot (and metadata) that built a read model."""
        stored = self.set(CacheKeys.last_snapshot(), raw)
        if metadata:
            stored = self.set(CacheKeys.asset_metadata(), metadata) and stored
        return stored

    def load_snapshot(self) -> Optional[Dict[str, Any]]:
        return self.get(CacheKeys.last_snapshot())

    def load_metadata(self) -> Dict[str, Any]:
        return self.get(CacheKeys.asset_metadata()) or {}

    def stats(self) -> dict:
        """Get cache statistics."""
        try:
            cache = self._get_cache()
            return {
                "size": len(cache),
                "volume": cache.volume(),
                "directory": str(cache.directory),
            }
        except Exception as e:
            logger.warning(f"Cache stats error: {e}")
            return {}

    def close(self):
        """Close the cache connection."""
        if self._cache:
            self._cache.close()
            self._cache = None


class CacheKeys:
    """Standard cache key patterns."""

    @staticmethod
    def last_snapshot() -> str:
        return "snapshot:last"

    @staticmethod
    def asset_metadata() -> str:
        return "metadata:assets"
