"""
Registry of RefreshableCache instances keyed by identity.
"""
import logging
import threading
from datetime import timedelta
from typing import Any, Dict, List, Optional

from .core import CacheStatus
from .refreshable import RefreshableCache
from .store import CacheStore

logger = logging.getLogger("cache.pool")


class CachePool:
    """
    Hands out one RefreshableCache per identity key.

    Callers asking for the same key share refresh state. The first caller's
    store and refresh interval win; later calls get the existing instance.

    The pool is an ordinary object: build one and pass it to whatever needs
    it.

    Usage:
        pool = CachePool()
        cache = pool.get_or_create("classes:all", store)
        classes = await cache.fetch(fetch_classes)
    """

    def __init__(self):
        self._caches: Dict[str, RefreshableCache[Any]] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        key: str,
        store: CacheStore,
        refresh_interval: Optional[timedelta] = None,
    ) -> RefreshableCache[Any]:
        """
        Return the cache registered under key, creating it if needed.

        Args:
            key: Identity key (also the store key)
            store: Backing store, used only if the cache is created here
            refresh_interval: Used only if the cache is created here

        Returns:
            The single RefreshableCache for key
        """
        with self._lock:
            cache = self._caches.get(key)
            if cache is None:
                cache = RefreshableCache(key, store, refresh_interval=refresh_interval)
                self._caches[key] = cache
                logger.debug(f"Registered cache: {key}")
                return cache

        if cache.store is not store or (
            refresh_interval is not None and refresh_interval != cache.refresh_interval
        ):
            logger.debug(f"Reusing existing cache {key} with its original configuration")
        return cache

    def get(self, key: str) -> Optional[RefreshableCache[Any]]:
        """Look up a cache without creating it."""
        with self._lock:
            return self._caches.get(key)

    def clear_all(self) -> None:
        """Cancel refresh activity on every cache. Stored data is kept."""
        with self._lock:
            caches = list(self._caches.values())
        for cache in caches:
            cache.cancel()
        logger.info(f"Cancelled refresh on {len(caches)} caches")

    def status_all(self) -> List[CacheStatus]:
        """Status of every registered cache, in registration order."""
        with self._lock:
            caches = list(self._caches.values())
        return [cache.status() for cache in caches]

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._caches

    def __len__(self) -> int:
        with self._lock:
            return len(self._caches)
