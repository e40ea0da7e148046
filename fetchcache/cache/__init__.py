"""
Fetch-with-cache layer: background refresh, identity-keyed pool, and TTL caches.
"""
from .core import CacheEntry, CacheStatus, TTLCacheInfo, TTLEntryInfo
from .errors import CacheError, FetchError, StoreError
from .store import CacheStore, JsonFileStore, MemoryStore
from .refreshable import RefreshableCache
from .pool import CachePool
from .ttl_keyed import TTLKeyedCache

__all__ = [
    # Core types
    "CacheEntry",
    "CacheStatus",
    "TTLCacheInfo",
    "TTLEntryInfo",
    # Errors
    "CacheError",
    "FetchError",
    "StoreError",
    # Stores
    "CacheStore",
    "JsonFileStore",
    "MemoryStore",
    # Caches
    "RefreshableCache",
    "CachePool",
    "TTLKeyedCache",
]
