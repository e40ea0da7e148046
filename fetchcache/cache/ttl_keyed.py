"""
In-memory TTL cache for scalar results keyed by integer id.
"""
import logging
from datetime import timedelta
from typing import Dict, Iterable, Optional

from config.settings import settings

from .core import (
    CacheEntry,
    Clock,
    KeyedFetcher,
    TTLCacheInfo,
    TTLEntryInfo,
    call_fetcher,
    utc_now,
)
from .errors import FetchError

logger = logging.getLogger("cache.ttl_keyed")


class TTLKeyedCache:
    """
    Pull-based expiry cache for float values such as average ratings.

    Entries are valid while their age is <= ttl. Expired entries are evicted
    when read, never by a sweep. get() and refresh() raise FetchError and
    cache nothing on failure; get_many() maps failed ids to a default unless
    asked to be strict.
    """

    def __init__(
        self,
        name: str,
        ttl: Optional[timedelta] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            name: Label used in logs and diagnostics (e.g. "class", "teacher")
            ttl: Maximum entry age (default: settings.rating_ttl_seconds, 1 hour)
            clock: Returns the current time; injectable for tests
        """
        self._name = name
        self._ttl = ttl if ttl is not None else timedelta(seconds=settings.rating_ttl_seconds)
        self._clock = clock or utc_now
        self._entries: Dict[int, CacheEntry] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    async def get(self, id: int, fetcher: KeyedFetcher) -> float:
        """
        Return the cached value for id, fetching on miss or expiry.

        Raises:
            FetchError: fetcher failed
        """
        cached = self._lookup(id)
        if cached is not None:
            logger.debug(f"[{self._name}] CACHE HIT: id={id}, value={cached}")
            return cached

        logger.debug(f"[{self._name}] CACHE MISS: id={id}, fetching")
        return await self._fetch_and_cache(id, fetcher)

    async def refresh(self, id: int, fetcher: KeyedFetcher) -> float:
        """Drop any entry for id and fetch again."""
        self._entries.pop(id, None)
        logger.info(f"[{self._name}] FORCE REFRESH: id={id}")
        return await self._fetch_and_cache(id, fetcher)

    async def get_many(
        self,
        ids: Iterable[int],
        fetcher: KeyedFetcher,
        default: float = 0.0,
        strict: bool = False,
    ) -> Dict[int, float]:
        """
        get() each id in turn.

        A failed id maps to default and the rest of the batch still runs.

        Args:
            ids: Ids to look up
            fetcher: Called with each id that misses
            default: Value for ids whose fetch fails (not cached)
            strict: Raise the first FetchError instead of using default

        Returns:
            Mapping of id -> value
        """
        results: Dict[int, float] = {}
        for id in ids:
            try:
                results[id] = await self.get(id, fetcher)
            except FetchError as e:
                if strict:
                    raise
                logger.warning(f"[{self._name}] Using default {default} for id={id}: {e}")
                results[id] = default
        return results

    def clear(self, id: Optional[int] = None) -> None:
        """Remove one entry, or every entry when id is None."""
        if id is not None:
            self._entries.pop(id, None)
            logger.info(f"[{self._name}] Cache cleared for id={id}")
            return

        count = len(self._entries)
        self._entries.clear()
        logger.info(f"[{self._name}] Cache cleared, removed {count} entries")

    def info(self) -> TTLCacheInfo:
        """Snapshot of every entry, expired ones included."""
        now = self._clock()
        return TTLCacheInfo(
            name=self._name,
            ttl=self._ttl,
            entries=[
                TTLEntryInfo(
                    id=id,
                    value=entry.value,
                    cached_at=entry.cached_at,
                    age_seconds=entry.age(now).total_seconds(),
                    is_expired=not entry.is_valid(self._ttl, now),
                )
                for id, entry in self._entries.items()
            ],
        )

    def _lookup(self, id: int) -> Optional[float]:
        entry = self._entries.get(id)
        if entry is None:
            return None

        if not entry.is_valid(self._ttl, self._clock()):
            logger.debug(
                f"[{self._name}] CACHE EXPIRED: id={id}, cached_at={entry.cached_at.isoformat()}"
            )
            del self._entries[id]
            return None

        return entry.value

    async def _fetch_and_cache(self, id: int, fetcher: KeyedFetcher) -> float:
        try:
            value = float(await call_fetcher(fetcher, id))
        except FetchError:
            logger.warning(f"[{self._name}] Fetch failed: id={id}")
            raise
        except Exception as e:
            logger.warning(f"[{self._name}] Fetch failed: id={id} - {e}")
            raise FetchError(id, e) from e

        self._entries[id] = CacheEntry(value=value, cached_at=self._clock())
        logger.debug(f"[{self._name}] CACHED: id={id}, value={value}")
        return value

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, id: int) -> bool:
        return id in self._entries
