"""
Fetch-with-cache and background refresh for a single cache key.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Optional, Set

from tenacity import RetryCallState, wait_exponential

from config.settings import settings

from .core import CacheStatus, Clock, Fetcher, T, call_fetcher, utc_now
from .errors import CacheError, FetchError, StoreError
from .store import CacheStore

logger = logging.getLogger("cache.refreshable")


def default_refresh_interval() -> timedelta:
    return timedelta(seconds=settings.refresh_interval_seconds)


class RefreshableCache(Generic[T]):
    """
    Serves a cached value immediately and refreshes it in the background.

    - Cache hit: returns the stored value, and starts a background refresh
      when the value is older than refresh_interval (or its age is unknown)
    - Cache miss: fetches in the foreground and stores the result
    - force_refresh: always fetches in the foreground
    - At most one background refresh runs per instance

    Foreground failures raise FetchError/StoreError. Background failures are
    logged and dropped.

    Usage:
        cache = RefreshableCache("weather", MemoryStore())
        forecast = await cache.fetch(fetch_weather)
    """

    def __init__(
        self,
        key: str,
        store: CacheStore,
        refresh_interval: Optional[timedelta] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize the cache.

        Args:
            key: Store key this instance reads and writes
            store: Backing key-value store
            refresh_interval: Age after which a hit triggers a background
                refresh (default: settings.refresh_interval_seconds, 2 days)
            clock: Returns the current time; injectable for tests
            sleep: Awaitable delay used between watch_fetch polls
        """
        self._key = key
        self._store = store
        self._refresh_interval = (
            refresh_interval if refresh_interval is not None else default_refresh_interval()
        )
        self._clock = clock or utc_now
        self._sleep = sleep or asyncio.sleep

        # Refresh state
        self._last_refresh: Optional[datetime] = None
        self._is_refreshing = False
        self._refresh_task: Optional[asyncio.Task] = None
        self._background_tasks: Set[asyncio.Task] = set()

        # Bumped by cancel()/clear(); running watchers stop when it changes
        self._generation = 0

    @property
    def key(self) -> str:
        return self._key

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def refresh_interval(self) -> timedelta:
        return self._refresh_interval

    @property
    def is_refreshing(self) -> bool:
        return self._is_refreshing

    @property
    def last_refresh(self) -> Optional[datetime]:
        return self._last_refresh

    async def fetch(self, fetcher: Fetcher, force_refresh: bool = False) -> T:
        """
        Get the value from the store, or fetch it.

        Args:
            fetcher: Zero-argument callable (sync or async) producing the value
            force_refresh: Skip the store and always call fetcher

        Returns:
            The cached or freshly fetched value

        Raises:
            FetchError: fetcher failed on a miss or forced refresh
            StoreError: the store failed
        """
        if force_refresh:
            logger.info(f"FORCE REFRESH: {self._key}")
            return await self._fetch_and_store(fetcher)

        cached = await self._store_get()
        if cached is not None:
            logger.debug(f"CACHE HIT: {self._key}")
            self._schedule_refresh_if_needed(fetcher)
            return cached

        logger.info(f"CACHE MISS: {self._key}")
        return await self._fetch_and_store(fetcher)

    async def _fetch_and_store(self, fetcher: Fetcher) -> T:
        """Foreground fetch: errors propagate, store is untouched on failure."""
        try:
            data = await call_fetcher(fetcher)
        except FetchError:
            logger.warning(f"Fetch failed: {self._key}")
            raise
        except Exception as e:
            logger.warning(f"Fetch failed: {self._key} - {e}")
            raise FetchError(self._key, e) from e

        await self._store_set(data)
        self._last_refresh = self._clock()
        self._is_refreshing = False
        return data

    def _schedule_refresh_if_needed(self, fetcher: Fetcher) -> None:
        """Decide whether a hit should start a background refresh."""
        if self._is_refreshing:
            logger.debug(f"Already refreshing: {self._key}")
            return

        # Value came from somewhere other than this instance; age unknown
        if self._last_refresh is None:
            self._start_background_refresh(fetcher)
            return

        elapsed = self._clock() - self._last_refresh
        if elapsed >= self._refresh_interval:
            self._start_background_refresh(fetcher)

    def _start_background_refresh(self, fetcher: Fetcher) -> None:
        """Spawn the refresh task without blocking the caller."""
        if self._is_refreshing:
            return

        # Set before the first await so the next hit sees it
        self._is_refreshing = True
        logger.info(f"Starting background refresh: {self._key}")

        task = asyncio.get_running_loop().create_task(
            self._refresh_in_background(fetcher),
            name=f"cache-refresh:{self._key}",
        )
        self._refresh_task = task
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _refresh_in_background(self, fetcher: Fetcher) -> None:
        try:
            data = await call_fetcher(fetcher)
            await self._store_set(data)
            self._last_refresh = self._clock()
            logger.info(f"Background refresh complete: {self._key}")
        except Exception as e:
            logger.warning(f"Background refresh failed: {self._key} - {e}")
        finally:
            # A refresh orphaned by cancel()/clear() must not reset the flag
            # of a newer one
            if self._refresh_task is asyncio.current_task():
                self._is_refreshing = False
                self._refresh_task = None

    async def wait_for_refresh(self) -> None:
        """Wait until every background refresh started so far has finished."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    async def watch_fetch(
        self,
        fetcher: Fetcher,
        poll_interval: Optional[timedelta] = None,
    ) -> AsyncIterator[T]:
        """
        Yield the current value, then a freshly fetched value every poll.

        The first value comes from fetch() and its errors propagate. Each
        later poll makes exactly one forced fetch; a failed poll is logged and
        skipped, and the next value comes one poll later. Once
        settings.watch_backoff_after_failures polls in a row have failed, the
        wait between polls doubles per further failure, capped at
        settings.watch_backoff_max_seconds. A success resets the wait.

        Runs until the consumer stops iterating or cancel()/clear() is called.

        Args:
            fetcher: Zero-argument callable (sync or async) producing the value
            poll_interval: Delay between polls (default: 30s)
        """
        interval = (
            poll_interval
            if poll_interval is not None
            else timedelta(seconds=settings.poll_interval_seconds)
        )
        generation = self._generation
        failures = 0

        yield await self.fetch(fetcher)

        while True:
            await self._sleep(self._poll_delay(interval, failures))
            if generation != self._generation:
                logger.debug(f"Watch stopped: {self._key}")
                return

            try:
                data = await self.fetch(fetcher, force_refresh=True)
            except CacheError as e:
                failures += 1
                logger.warning(f"Watch fetch error ({failures} in a row): {self._key} - {e}")
                continue

            failures = 0
            if generation != self._generation:
                logger.debug(f"Watch stopped: {self._key}")
                return
            yield data

    @staticmethod
    def _poll_delay(interval: timedelta, failures: int) -> float:
        """Seconds to wait before the next poll after `failures` failed polls in a row."""
        base = interval.total_seconds()
        extra = failures - settings.watch_backoff_after_failures
        if extra < 0:
            return base

        backoff = wait_exponential(
            multiplier=base, max=max(base, settings.watch_backoff_max_seconds)
        )
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.attempt_number = extra + 2
        return backoff(state)

    async def clear(self) -> None:
        """
        Remove the stored value and reset refresh state.

        A refresh already in flight is not aborted and will still write.
        """
        await self._store_remove()
        self._last_refresh = None
        self._reset_refresh_state()
        logger.info(f"Cache cleared: {self._key}")

    def cancel(self) -> None:
        """Stop watchers and reset the refreshing flag. Stored data is kept."""
        self._reset_refresh_state()
        logger.info(f"Auto-refresh cancelled: {self._key}")

    def _reset_refresh_state(self) -> None:
        self._is_refreshing = False
        self._refresh_task = None
        self._generation += 1

    def status(self) -> CacheStatus:
        """Snapshot of the refresh state."""
        return CacheStatus(
            key=self._key,
            is_refreshing=self._is_refreshing,
            last_refresh=self._last_refresh,
            refresh_interval=self._refresh_interval,
        )

    # Store access: anything the store raises surfaces as StoreError

    async def _store_get(self) -> Optional[Any]:
        try:
            return await self._store.get(self._key)
        except StoreError:
            logger.error(f"Store get failed: {self._key}")
            raise
        except Exception as e:
            logger.error(f"Store get failed: {self._key} - {e}")
            raise StoreError(self._key, "get", e) from e

    async def _store_set(self, value: Any) -> None:
        try:
            await self._store.set(self._key, value)
        except StoreError:
            logger.error(f"Store set failed: {self._key}")
            raise
        except Exception as e:
            logger.error(f"Store set failed: {self._key} - {e}")
            raise StoreError(self._key, "set", e) from e

    async def _store_remove(self) -> None:
        try:
            await self._store.remove(self._key)
        except StoreError:
            logger.error(f"Store remove failed: {self._key}")
            raise
        except Exception as e:
            logger.error(f"Store remove failed: {self._key} - {e}")
            raise StoreError(self._key, "remove", e) from e

    def __repr__(self) -> str:
        return (
            f"RefreshableCache(key={self._key!r}, "
            f"refresh_interval={self._refresh_interval}, "
            f"is_refreshing={self._is_refreshing})"
        )
