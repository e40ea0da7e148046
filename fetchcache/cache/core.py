"""
Core cache data structures.
"""
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

T = TypeVar("T")

# A fetcher may be a coroutine function or a plain callable.
Fetcher = Callable[[], Union[Awaitable[T], T]]
KeyedFetcher = Callable[[int], Union[Awaitable[float], float]]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


async def call_fetcher(fetcher: Callable[..., Any], *args: Any) -> Any:
    """Invoke a fetcher and await its result if it returned an awaitable."""
    result = fetcher(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass
class CacheEntry:
    """
    A cached scalar paired with the time it was produced.

    Validity is pull-based: callers ask is_valid() at read time and evict
    invalid entries themselves.
    """
    value: float
    cached_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.cached_at

    def is_valid(self, ttl: timedelta, now: datetime) -> bool:
        """True while now - cached_at <= ttl."""
        return self.age(now) <= ttl


@dataclass(frozen=True)
class CacheStatus:
    """
    Read-only diagnostic snapshot of a RefreshableCache.
    """
    key: str
    is_refreshing: bool
    last_refresh: Optional[datetime]
    refresh_interval: timedelta

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "cache_key": self.key,
            "is_refreshing": self.is_refreshing,
            "last_refresh": self.last_refresh.isoformat() if self.last_refresh else None,
            "refresh_interval_seconds": self.refresh_interval.total_seconds(),
        }


@dataclass(frozen=True)
class TTLEntryInfo:
    id: int
    value: float
    cached_at: datetime
    age_seconds: float
    is_expired: bool


@dataclass(frozen=True)
class TTLCacheInfo:
    """
    Diagnostic snapshot of a TTLKeyedCache.
    """
    name: str
    ttl: timedelta
    entries: List[TTLEntryInfo] = field(default_factory=list)

    @property
    def total_entries(self) -> int:
        return len(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "name": self.name,
            "total_entries": self.total_entries,
            "cache_ttl_seconds": self.ttl.total_seconds(),
            "entries": [
                {
                    "id": e.id,
                    "rating": e.value,
                    "cached_at": e.cached_at.isoformat(),
                    "age_seconds": round(e.age_seconds, 1),
                    "is_expired": e.is_expired,
                }
                for e in self.entries
            ],
        }
