"""
Shared fixtures for the cache tests.
"""
from datetime import datetime, timedelta, timezone

import pytest

from fetchcache.cache import MemoryStore


class FakeClock:
    """Manually advanced clock injected into caches under test."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class CountingFetcher:
    """Async fetcher that returns (or raises) queued results and counts calls."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.args = []

    async def __call__(self, *args):
        self.calls += 1
        self.args.append(args)
        result = self.results[0] if len(self.results) == 1 else self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryStore()
