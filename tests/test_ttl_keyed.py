"""
Tests for TTLKeyedCache expiry, refresh, batch lookups and diagnostics.
"""
from datetime import timedelta

import pytest

from fetchcache.cache import FetchError, TTLKeyedCache
from conftest import CountingFetcher


@pytest.fixture
def ratings(clock):
    return TTLKeyedCache("class", clock=clock)


@pytest.mark.asyncio
async def test_hit_before_ttl_and_miss_after(ratings, clock):
    fetcher = CountingFetcher(4.5, 3.0)

    assert await ratings.get(7, fetcher) == 4.5

    clock.advance(timedelta(minutes=59))
    assert await ratings.get(7, fetcher) == 4.5
    assert fetcher.calls == 1

    clock.advance(timedelta(minutes=2))
    assert await ratings.get(7, fetcher) == 3.0
    assert fetcher.calls == 2
    assert fetcher.args == [(7,), (7,)]


@pytest.mark.asyncio
async def test_entry_exactly_at_ttl_is_still_valid(ratings, clock):
    fetcher = CountingFetcher(4.0)
    await ratings.get(1, fetcher)

    clock.advance(timedelta(hours=1))
    await ratings.get(1, fetcher)

    assert fetcher.calls == 1


@pytest.mark.asyncio
async def test_expired_entry_is_evicted_on_read(ratings, clock):
    await ratings.get(1, CountingFetcher(4.0))
    clock.advance(timedelta(hours=2))

    # Not swept until read
    assert 1 in ratings

    with pytest.raises(FetchError):
        await ratings.get(1, CountingFetcher(RuntimeError("down")))
    assert 1 not in ratings


@pytest.mark.asyncio
async def test_failure_propagates_and_is_not_cached(ratings):
    with pytest.raises(FetchError) as exc_info:
        await ratings.get(3, CountingFetcher(ConnectionError("offline")))

    assert exc_info.value.key == 3
    assert len(ratings) == 0

    assert await ratings.get(3, CountingFetcher(2.5)) == 2.5


@pytest.mark.asyncio
async def test_values_are_coerced_to_float(ratings):
    assert await ratings.get(1, lambda id: 4) == 4.0
    assert isinstance(await ratings.get(1, lambda id: 4), float)


@pytest.mark.asyncio
async def test_refresh_always_refetches(ratings):
    await ratings.get(5, CountingFetcher(1.0))

    fetcher = CountingFetcher(5.0)
    assert await ratings.refresh(5, fetcher) == 5.0
    assert await ratings.get(5, fetcher) == 5.0
    assert fetcher.calls == 1


@pytest.mark.asyncio
async def test_refresh_failure_leaves_entry_evicted(ratings):
    await ratings.get(5, CountingFetcher(1.0))

    with pytest.raises(FetchError):
        await ratings.refresh(5, CountingFetcher(RuntimeError("down")))
    assert 5 not in ratings


@pytest.mark.asyncio
async def test_get_many_uses_default_for_failures(ratings):
    async def fetch(id):
        if id == 2:
            raise RuntimeError("not found")
        return id * 1.5

    result = await ratings.get_many([1, 2, 3], fetch)

    assert result == {1: 1.5, 2: 0.0, 3: 4.5}
    assert 2 not in ratings


@pytest.mark.asyncio
async def test_get_many_custom_default(ratings):
    result = await ratings.get_many([4], CountingFetcher(RuntimeError("down")), default=-1.0)

    assert result == {4: -1.0}


@pytest.mark.asyncio
async def test_get_many_strict_propagates(ratings):
    async def fetch(id):
        if id == 2:
            raise RuntimeError("not found")
        return 1.0

    with pytest.raises(FetchError):
        await ratings.get_many([1, 2, 3], fetch, strict=True)

    assert 1 in ratings
    assert 3 not in ratings


@pytest.mark.asyncio
async def test_clear_one_and_all(ratings):
    await ratings.get_many([1, 2, 3], lambda id: float(id))

    ratings.clear(2)
    assert 2 not in ratings
    assert len(ratings) == 2

    ratings.clear()
    assert len(ratings) == 0


def test_ttl_defaults_to_one_hour(clock):
    assert TTLKeyedCache("teacher", clock=clock).ttl == timedelta(hours=1)


@pytest.mark.asyncio
async def test_info_reports_age_and_expiry(clock):
    cache = TTLKeyedCache("teacher", ttl=timedelta(minutes=10), clock=clock)
    await cache.get(1, lambda id: 4.0)
    clock.advance(timedelta(minutes=15))
    await cache.get(2, lambda id: 3.0)

    info = cache.info()

    assert info.name == "teacher"
    assert info.total_entries == 2
    by_id = {e.id: e for e in info.entries}
    assert by_id[1].is_expired is True
    assert by_id[1].age_seconds == 900
    assert by_id[2].is_expired is False

    data = info.to_dict()
    assert data["cache_ttl_seconds"] == 600
    assert [e["id"] for e in data["entries"]] == [1, 2]
