"""
Tests for RatingService: per-kind caches and the 0.0 fallback.
"""
from datetime import timedelta

import pytest

from fetchcache.rating_service import RatingService
from conftest import CountingFetcher


@pytest.fixture
def class_api():
    return CountingFetcher(4.2)


@pytest.fixture
def teacher_api():
    return CountingFetcher(4.8)


@pytest.fixture
def service(class_api, teacher_api, clock):
    return RatingService(class_api, teacher_api, clock=clock)


@pytest.mark.asyncio
async def test_ratings_are_cached_per_kind(service, class_api, teacher_api):
    assert await service.get_rating(1) == 4.2
    assert await service.get_rating(1) == 4.2
    assert await service.get_teacher_rating(1) == 4.8

    assert class_api.calls == 1
    assert teacher_api.calls == 1
    assert len(service.class_cache) == 1
    assert len(service.teacher_cache) == 1


@pytest.mark.asyncio
async def test_missing_rating_is_cached_as_zero(clock):
    class_api = CountingFetcher(None)
    service = RatingService(class_api, CountingFetcher(None), clock=clock)

    assert await service.get_rating(9) == 0.0
    assert await service.get_rating(9) == 0.0
    assert class_api.calls == 1


@pytest.mark.asyncio
async def test_fetch_failure_falls_back_without_caching(clock):
    class_api = CountingFetcher(ConnectionError("offline"), 3.5)
    service = RatingService(class_api, CountingFetcher(1.0), clock=clock)

    assert await service.get_rating(2) == 0.0
    assert 2 not in service.class_cache

    assert await service.get_rating(2) == 3.5
    assert class_api.calls == 2


@pytest.mark.asyncio
async def test_refresh_rating_refetches(service, class_api):
    await service.get_rating(1)
    class_api.results = [3.9]

    assert await service.refresh_rating(1) == 3.9
    assert class_api.calls == 2


@pytest.mark.asyncio
async def test_refresh_teacher_rating_failure_returns_zero(service, teacher_api):
    await service.get_teacher_rating(5)
    teacher_api.results = [RuntimeError("boom")]

    assert await service.refresh_teacher_rating(5) == 0.0


@pytest.mark.asyncio
async def test_get_ratings_batch(clock):
    async def fetch(class_id):
        if class_id == 2:
            raise RuntimeError("404")
        return class_id + 0.5

    service = RatingService(fetch, CountingFetcher(1.0), clock=clock)

    assert await service.get_ratings([1, 2, 3]) == {1: 1.5, 2: 0.0, 3: 3.5}


@pytest.mark.asyncio
async def test_ratings_expire_after_ttl(class_api, teacher_api, clock):
    service = RatingService(class_api, teacher_api, ttl=timedelta(minutes=5), clock=clock)
    await service.get_rating(1)

    clock.advance(timedelta(minutes=6))
    await service.get_rating(1)

    assert class_api.calls == 2


@pytest.mark.asyncio
async def test_clear_caches_and_info(service):
    await service.get_ratings([1, 2])
    await service.get_teacher_rating(7)

    info = service.cache_info()
    assert info["class"]["total_entries"] == 2
    assert info["teacher"]["total_entries"] == 1

    service.clear_cache(class_id=1)
    service.clear_teacher_cache()

    info = service.cache_info()
    assert [e["id"] for e in info["class"]["entries"]] == [2]
    assert info["teacher"]["total_entries"] == 0
