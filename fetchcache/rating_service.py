"""
Average rating lookups for classes and teachers.

Each kind of rating gets its own TTLKeyedCache. A rating that cannot be
fetched is reported as 0.0 so list and profile views can still render;
the failed value is not cached, so the next lookup tries again.
"""
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from fetchcache.cache.core import Clock, call_fetcher
from fetchcache.cache.errors import FetchError
from fetchcache.cache.ttl_keyed import TTLKeyedCache

logger = logging.getLogger("rating_service")

DEFAULT_RATING = 0.0

RatingFetcher = Callable[[int], Union[Awaitable[Optional[float]], Optional[float]]]


class RatingService:
    """
    Cached average ratings keyed by class id and by teacher id.

    Usage:
        service = RatingService(
            class_rating_fetcher=api.fetch_class_average_rating,
            teacher_rating_fetcher=api.fetch_teacher_average_rating,
        )
        rating = await service.get_rating(class_id)
    """

    def __init__(
        self,
        class_rating_fetcher: RatingFetcher,
        teacher_rating_fetcher: RatingFetcher,
        ttl: Optional[timedelta] = None,
        clock: Optional[Clock] = None,
    ):
        self._fetch_class_rating = class_rating_fetcher
        self._fetch_teacher_rating = teacher_rating_fetcher
        self.class_cache = TTLKeyedCache("class", ttl=ttl, clock=clock)
        self.teacher_cache = TTLKeyedCache("teacher", ttl=ttl, clock=clock)

    async def get_rating(self, class_id: int) -> float:
        """Average rating of a class, 0.0 if it cannot be fetched."""
        return await self._with_default(
            self.class_cache.get(class_id, self._class_rating), "class", class_id
        )

    async def get_teacher_rating(self, teacher_id: int) -> float:
        """Average rating of a teacher, 0.0 if it cannot be fetched."""
        return await self._with_default(
            self.teacher_cache.get(teacher_id, self._teacher_rating), "teacher", teacher_id
        )

    async def refresh_rating(self, class_id: int) -> float:
        return await self._with_default(
            self.class_cache.refresh(class_id, self._class_rating), "class", class_id
        )

    async def refresh_teacher_rating(self, teacher_id: int) -> float:
        return await self._with_default(
            self.teacher_cache.refresh(teacher_id, self._teacher_rating), "teacher", teacher_id
        )

    async def get_ratings(self, class_ids: Iterable[int]) -> Dict[int, float]:
        """Ratings for several classes; failures map to 0.0."""
        return await self.class_cache.get_many(
            class_ids, self._class_rating, default=DEFAULT_RATING
        )

    def clear_cache(self, class_id: Optional[int] = None) -> None:
        self.class_cache.clear(class_id)

    def clear_teacher_cache(self, teacher_id: Optional[int] = None) -> None:
        self.teacher_cache.clear(teacher_id)

    def cache_info(self) -> Dict[str, Any]:
        """Diagnostics for both caches."""
        return {
            "class": self.class_cache.info().to_dict(),
            "teacher": self.teacher_cache.info().to_dict(),
        }

    async def _class_rating(self, class_id: int) -> float:
        return await self._fetch_or_zero(self._fetch_class_rating, "class", class_id)

    async def _teacher_rating(self, teacher_id: int) -> float:
        return await self._fetch_or_zero(self._fetch_teacher_rating, "teacher", teacher_id)

    @staticmethod
    async def _fetch_or_zero(fetcher: RatingFetcher, kind: str, id: int) -> float:
        # No rating yet is a real answer and gets cached as 0.0
        rating = await call_fetcher(fetcher, id)
        if rating is None:
            logger.info(f"No {kind} rating yet: id={id}, defaulting to {DEFAULT_RATING}")
            return DEFAULT_RATING
        return rating

    @staticmethod
    async def _with_default(lookup: Awaitable[float], kind: str, id: int) -> float:
        try:
            return await lookup
        except FetchError as e:
            logger.warning(f"Failed to load {kind} rating: id={id} - {e}")
            return DEFAULT_RATING
