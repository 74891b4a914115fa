"""Offline cache of movie listings, one bounded list per category."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..categories import MovieCategory
from ..db_models import CachedCategory
from ..models import Movie

logger = logging.getLogger(__name__)

OFFLINE_CACHE_LIMIT = 40

_MOVIE_LIST = TypeAdapter(list[Movie])


class OfflineCacheStore:
    """Persists movie metadata (no images) so lanes can render before the network."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        limit: int = OFFLINE_CACHE_LIMIT,
    ):
        if not 1 <= limit <= OFFLINE_CACHE_LIMIT:
            raise ValueError(
                f"Offline cache limit must be between 1 and {OFFLINE_CACHE_LIMIT}"
            )
        self._session_factory = session_factory
        self._limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    async def save(self, movies: Sequence[Movie], category: MovieCategory) -> None:
        """Replace the cached list for ``category`` with a capped prefix of ``movies``."""

        to_cache = list(movies[: self._limit])
        payload = _MOVIE_LIST.dump_json(to_cache).decode("utf-8")
        now = datetime.utcnow()
        try:
            async with self._session_factory() as session:
                record = await session.get(CachedCategory, category.sort_key)
                if record is None:
                    session.add(
                        CachedCategory(
                            category=category.sort_key,
                            payload=payload,
                            movie_count=len(to_cache),
                            updated_at=now,
                        )
                    )
                else:
                    record.payload = payload
                    record.movie_count = len(to_cache)
                    record.updated_at = now
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to cache movies for %s", category.display_name)

    async def load(self, category: MovieCategory) -> list[Movie]:
        """Return the cached movies in stored order, or an empty list on a miss."""

        try:
            async with self._session_factory() as session:
                record = await session.get(CachedCategory, category.sort_key)
        except SQLAlchemyError:
            logger.exception(
                "Failed to read cached movies for %s", category.display_name
            )
            return []
        if record is None:
            return []
        payload = record.payload
        try:
            return _MOVIE_LIST.validate_json(payload)
        except ValidationError as exc:
            logger.warning(
                "Cached movies for %s could not be decoded: %s",
                category.display_name,
                exc,
            )
            return []

    async def clear(self) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(delete(CachedCategory))
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to clear the offline movie cache")

    async def get_count(self, category: MovieCategory) -> int:
        return len(await self.load(category))
