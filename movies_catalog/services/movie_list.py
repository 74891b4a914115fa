"""Category pagination and offline cache reconciliation for the movie lanes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol, Sequence

from ..categories import ALL_CATEGORIES, MovieCategory
from ..models import Movie, MoviePage
from .cache import OFFLINE_CACHE_LIMIT
from .tmdb import CatalogFetchError

logger = logging.getLogger(__name__)

PREFETCH_THRESHOLD = 5


class MovieCatalogSource(Protocol):
    """Anything able to return one discovery page per category."""

    async def fetch_movies(self, category: MovieCategory, page: int = 1) -> MoviePage:
        ...


class MovieCache(Protocol):
    """Per-category persistence for the offline listing cache."""

    async def save(self, movies: Sequence[Movie], category: MovieCategory) -> None:
        ...

    async def load(self, category: MovieCategory) -> list[Movie]:
        ...

    async def clear(self) -> None:
        ...

    async def get_count(self, category: MovieCategory) -> int:
        ...


@dataclass
class CategoryLoadState:
    """Pagination cursor and loaded movies for a single category."""

    movies: list[Movie] = field(default_factory=list)
    current_page: int = 1
    is_loading_more: bool = False
    has_more: bool = True


def _unique(movies: Iterable[Movie], seen: set[int] | None = None) -> list[Movie]:
    """Drop movies whose id is already in ``seen`` or earlier in ``movies``."""

    known = set(seen or ())
    unique: list[Movie] = []
    for movie in movies:
        if movie.id in known:
            continue
        known.add(movie.id)
        unique.append(movie)
    return unique


class MovieListService:
    """Loads every category lane, paginates them on demand and keeps the cache in step.

    Cached listings are painted first, then page one of every category is
    fetched concurrently. Further pages are appended one category at a time
    when the presentation layer reports that the user scrolled near the end.

    Presentation hooks are plain attributes and may be left as ``None``:
    ``on_data_updated()``, ``on_category_updated(category)``,
    ``on_error(message)`` and ``on_loading_state_changed(is_loading)``.
    """

    def __init__(
        self,
        catalog: MovieCatalogSource,
        cache: MovieCache,
        *,
        categories: Sequence[MovieCategory] | None = None,
        cache_limit: int = OFFLINE_CACHE_LIMIT,
        prefetch_threshold: int = PREFETCH_THRESHOLD,
    ):
        self._catalog = catalog
        self._cache = cache
        self._categories: tuple[MovieCategory, ...] = (
            tuple(categories) if categories else ALL_CATEGORIES
        )
        self._cache_limit = cache_limit
        self._prefetch_threshold = prefetch_threshold
        self._states: dict[MovieCategory, CategoryLoadState] = {}
        self._initial_load: asyncio.Event | None = None

        self.on_data_updated: Callable[[], None] | None = None
        self.on_category_updated: Callable[[MovieCategory], None] | None = None
        self.on_error: Callable[[str], None] | None = None
        self.on_loading_state_changed: Callable[[bool], None] | None = None

    @property
    def categories(self) -> tuple[MovieCategory, ...]:
        return self._categories

    @property
    def is_loading(self) -> bool:
        return self._initial_load is not None

    async def load_initial(self) -> None:
        """Paint cached lanes, then refresh page one of every category.

        Calls made while a load is already running wait for that load instead
        of starting another one.
        """

        in_flight = self._initial_load
        if in_flight is not None:
            logger.info("Initial load already running; waiting for it to finish")
            await in_flight.wait()
            return

        finished = asyncio.Event()
        self._initial_load = finished
        try:
            await self._run_initial_load()
        finally:
            self._initial_load = None
            finished.set()

    async def _run_initial_load(self) -> None:
        cached_ids: dict[MovieCategory, set[int]] = {}
        for category in self._categories:
            cached = await self._cache.load(category)
            cached_ids[category] = {movie.id for movie in cached}
            self._states[category] = CategoryLoadState(movies=_unique(cached))
        self._emit_data_updated()

        self._emit_loading_state(True)
        results = await asyncio.gather(
            *(
                self._load_first_page(category, self._states[category], cached_ids[category])
                for category in self._categories
            ),
            return_exceptions=True,
        )
        self._emit_loading_state(False)
        self._emit_data_updated()

        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _load_first_page(
        self,
        category: MovieCategory,
        state: CategoryLoadState,
        cached_ids: set[int],
    ) -> None:
        try:
            page = await self._catalog.fetch_movies(category, 1)
        except CatalogFetchError as exc:
            if state.movies:
                logger.info(
                    "Keeping %d cached %s movies after failed refresh: %s",
                    len(state.movies),
                    category.display_name,
                    exc.message,
                )
                return
            self._emit_error(f"Failed to load {category.display_name}: {exc.message}")
            return

        # A load_more that finished before page one may have advanced the cursor.
        state.movies = _unique(page.results)
        state.current_page = 1
        state.has_more = page.has_more
        await self._reconcile_cache(category, state.movies, cached_ids)

    async def load_more(self, category: MovieCategory) -> None:
        """Append the next page of ``category``; a no-op when nothing can be loaded."""

        state = self._states.get(category)
        if state is None or not state.has_more or state.is_loading_more:
            return

        state.is_loading_more = True
        next_page = state.current_page + 1
        try:
            try:
                page = await self._catalog.fetch_movies(category, next_page)
            except CatalogFetchError as exc:
                self._emit_error(
                    f"Failed to load more {category.display_name}: {exc.message}"
                )
                return

            if self._states.get(category) is not state:
                logger.debug(
                    "Discarding page %s of %s fetched before a reload",
                    next_page,
                    category.key,
                )
                return

            state.current_page = next_page
            fresh = _unique(page.results, {movie.id for movie in state.movies})
            state.movies.extend(fresh)
            state.has_more = page.has_more

            cached = await self._cache.load(category)
            await self._reconcile_cache(
                category, state.movies, {movie.id for movie in cached}
            )
        finally:
            state.is_loading_more = False

        logger.debug(
            "Appended %d movies to %s from page %s",
            len(fresh),
            category.key,
            next_page,
        )
        self._emit_category_updated(category)

    def should_load_more(self, category: MovieCategory, visible_index: int) -> bool:
        """Return whether showing ``visible_index`` should trigger :meth:`load_more`."""

        state = self._states.get(category)
        if state is None or not state.has_more or state.is_loading_more:
            return False
        return visible_index >= len(state.movies) - self._prefetch_threshold

    def get_movies(self, category: MovieCategory) -> list[Movie]:
        state = self._states.get(category)
        return list(state.movies) if state else []

    def get_movie(self, category: MovieCategory, index: int) -> Movie | None:
        movies = self.get_movies(category)
        if index < 0 or index >= len(movies):
            return None
        return movies[index]

    def has_more(self, category: MovieCategory) -> bool:
        state = self._states.get(category)
        return state.has_more if state else False

    def is_loading_more(self, category: MovieCategory) -> bool:
        state = self._states.get(category)
        return state.is_loading_more if state else False

    def current_page(self, category: MovieCategory) -> int:
        state = self._states.get(category)
        return state.current_page if state else 0

    async def _reconcile_cache(
        self,
        category: MovieCategory,
        movies: Sequence[Movie],
        cached_ids: set[int],
    ) -> None:
        to_cache = list(movies[: self._cache_limit])
        if {movie.id for movie in to_cache} == cached_ids:
            logger.debug("Offline cache for %s is already current", category.key)
            return
        await self._cache.save(to_cache, category)

    def _emit_data_updated(self) -> None:
        if self.on_data_updated is not None:
            self.on_data_updated()

    def _emit_category_updated(self, category: MovieCategory) -> None:
        if self.on_category_updated is not None:
            self.on_category_updated(category)

    def _emit_error(self, message: str) -> None:
        logger.warning("%s", message)
        if self.on_error is not None:
            self.on_error(message)

    def _emit_loading_state(self, is_loading: bool) -> None:
        if self.on_loading_state_changed is not None:
            self.on_loading_state_changed(is_loading)
