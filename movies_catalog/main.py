"""Entry point for the FastAPI-powered movie catalog service."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import AsyncExitStack, asynccontextmanager, suppress
from datetime import datetime
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException

from .categories import MovieCategory
from .config import settings
from .database import Database
from .models import MovieDetail
from .services.cache import OfflineCacheStore
from .services.movie_list import MovieListService
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


class CatalogStatus:
    """Records the engine signals so the HTTP layer can report them."""

    def __init__(self, max_errors: int = 20):
        self.loading = False
        self.last_updated_at: datetime | None = None
        self.errors: deque[str] = deque(maxlen=max_errors)
        self.updated_categories: list[str] = []

    def bind(self, service: MovieListService) -> None:
        service.on_data_updated = self.data_updated
        service.on_category_updated = self.category_updated
        service.on_error = self.error
        service.on_loading_state_changed = self.loading_state_changed

    def data_updated(self) -> None:
        self.last_updated_at = datetime.utcnow()
        logger.info("Movie lanes updated")

    def category_updated(self, category: MovieCategory) -> None:
        self.last_updated_at = datetime.utcnow()
        if category.key not in self.updated_categories:
            self.updated_categories.append(category.key)
        logger.info("Movie lane %s extended", category.key)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def loading_state_changed(self, is_loading: bool) -> None:
        self.loading = is_loading
        logger.info("Movie lanes %s", "loading" if is_loading else "idle")

    def to_payload(self) -> dict[str, Any]:
        return {
            "loading": self.loading,
            "lastUpdatedAt": (
                self.last_updated_at.isoformat() if self.last_updated_at else None
            ),
            "errors": list(self.errors),
            "updatedCategories": list(self.updated_categories),
        }


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    async with AsyncExitStack() as exit_stack:
        tmdb_http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.tmdb_api_url),
                timeout=httpx.Timeout(settings.tmdb_timeout_seconds, connect=5.0),
            )
        )
        database = Database(settings.database_url)
        exit_stack.push_async_callback(database.dispose)
        await database.create_all()

        tmdb = TMDBClient(settings, tmdb_http_client)
        cache = OfflineCacheStore(
            database.session_factory, limit=settings.offline_cache_limit
        )
        movie_list = MovieListService(
            tmdb,
            cache,
            categories=settings.categories,
            cache_limit=settings.offline_cache_limit,
            prefetch_threshold=settings.prefetch_threshold,
        )
        status = CatalogStatus()
        status.bind(movie_list)

        fastapi_app.state.movie_list = movie_list
        fastapi_app.state.offline_cache = cache
        fastapi_app.state.catalog_status = status
        fastapi_app.state.database = database

        async def _initial_load() -> None:
            try:
                await movie_list.load_initial()
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Initial movie load failed: %s", exc)

        initial_task = asyncio.create_task(_initial_load())

        try:
            yield
        finally:  # pragma: no cover - teardown path exercised at runtime
            initial_task.cancel()
            with suppress(asyncio.CancelledError):
                await initial_task


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Paginated TMDB movie lanes with an offline cache",
        version="1.0.0",
        lifespan=lifespan,
    )
    register_routes(fastapi_app)
    return fastapi_app


def get_movie_list(app: FastAPI) -> MovieListService:
    service = getattr(app.state, "movie_list", None)
    if not isinstance(service, MovieListService):
        raise RuntimeError("Movie list service not initialised")
    return service


def get_catalog_status(app: FastAPI) -> CatalogStatus:
    status = getattr(app.state, "catalog_status", None)
    if not isinstance(status, CatalogStatus):
        raise RuntimeError("Catalog status not initialised")
    return status


def register_routes(fastapi_app: FastAPI) -> None:
    def _resolve_category(service: MovieListService, key: str) -> MovieCategory:
        try:
            category = MovieCategory.from_key(key)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        if category not in service.categories:
            raise HTTPException(
                status_code=404, detail=f"Category {category.key} is not enabled"
            )
        return category

    def _lane_payload(
        service: MovieListService, category: MovieCategory
    ) -> dict[str, Any]:
        return {
            "key": category.key,
            "name": category.display_name,
            "count": len(service.get_movies(category)),
            "hasMore": service.has_more(category),
            "currentPage": service.current_page(category),
            "isLoadingMore": service.is_loading_more(category),
        }

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/categories")
    async def list_categories() -> dict[str, Any]:
        service = get_movie_list(fastapi_app)
        return {
            "categories": [
                _lane_payload(service, category) for category in service.categories
            ]
        }

    @fastapi_app.get("/categories/{key}/movies")
    async def category_movies(key: str) -> dict[str, Any]:
        service = get_movie_list(fastapi_app)
        category = _resolve_category(service, key)
        payload = _lane_payload(service, category)
        payload["movies"] = [movie.to_summary() for movie in service.get_movies(category)]
        return payload

    @fastapi_app.get("/categories/{key}/movies/{index}")
    async def movie_detail(key: str, index: int) -> dict[str, Any]:
        service = get_movie_list(fastapi_app)
        category = _resolve_category(service, key)
        movie = service.get_movie(category, index)
        if movie is None:
            raise HTTPException(
                status_code=404,
                detail=f"No movie at position {index} in {category.key}",
            )
        return MovieDetail.from_movie(movie).model_dump()

    @fastapi_app.post("/categories/{key}/visible/{index}")
    async def movie_visible(key: str, index: int) -> dict[str, Any]:
        service = get_movie_list(fastapi_app)
        category = _resolve_category(service, key)
        triggered = service.should_load_more(category, index)
        if triggered:
            await service.load_more(category)
        payload = _lane_payload(service, category)
        payload["triggered"] = triggered
        return payload

    @fastapi_app.post("/categories/{key}/load-more")
    async def load_more(key: str) -> dict[str, Any]:
        service = get_movie_list(fastapi_app)
        category = _resolve_category(service, key)
        await service.load_more(category)
        return _lane_payload(service, category)

    @fastapi_app.post("/refresh")
    async def refresh() -> dict[str, Any]:
        service = get_movie_list(fastapi_app)
        await service.load_initial()
        return get_catalog_status(fastapi_app).to_payload()

    @fastapi_app.get("/status")
    async def status() -> dict[str, Any]:
        return get_catalog_status(fastapi_app).to_payload()

    @fastapi_app.delete("/cache")
    async def clear_cache() -> dict[str, str]:
        cache = getattr(fastapi_app.state, "offline_cache", None)
        if not isinstance(cache, OfflineCacheStore):
            raise RuntimeError("Offline cache not initialised")
        await cache.clear()
        return {"status": "cleared"}


app = create_app()
