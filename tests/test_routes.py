from __future__ import annotations

import asyncio
from typing import Sequence

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import movies_catalog.main as main_module
from movies_catalog.categories import MovieCategory
from movies_catalog.config import Settings
from movies_catalog.database import Database
from movies_catalog.main import CatalogStatus, register_routes
from movies_catalog.models import Movie, MoviePage
from movies_catalog.services.cache import OfflineCacheStore
from movies_catalog.services.movie_list import MovieListService
from movies_catalog.services.tmdb import CatalogFetchError


def _page(ids: Sequence[int], page: int = 1, total_pages: int = 3) -> MoviePage:
    return MoviePage(
        page=page,
        results=[
            Movie(
                id=movie_id,
                title=f"Movie {movie_id}",
                poster_path=f"/p{movie_id}.jpg",
                release_date="2020-05-01",
                vote_average=6.4,
                vote_count=10,
                popularity=12.0,
                revenue=5_000_000,
            )
            for movie_id in ids
        ],
        total_pages=total_pages,
        total_results=60,
    )


class StubCatalog:
    def __init__(self) -> None:
        self.pages = {
            (MovieCategory.POPULAR, 1): _page([1, 2, 3]),
            (MovieCategory.POPULAR, 2): _page([4, 5], page=2),
            (MovieCategory.TOP_RATED, 1): _page([10]),
            (MovieCategory.TOP_RATED, 2): _page([11], page=2),
        }

    async def fetch_movies(self, category: MovieCategory, page: int = 1) -> MoviePage:
        try:
            return self.pages[(category, page)]
        except KeyError:
            raise CatalogFetchError(category, "No data received") from None


class StubCache(OfflineCacheStore):
    """Offline cache stub that keeps data in memory."""

    def __init__(self) -> None:  # pragma: no cover - nothing to initialise
        # Deliberately skip super().__init__ to avoid touching a database.
        self.stored: dict[MovieCategory, list[Movie]] = {}
        self.cleared = False

    async def save(self, movies: Sequence[Movie], category: MovieCategory) -> None:  # type: ignore[override]
        self.stored[category] = list(movies[:40])

    async def load(self, category: MovieCategory) -> list[Movie]:  # type: ignore[override]
        return list(self.stored.get(category, []))

    async def clear(self) -> None:  # type: ignore[override]
        self.cleared = True
        self.stored.clear()


def _build_app(*, preload: bool = True) -> tuple[FastAPI, StubCache]:
    cache = StubCache()
    service = MovieListService(
        StubCatalog(),
        cache,
        categories=[MovieCategory.POPULAR, MovieCategory.TOP_RATED],
    )
    status = CatalogStatus()
    status.bind(service)
    if preload:
        asyncio.run(service.load_initial())

    app = FastAPI()
    register_routes(app)
    app.state.movie_list = service
    app.state.catalog_status = status
    app.state.offline_cache = cache
    return app, cache


def test_healthcheck() -> None:
    app, _ = _build_app(preload=False)

    with TestClient(app) as client:
        response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_categories_lists_enabled_lanes_in_order() -> None:
    app, _ = _build_app()

    with TestClient(app) as client:
        response = client.get("/categories")

    assert response.status_code == 200
    lanes = response.json()["categories"]
    assert [lane["key"] for lane in lanes] == ["popular", "top-rated"]
    assert lanes[0] == {
        "key": "popular",
        "name": "Popular",
        "count": 3,
        "hasMore": True,
        "currentPage": 1,
        "isLoadingMore": False,
    }


def test_category_movies_returns_summaries() -> None:
    app, _ = _build_app()

    with TestClient(app) as client:
        response = client.get("/categories/popular/movies")

    assert response.status_code == 200
    payload = response.json()
    assert [movie["id"] for movie in payload["movies"]] == [1, 2, 3]
    assert payload["movies"][0] == {
        "id": 1,
        "title": "Movie 1",
        "rating": "6.4",
        "year": "2020",
        "poster": "https://image.tmdb.org/t/p/w500/p1.jpg",
    }


def test_unknown_or_disabled_category_is_not_found() -> None:
    app, _ = _build_app()

    with TestClient(app) as client:
        unknown = client.get("/categories/cult-classics/movies")
        disabled = client.get("/categories/revenue/movies")

    assert unknown.status_code == 404
    assert disabled.status_code == 404


def test_movie_detail_and_out_of_range_index() -> None:
    app, _ = _build_app()

    with TestClient(app) as client:
        found = client.get("/categories/popular/movies/1")
        missing = client.get("/categories/popular/movies/99")

    assert found.status_code == 200
    detail = found.json()
    assert detail["title"] == "Movie 2"
    assert detail["date"] == "2020-05-01 📅"
    assert detail["revenue"] == "$5,000,000"
    assert missing.status_code == 404


def test_visible_index_near_the_end_loads_next_page() -> None:
    app, _ = _build_app()

    with TestClient(app) as client:
        response = client.post("/categories/popular/visible/1")
        movies = client.get("/categories/popular/movies").json()["movies"]
        status = client.get("/status").json()

    assert response.status_code == 200
    payload = response.json()
    assert payload["triggered"] is True
    assert payload["count"] == 5
    assert payload["currentPage"] == 2
    assert [movie["id"] for movie in movies] == [1, 2, 3, 4, 5]
    assert status["updatedCategories"] == ["popular"]


def test_load_more_surfaces_errors_in_status() -> None:
    app, _ = _build_app()

    with TestClient(app) as client:
        client.post("/categories/top-rated/load-more")
        second = client.post("/categories/top-rated/load-more")
        status = client.get("/status").json()

    assert second.status_code == 200
    assert second.json()["count"] == 2
    assert second.json()["currentPage"] == 2
    assert status["errors"] == ["Failed to load more Top Rated: No data received"]
    assert status["loading"] is False


def test_refresh_runs_initial_load() -> None:
    app, _ = _build_app(preload=False)

    with TestClient(app) as client:
        before = client.get("/categories").json()["categories"]
        response = client.post("/refresh")
        after = client.get("/categories").json()["categories"]

    assert [lane["count"] for lane in before] == [0, 0]
    assert response.status_code == 200
    assert response.json()["lastUpdatedAt"] is not None
    assert [lane["count"] for lane in after] == [3, 1]


def test_clear_cache() -> None:
    app, cache = _build_app()

    with TestClient(app) as client:
        response = client.delete("/cache")

    assert response.status_code == 200
    assert cache.cleared is True
    assert cache.stored == {}


def test_failed_startup_closes_http_client_and_database(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    clients: list[httpx.AsyncClient] = []
    disposed: list[bool] = []

    class RecordingClient(httpx.AsyncClient):
        def __init__(self, *args, **kwargs) -> None:
            super().__init__(*args, **kwargs)
            clients.append(self)

    class RecordingDatabase(Database):
        async def dispose(self) -> None:
            disposed.append(True)
            await super().dispose()

    monkeypatch.setattr(main_module.httpx, "AsyncClient", RecordingClient)
    monkeypatch.setattr(main_module, "Database", RecordingDatabase)
    monkeypatch.setattr(
        main_module,
        "settings",
        Settings(
            _env_file=None,
            TMDB_API_KEY="",
            DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'startup.db'}",
        ),
    )

    async def runner() -> None:
        async with main_module.lifespan(FastAPI()):
            pass  # pragma: no cover - startup fails before yielding

    with pytest.raises(ValueError):
        asyncio.run(runner())

    assert len(clients) == 1
    assert clients[0].is_closed
    assert disposed == [True]
