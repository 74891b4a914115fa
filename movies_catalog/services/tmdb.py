"""Client for the discovery endpoint of The Movie Database (TMDB)."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from ..categories import MovieCategory
from ..config import Settings
from ..models import MoviePage

logger = logging.getLogger(__name__)

DISCOVER_ENDPOINT = "/discover/movie"


class CatalogFetchError(RuntimeError):
    """Raised when a discovery page could not be fetched or decoded."""

    def __init__(self, category: MovieCategory, message: str):
        super().__init__(message)
        self.category = category
        self.message = message


class TMDBClient:
    """Fetches paginated discovery results, one category and page at a time."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    def _params(self, category: MovieCategory, page: int) -> dict[str, str | int]:
        params: dict[str, str | int] = {
            "api_key": self._settings.tmdb_api_key or "",
            "sort_by": category.sort_key,
            "page": page,
            "include_adult": "false",
            "include_video": "false",
            "language": self._settings.tmdb_language,
        }
        if category is MovieCategory.REVENUE:
            params["revenue.gte"] = self._settings.revenue_floor
        return params

    async def fetch_movies(self, category: MovieCategory, page: int = 1) -> MoviePage:
        """Return one discovery page for the category.

        Network failures, error statuses and malformed payloads all surface as
        :class:`CatalogFetchError`.
        """

        if page < 1:
            raise ValueError("Discovery pages are numbered from 1")

        try:
            response = await self._client.get(
                DISCOVER_ENDPOINT, params=self._params(category, page)
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "TMDB request for %s (page %s) failed: %s",
                category.key,
                page,
                exc.__class__.__name__,
            )
            raise CatalogFetchError(
                category, f"Network error: {str(exc) or exc.__class__.__name__}"
            ) from exc

        if response.status_code >= 400:
            logger.warning(
                "TMDB discovery for %s (page %s) returned %s: %s",
                category.key,
                page,
                response.status_code,
                response.text,
            )
            raise CatalogFetchError(
                category, f"Unexpected response status {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON TMDB response for %s", category.key)
            raise CatalogFetchError(category, "Failed to decode response") from exc

        try:
            return MoviePage.model_validate(payload)
        except ValidationError as exc:
            logger.warning(
                "Unexpected TMDB response structure for %s: %s", category.key, exc
            )
            raise CatalogFetchError(category, "Failed to decode response") from exc
