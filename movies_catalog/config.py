"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .categories import DEFAULT_CATEGORY_KEYS, MovieCategory, parse_category_keys


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Movies Catalog", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="en-US", alias="TMDB_LANGUAGE")
    tmdb_timeout_seconds: float = Field(
        default=10.0, alias="TMDB_TIMEOUT", ge=1.0, le=120.0
    )
    revenue_floor: int = Field(default=1_000_000, alias="REVENUE_FLOOR", ge=0)

    category_keys: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_CATEGORY_KEYS,
        alias="CATEGORY_KEYS",
    )
    offline_cache_limit: int = Field(
        default=40, alias="OFFLINE_CACHE_LIMIT", ge=1, le=40
    )
    prefetch_threshold: int = Field(
        default=5, alias="PREFETCH_THRESHOLD", ge=0, le=50
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./movies_catalog.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("category_keys", mode="before")
    @classmethod
    def _parse_category_keys(cls, value: object) -> tuple[str, ...]:
        """Normalise category key selections from environment values."""

        return parse_category_keys(value)

    @property
    def categories(self) -> tuple[MovieCategory, ...]:
        """Return the selected categories in declaration order."""

        return tuple(MovieCategory.from_key(key) for key in self.category_keys)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
