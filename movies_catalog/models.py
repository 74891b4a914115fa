"""Pydantic models describing TMDB discovery payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
BACKDROP_BASE_URL = "https://image.tmdb.org/t/p/w780"


class Movie(BaseModel):
    """A single movie returned by the discovery endpoint.

    Two movies are the same entry when their TMDB ids match, even if the
    remaining fields differ between fetches.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    title: str
    overview: str = ""
    poster_path: str | None = None
    backdrop_path: str | None = None
    release_date: str = ""
    vote_average: float = 0.0
    vote_count: int = 0
    popularity: float = 0.0
    revenue: int | None = None

    @field_validator("overview", "release_date", mode="before")
    @classmethod
    def _blank_if_missing(cls, value: object) -> object:
        return "" if value is None else value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Movie):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def full_poster_url(self) -> str | None:
        return _build_image_url(self.poster_path, POSTER_BASE_URL)

    @property
    def full_backdrop_url(self) -> str | None:
        return _build_image_url(self.backdrop_path, BACKDROP_BASE_URL)

    @property
    def formatted_rating(self) -> str:
        return f"{self.vote_average:.1f}"

    @property
    def release_year(self) -> str:
        """Return the four digit release year, or an empty string."""

        try:
            return str(datetime.strptime(self.release_date, "%Y-%m-%d").year)
        except ValueError:
            return ""

    def to_summary(self) -> dict[str, object]:
        """Return the compact card used in category listings."""

        summary: dict[str, object] = {
            "id": self.id,
            "title": self.title,
            "rating": self.formatted_rating,
        }
        if self.release_year:
            summary["year"] = self.release_year
        if self.full_poster_url:
            summary["poster"] = self.full_poster_url
        return summary


class MoviePage(BaseModel):
    """One server-paginated batch of discovery results."""

    page: int = Field(ge=1)
    results: list[Movie] = Field(default_factory=list)
    total_pages: int = 0
    total_results: int = 0

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


class MovieDetail(BaseModel):
    """Display-ready fields for the movie detail and player info screens."""

    id: int
    title: str
    year: str
    rating: str
    overview: str
    poster_url: str | None = None
    backdrop_url: str | None = None
    date: str
    vote_count: str
    popularity: str
    revenue: str | None = None

    @classmethod
    def from_movie(cls, movie: Movie) -> "MovieDetail":
        return cls(
            id=movie.id,
            title=movie.title,
            year=movie.release_year,
            rating=f"⭐ {movie.formatted_rating}",
            overview=movie.overview,
            poster_url=movie.full_poster_url,
            backdrop_url=movie.full_backdrop_url,
            date=f"{movie.release_date} 📅" if movie.release_date else "",
            vote_count=f"{movie.vote_count} votes",
            popularity=f"{movie.popularity:.1f} popularity",
            revenue=_format_revenue(movie.revenue),
        )


def _build_image_url(path: str | None, base_url: str) -> str | None:
    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url}{path}"


def _format_revenue(revenue: int | None) -> str | None:
    if revenue is None or revenue <= 0:
        return None
    return f"${revenue:,}"
