"""Fixed movie category lanes shown in the catalog."""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class MovieCategory(str, Enum):
    """Discovery lanes keyed by the TMDB ``sort_by`` value.

    Declaration order is the display order of the lanes.
    """

    POPULAR = "popularity.desc"
    TOP_RATED = "vote_average.desc"
    REVENUE = "revenue.desc"
    RELEASE_DATE = "release_date.desc"

    @property
    def sort_key(self) -> str:
        return self.value

    @property
    def key(self) -> str:
        """Return the URL-friendly slug for the category."""

        return self.name.lower().replace("_", "-")

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def from_key(cls, value: str) -> "MovieCategory":
        """Resolve a slug, member name or sort key into a category."""

        cleaned = _normalise_key(value)
        for category in cls:
            if cleaned in (category.key, _normalise_key(category.value)):
                return category
        raise ValueError(f"Unknown movie category: {value!r}")


_DISPLAY_NAMES: dict[MovieCategory, str] = {
    MovieCategory.POPULAR: "Popular",
    MovieCategory.TOP_RATED: "Top Rated",
    MovieCategory.REVENUE: "Revenue",
    MovieCategory.RELEASE_DATE: "Release Date",
}

ALL_CATEGORIES: tuple[MovieCategory, ...] = tuple(MovieCategory)
DEFAULT_CATEGORY_KEYS: tuple[str, ...] = tuple(
    category.key for category in ALL_CATEGORIES
)


def _normalise_key(value: str) -> str:
    slug = str(value).strip().replace("_", "-").replace(" ", "-").lower()
    return "-".join(filter(None, slug.split("-")))


def parse_category_keys(value: object) -> tuple[str, ...]:
    """Normalise category selections into ordered, de-duplicated slugs."""

    if value is None:
        return DEFAULT_CATEGORY_KEYS
    if isinstance(value, str):
        raw_values = [part.strip() for part in value.split(",")]
    elif isinstance(value, Iterable):
        raw_values = [str(part).strip() for part in value]
    else:
        raise TypeError("CATEGORY_KEYS must be a string or iterable of strings")

    selected: set[MovieCategory] = set()
    for entry in raw_values:
        if not entry:
            continue
        try:
            selected.add(MovieCategory.from_key(entry))
        except ValueError as exc:
            raise ValueError("Unknown category keys configured") from exc
    if not selected:
        return DEFAULT_CATEGORY_KEYS
    return tuple(category.key for category in ALL_CATEGORIES if category in selected)
