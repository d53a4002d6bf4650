"""Pydantic models describing catalog payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .utils import (
    format_rating,
    format_runtime,
    normalize_genres,
    normalize_imdb_id,
    parse_year,
)

ContentType = Literal["movie", "series"]
TypeHint = Literal["movie", "series", "all"]


def to_content_type(value: Any) -> ContentType | None:
    """Map the many provider spellings of a media type onto ours."""

    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    if lowered in {"movie", "movies", "film"}:
        return "movie"
    if lowered in {"show", "shows", "series", "tv", "season", "episode"}:
        return "series"
    return None


class Video(BaseModel):
    """One episode of a series."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = Field(
        validation_alias=AliasChoices("title", "name"),
        serialization_alias="name",
    )
    season: int
    episode: int
    released: str | None = None
    thumbnail: str | None = None
    overview: str | None = None
    rating: str | None = None
    absolute_number: int | None = Field(
        default=None, serialization_alias="absoluteNumber"
    )

    def to_wire(self) -> dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True)
        payload["number"] = self.episode
        payload.setdefault("overview", "")
        payload["description"] = payload["overview"]
        return payload


class CanonicalItem(BaseModel):
    """Provider-independent representation of one list entry.

    The content type is fixed by the adapter that produced the item. At least
    one of ``imdb_id`` or ``tmdb_id`` must be known.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: ContentType
    imdb_id: str | None = Field(
        default=None, validation_alias=AliasChoices("imdb_id", "imdbid", "imdbId")
    )
    tmdb_id: int | None = Field(
        default=None, validation_alias=AliasChoices("tmdb_id", "tmdbid", "tmdbId")
    )
    tvdb_id: int | None = Field(
        default=None, validation_alias=AliasChoices("tvdb_id", "tvdbid", "tvdbId")
    )
    trakt_id: int | None = None
    title: str | None = Field(
        default=None, validation_alias=AliasChoices("title", "name")
    )
    year: int | None = Field(
        default=None,
        validation_alias=AliasChoices("year", "release_year"),
    )
    release_info: str | None = Field(
        default=None, validation_alias=AliasChoices("release_info", "releaseInfo")
    )
    released: str | None = None
    overview: str | None = Field(
        default=None, validation_alias=AliasChoices("overview", "description")
    )
    genres: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("genres", "genre")
    )
    runtime: str | None = None
    poster: str | None = None
    background: str | None = Field(
        default=None, validation_alias=AliasChoices("background", "backdrop")
    )
    logo: str | None = None
    rating: str | None = Field(
        default=None,
        validation_alias=AliasChoices("rating", "imdbRating", "imdbrating"),
    )
    cast: list[str] = Field(default_factory=list)
    director: list[str] = Field(default_factory=list)
    writer: list[str] = Field(default_factory=list)
    country: str | None = None
    status: str | None = None
    original_language: str | None = None
    trailer_streams: list[dict[str, str]] = Field(default_factory=list)
    videos: list[Video] = Field(default_factory=list)
    listed_at: str | None = None
    rank: int | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value: object) -> object:
        return to_content_type(value) or value

    @field_validator("imdb_id", mode="before")
    @classmethod
    def _parse_imdb_id(cls, value: object) -> object:
        return normalize_imdb_id(value)

    @field_validator("tmdb_id", "tvdb_id", "trakt_id", "rank", mode="before")
    @classmethod
    def _parse_optional_int(cls, value: object) -> object:
        if value is None or value == "" or isinstance(value, bool):
            return None
        try:
            return int(str(value).strip())
        except (TypeError, ValueError):
            return None

    @field_validator("year", mode="before")
    @classmethod
    def _parse_year(cls, value: object) -> object:
        return parse_year(value)

    @field_validator("genres", mode="before")
    @classmethod
    def _parse_genres(cls, value: object) -> object:
        return normalize_genres(value)

    @field_validator("runtime", mode="before")
    @classmethod
    def _parse_runtime(cls, value: object) -> object:
        return format_runtime(value)

    @field_validator("rating", mode="before")
    @classmethod
    def _parse_rating(cls, value: object) -> object:
        return format_rating(value)

    @field_validator("title", "overview", "poster", "background", "logo", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @model_validator(mode="after")
    def _require_identity(self) -> "CanonicalItem":
        if not (self.imdb_id or self.tmdb_id):
            raise ValueError("item has neither an IMDb nor a TMDB id")
        return self

    @property
    def primary_id(self) -> str:
        """Stable identity used for catalog and meta lookups."""

        if self.imdb_id:
            return self.imdb_id
        return f"tmdb:{self.tmdb_id}"

    def display_title(self) -> str:
        title = (self.title or "").strip()
        if title:
            return title
        return "Untitled Series" if self.type == "series" else "Untitled Movie"


@dataclass(slots=True)
class ListContent:
    """A page of canonical items plus the content types observed on it."""

    items: list[CanonicalItem] = field(default_factory=list)
    has_movies: bool = False
    has_shows: bool = False

    @classmethod
    def from_items(cls, items: Iterable[CanonicalItem]) -> "ListContent":
        collected = list(items)
        return cls(
            items=collected,
            has_movies=any(item.type == "movie" for item in collected),
            has_shows=any(item.type == "series" for item in collected),
        )


SourceKind = Literal["mdblist", "trakt", "tmdb", "imported"]


@dataclass(slots=True)
class ListSource:
    """One discovered list, re-derived on every manifest build."""

    source: SourceKind
    catalog_id: str
    raw_id: str
    name: str
    list_kind: str | None = None
    has_movies: bool = False
    has_shows: bool = False


class CatalogExtra(BaseModel):
    """One ``extra`` entry of a manifest catalog."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    options: list[str] | None = None
    is_required: bool | None = Field(default=None, serialization_alias="isRequired")


class CatalogDescriptor(BaseModel):
    """A single catalog advertised in the manifest."""

    id: str
    type: str
    name: str
    extra: list[CatalogExtra] = Field(default_factory=list)

    def to_manifest_entry(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "extra": [
                extra.model_dump(by_alias=True, exclude_none=True)
                for extra in self.extra
            ],
            "extraSupported": [extra.name for extra in self.extra],
        }
