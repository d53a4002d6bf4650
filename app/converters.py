"""Conversion of canonical items into Stremio meta objects."""

from __future__ import annotations

from typing import Any, Iterable

from .models import CanonicalItem


def to_stremio_meta(item: CanonicalItem, *, meta_id: str | None = None) -> dict[str, Any]:
    """Render ``item`` with one Stremio field name per concept.

    Unresolved fields are omitted rather than emitted as ``null``.
    """

    release_info = item.release_info or (str(item.year) if item.year else None)
    meta: dict[str, Any] = {
        "id": meta_id or item.primary_id,
        "imdb_id": item.imdb_id,
        "type": item.type,
        "name": item.display_title(),
        "poster": item.poster,
        "posterShape": "poster",
        "background": item.background,
        "logo": item.logo,
        "description": item.overview,
        "releaseInfo": release_info,
        "year": item.year,
        "released": item.released,
        "imdbRating": item.rating,
        "runtime": item.runtime,
        "genres": item.genres or None,
        "cast": item.cast or None,
        "director": item.director or None,
        "writer": item.writer or None,
        "country": item.country,
        "trailerStreams": item.trailer_streams or None,
        "behaviorHints": {"hasScheduledVideos": False},
    }
    if item.tmdb_id is not None:
        meta["moviedb_id"] = item.tmdb_id
    if item.type == "series":
        meta["status"] = item.status
        if item.videos:
            meta["videos"] = [video.to_wire() for video in item.videos]
    return {key: value for key, value in meta.items() if value is not None}


def to_stremio_metas(items: Iterable[CanonicalItem]) -> list[dict[str, Any]]:
    return [to_stremio_meta(item) for item in items]


def matches_genre(meta: dict[str, Any], genre: str) -> bool:
    """Case-insensitive membership test against a meta's genre list."""

    wanted = genre.strip().lower()
    return any(str(value).lower() == wanted for value in meta.get("genres") or [])
