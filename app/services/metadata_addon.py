"""Helper client for fetching metadata from Cinemeta-compatible add-ons."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import ProviderError, ProviderNotFound
from ..models import CanonicalItem, ContentType, Video
from ..utils import gather_in_windows, normalize_imdb_id
from .cache import MISSING, CacheService
from .http import ProviderHttp
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list):
        return [str(part).strip() for part in value if isinstance(part, (str, int)) and str(part).strip()]
    return []


class MetadataAddonClient:
    """Wrapper around the meta and catalog-search endpoints of a Cinemeta add-on."""

    _META_PATH = "/meta/{type}/{id}.json"
    _SEARCH_PATH = "/catalog/{type}/top/search={query}.json"

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        cache: CacheService | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._http = ProviderHttp(
            http_client, "cinemeta", policy or RetryPolicy.from_settings(settings), sleep=sleep
        )
        self._cache = cache or CacheService(
            default_ttl=settings.metadata_cache_ttl,
            negative_ttl=settings.negative_cache_ttl,
            maxsize=settings.cache_max_entries,
        )

    async def fetch_meta(self, imdb_id: str, content_type: ContentType) -> CanonicalItem | None:
        """Return the add-on's record for ``imdb_id`` or ``None`` if unavailable."""

        normalized = normalize_imdb_id(imdb_id)
        if normalized is None:
            return None
        key = f"cinemeta:{content_type}:{normalized}"
        cached = self._cache.lookup(key)
        if cached is not MISSING:
            return cached
        path = self._META_PATH.format(type=content_type, id=normalized)
        try:
            payload = await self._http.get_json(path)
        except ProviderNotFound:
            self._cache.set_negative(key)
            return None
        except ProviderError as exc:
            # Transient failures are not remembered.
            logger.warning("Metadata add-on lookup failed for %s: %s", normalized, exc)
            return None
        meta = payload.get("meta") if isinstance(payload, dict) else None
        item = self.parse_meta(meta, content_type, normalized)
        self._cache.set(key, item)
        return item

    async def fetch_many(
        self, items: Sequence[CanonicalItem]
    ) -> dict[str, CanonicalItem]:
        """Fetch records for every item with an IMDb id, a window at a time."""

        wanted = [item for item in items if item.imdb_id]
        results = await gather_in_windows(
            wanted,
            lambda item: self.fetch_meta(item.imdb_id or "", item.type),
            window=min(self._settings.metadata_batch_size, 10),
        )
        found: dict[str, CanonicalItem] = {}
        for item, result in zip(wanted, results):
            if isinstance(result, CanonicalItem):
                found[item.primary_id] = result
            elif isinstance(result, BaseException):
                logger.warning("Metadata lookup for %s raised %s", item.primary_id, result)
        return found

    async def search(self, query: str, content_type: ContentType) -> list[CanonicalItem]:
        path = self._SEARCH_PATH.format(type=content_type, query=quote(query.strip(), safe=""))
        try:
            payload = await self._http.get_json(path)
        except ProviderError as exc:
            logger.warning("Metadata add-on search failed for %r: %s", query, exc)
            return []
        metas = payload.get("metas") if isinstance(payload, dict) else None
        if not isinstance(metas, list):
            return []
        results: list[CanonicalItem] = []
        for meta in metas:
            item = self.parse_meta(meta, content_type)
            if item is not None:
                results.append(item)
        return results

    @classmethod
    def parse_meta(
        cls, meta: Any, content_type: ContentType, imdb_id: str | None = None
    ) -> CanonicalItem | None:
        if not isinstance(meta, dict):
            return None
        identifier = normalize_imdb_id(meta.get("imdb_id") or meta.get("id")) or imdb_id
        payload = {
            "type": content_type,
            "imdb_id": identifier,
            "tmdb_id": meta.get("moviedb_id") or meta.get("tmdb_id"),
            "tvdb_id": meta.get("tvdb_id"),
            "title": meta.get("name") or meta.get("title"),
            "year": meta.get("year") or meta.get("releaseInfo"),
            "release_info": meta.get("releaseInfo"),
            "released": meta.get("released"),
            "overview": meta.get("description"),
            "genres": meta.get("genres") or meta.get("genre"),
            "runtime": meta.get("runtime"),
            "poster": cls._ensure_url(meta.get("poster")),
            "background": cls._ensure_url(meta.get("background")),
            "logo": cls._ensure_url(meta.get("logo")),
            "rating": meta.get("imdbRating"),
            "cast": _as_list(meta.get("cast")),
            "director": _as_list(meta.get("director")),
            "writer": _as_list(meta.get("writer")),
            "country": meta.get("country"),
            "status": meta.get("status"),
            "trailer_streams": [
                {"title": str(trailer.get("title") or ""), "ytId": str(trailer["ytId"])}
                for trailer in meta.get("trailerStreams") or []
                if isinstance(trailer, dict) and trailer.get("ytId")
            ],
            "videos": cls._parse_videos(meta.get("videos")) if content_type == "series" else [],
        }
        try:
            return CanonicalItem.model_validate(payload)
        except ValidationError:
            return None

    @staticmethod
    def _parse_videos(raw: Any) -> list[Video]:
        videos: list[Video] = []
        for entry in raw if isinstance(raw, list) else []:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            episode = entry.get("episode") or entry.get("number")
            season = entry.get("season")
            if episode is None or season is None:
                continue
            try:
                videos.append(
                    Video(
                        id=str(entry["id"]),
                        title=str(entry.get("name") or entry.get("title") or f"Episode {episode}"),
                        season=int(season),
                        episode=int(episode),
                        released=entry.get("released"),
                        thumbnail=entry.get("thumbnail"),
                        overview=entry.get("overview") or entry.get("description") or "",
                        rating=str(entry["rating"]) if entry.get("rating") is not None else None,
                    )
                )
            except (TypeError, ValueError):
                continue
        return videos

    @staticmethod
    def _ensure_url(value: Any) -> str | None:
        if isinstance(value, str) and value.startswith("http"):
            return value
        return None
