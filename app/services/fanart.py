"""Artwork lookups against fanart.tv."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from ..config import Settings
from ..errors import ProviderError, ProviderNotFound
from ..models import CanonicalItem
from ..utils import pick_localized
from .cache import MISSING, CacheService
from .http import ProviderHttp
from .retry import RetryPolicy
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

MOVIE_KEYS = ("hdmovielogo", "moviebackground", "movieposter")
SERIES_KEYS = ("hdtvlogo", "showbackground", "tvposter")


@dataclass(slots=True)
class FanartImages:
    logo: str | None = None
    background: str | None = None
    poster: str | None = None

    def __bool__(self) -> bool:
        return bool(self.logo or self.background or self.poster)


class FanartClient:
    """Resolve logo, background and poster art for movies and series.

    Movies are looked up by TMDB id (IMDb id when TMDB is unknown), series by
    TVDB id. A series without a TVDB id is resolved through TMDB external ids
    first. Missing artwork is an ordinary outcome, not an error.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        tmdb: TMDBClient | None = None,
        cache: CacheService | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings
        self._tmdb = tmdb
        self._http = ProviderHttp(
            http_client, "fanart", policy or RetryPolicy.from_settings(settings), sleep=sleep
        )
        self._cache = cache or CacheService(
            default_ttl=settings.metadata_cache_ttl,
            negative_ttl=settings.negative_cache_ttl,
            maxsize=settings.cache_max_entries,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._settings.fanart_api_key)

    async def images_for(
        self, item: CanonicalItem, *, language: str, tmdb_token: str | None = None
    ) -> FanartImages:
        if not self.enabled:
            return FanartImages()
        if item.type == "movie":
            artwork_id = item.tmdb_id or item.imdb_id
            if not artwork_id:
                return FanartImages()
            path = f"/movies/{artwork_id}"
            keys = MOVIE_KEYS
        else:
            tvdb_id = item.tvdb_id or await self._resolve_tvdb_id(item, tmdb_token)
            if not tvdb_id:
                return FanartImages()
            path = f"/tv/{tvdb_id}"
            keys = SERIES_KEYS
        payload = await self._fetch(path)
        if not payload:
            return FanartImages()
        logo, background, poster = (
            self._pick(payload.get(key), language, item.original_language) for key in keys
        )
        return FanartImages(logo=logo, background=background, poster=poster)

    async def _resolve_tvdb_id(
        self, item: CanonicalItem, tmdb_token: str | None
    ) -> int | None:
        if self._tmdb is None or item.tmdb_id is None:
            return None
        if not self._tmdb.resolve_token(tmdb_token):
            return None
        ids = await self._tmdb.fetch_external_ids(item.tmdb_id, "series", tmdb_token)
        tvdb_id = ids.get("tvdb_id") if ids else None
        return int(tvdb_id) if tvdb_id else None

    async def _fetch(self, path: str) -> dict[str, Any] | None:
        cached = self._cache.lookup(f"fanart:{path}")
        if cached is not MISSING:
            return cached
        try:
            payload = await self._http.get_json(
                path, params={"api_key": self._settings.fanart_api_key}
            )
        except ProviderNotFound:
            self._cache.set_negative(f"fanart:{path}")
            return None
        except ProviderError as exc:
            logger.warning("fanart.tv lookup failed for %s: %s", path, exc)
            return None
        result = payload if isinstance(payload, dict) else None
        self._cache.set(f"fanart:{path}", result)
        return result

    @staticmethod
    def _pick(
        images: Any, language: str, original_language: str | None
    ) -> str | None:
        if not isinstance(images, list):
            return None
        entries = [image for image in images if isinstance(image, dict) and image.get("url")]
        best = pick_localized(
            entries, language=language, original_language=original_language, key="lang"
        )
        return str(best["url"]) if best else None
