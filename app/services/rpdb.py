"""Rating poster lookups."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable
from urllib.parse import urlencode

import httpx

from ..config import Settings
from ..errors import ProviderError
from ..user_config import FREE_RPDB_KEY
from ..utils import gather_in_windows, normalize_imdb_id
from .cache import MISSING, CacheService
from .http import ProviderHttp
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class RPDBClient:
    """Build rating-poster URLs and keep only the ones the service can serve."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        cache: CacheService | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings
        self._base_url = str(settings.rpdb_api_url).rstrip("/")
        self._http = ProviderHttp(
            http_client, "rpdb", policy or RetryPolicy.from_settings(settings), sleep=sleep
        )
        self._cache = cache or CacheService(
            default_ttl=settings.metadata_cache_ttl,
            negative_ttl=settings.negative_cache_ttl,
            maxsize=settings.cache_max_entries,
        )

    def poster_url(self, imdb_id: str, api_key: str, language: str | None = None) -> str:
        url = f"{self._base_url}/{api_key}/imdb/poster-default/{imdb_id}.jpg"
        params = {"fallback": "true"}
        if language and api_key != FREE_RPDB_KEY:
            params["lang"] = language.split("-")[0]
        return f"{url}?{urlencode(params)}"

    async def fetch_poster(
        self, imdb_id: str, api_key: str, language: str | None = None
    ) -> str | None:
        """Return the poster URL when the service answers 200 for it."""

        normalized = normalize_imdb_id(imdb_id)
        if normalized is None:
            return None
        url = self.poster_url(normalized, api_key, language)
        key = f"rpdb:{api_key}:{normalized}:{language or ''}"
        cached = self._cache.lookup(key)
        if cached is not MISSING:
            return cached
        try:
            response = await self._http.request("HEAD", url)
        except ProviderError as exc:
            logger.info("No rating poster for %s: %s", normalized, exc)
            self._cache.set_negative(key)
            return None
        result = url if response.status_code == 200 else None
        self._cache.set(key, result)
        return result

    async def batch_fetch_posters(
        self, imdb_ids: Iterable[str], api_key: str, language: str | None = None
    ) -> dict[str, str]:
        unique = list(dict.fromkeys(imdb_ids))
        results = await gather_in_windows(
            unique,
            lambda imdb_id: self.fetch_poster(imdb_id, api_key, language),
            window=self._settings.poster_concurrency,
        )
        posters: dict[str, str] = {}
        for imdb_id, result in zip(unique, results):
            if isinstance(result, str):
                posters[imdb_id] = result
            elif isinstance(result, BaseException):
                logger.warning("Rating poster lookup for %s raised %s", imdb_id, result)
        return posters
