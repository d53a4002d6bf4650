"""Title search across the configured sources."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Sequence

from ..models import CanonicalItem, ContentType
from ..user_config import UserConfig
from .metadata_addon import MetadataAddonClient
from .tmdb import TMDBClient
from .trakt import TraktClient

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
DEFAULT_LIMIT = 50


class SearchService:
    """Fan a query out to Cinemeta, Trakt and TMDB and merge the answers."""

    def __init__(
        self,
        *,
        cinemeta: MetadataAddonClient,
        trakt: TraktClient,
        tmdb: TMDBClient,
    ):
        self._cinemeta = cinemeta
        self._trakt = trakt
        self._tmdb = tmdb

    def available_sources(self, config: UserConfig) -> list[str]:
        sources: list[str] = []
        for source in config.search_sources:
            if source in {"cinemeta", "trakt"}:
                sources.append(source)
            elif source == "tmdb" and (
                self._tmdb.resolve_token(config.tmdb_bearer_token) or config.tmdb_session_id
            ):
                sources.append(source)
        return sources

    async def search(
        self,
        query: str,
        config: UserConfig,
        *,
        content_type: ContentType | None,
        sources: Sequence[str],
        limit: int = DEFAULT_LIMIT,
    ) -> list[CanonicalItem]:
        """Return up to ``limit`` unique results; ``multi`` uses TMDB's mixed search."""

        text = (query or "").strip()
        if len(text) < MIN_QUERY_LENGTH:
            return []
        types: list[ContentType] = [content_type] if content_type else ["movie", "series"]
        token = config.tmdb_bearer_token
        calls: list[tuple[str, Awaitable[list[CanonicalItem]]]] = []
        for source in sources:
            if source == "cinemeta":
                for kind in types:
                    calls.append((source, self._cinemeta.search(text, kind)))
            elif source == "trakt":
                calls.append((source, self._trakt.search(text, content_type, limit=limit)))
            elif source == "tmdb":
                calls.append(
                    (
                        source,
                        self._tmdb.search(
                            text, content_type, language=config.tmdb_language, token=token
                        ),
                    )
                )
            elif source == "multi":
                calls.append(
                    (
                        source,
                        self._tmdb.search(text, None, language=config.tmdb_language, token=token),
                    )
                )
        if not calls:
            return []

        results = await asyncio.gather(*(call for _, call in calls), return_exceptions=True)
        merged: dict[str, CanonicalItem] = {}
        for (source, _), result in zip(calls, results):
            if isinstance(result, BaseException):
                logger.warning("Search source %s failed for %r: %s", source, text, result)
                continue
            for item in result:
                merged.setdefault(item.primary_id, item)
        return list(merged.values())[:limit]
