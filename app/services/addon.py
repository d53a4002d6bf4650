"""Stremio addon callbacks: manifest, catalog and meta."""

from __future__ import annotations

import logging
from typing import Any

from ..catalog_ids import (
    DISCOVERY_CATALOG_ID,
    MERGED_SEARCH_CATALOG_ID,
    SearchCatalog,
    is_watchlist,
    parse_catalog_id,
)
from ..config import Settings
from ..converters import matches_genre, to_stremio_meta, to_stremio_metas
from ..models import CanonicalItem, ContentType, TypeHint, to_content_type
from ..user_config import UserConfig
from .enrichment import EnrichmentService
from .manifest import ManifestBuilder
from .router import ListRouter
from .search import MIN_QUERY_LENGTH, SearchService

logger = logging.getLogger(__name__)

LIST_CACHE_MAX_AGE = 5 * 60
SEARCH_CACHE_MAX_AGE = 5 * 60
META_CACHE_MAX_AGE = 24 * 60 * 60


class AddonService:
    """Glue between the HTTP layer and the list, search and enrichment services.

    The catalog and meta callbacks never raise: failures are logged and turned
    into an empty catalog or a placeholder meta.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        manifest: ManifestBuilder,
        router: ListRouter,
        enrichment: EnrichmentService,
        search: SearchService,
    ):
        self._settings = settings
        self._manifest = manifest
        self._router = router
        self._enrichment = enrichment
        self._search = search

    async def manifest(self, config: UserConfig) -> dict[str, Any]:
        return await self._manifest.build(config)

    async def catalog(
        self,
        config: UserConfig,
        content_type: str,
        catalog_id: str,
        *,
        skip: int = 0,
        genre: str | None = None,
        search: str | None = None,
    ) -> dict[str, Any]:
        try:
            ref = parse_catalog_id(catalog_id, config)
            if isinstance(ref, SearchCatalog) or (search and "_search" in catalog_id):
                return await self._search_catalog(
                    config, content_type, catalog_id, query=search, genre=genre
                )
            return await self._list_catalog(
                config, content_type, catalog_id, skip=skip, genre=genre
            )
        except Exception:
            logger.exception("Catalog %s/%s failed", content_type, catalog_id)
            return {"metas": []}

    async def _list_catalog(
        self,
        config: UserConfig,
        content_type: str,
        catalog_id: str,
        *,
        skip: int,
        genre: str | None,
    ) -> dict[str, Any]:
        requested = to_content_type(content_type) if content_type in {"movie", "series"} else None
        type_hint: TypeHint = requested or "all"
        content = await self._router.resolve(
            catalog_id, config, skip=skip, genre=genre, type_hint=type_hint
        )
        if content is None:
            return {"metas": []}
        items = await self._enrichment.enrich(content.items, config)
        metas = self._filter(to_stremio_metas(items), requested, genre)
        if catalog_id == DISCOVERY_CATALOG_ID or is_watchlist(catalog_id):
            cache_max_age = 0
        else:
            cache_max_age = LIST_CACHE_MAX_AGE
        return {"metas": metas, "cacheMaxAge": cache_max_age}

    async def _search_catalog(
        self,
        config: UserConfig,
        content_type: str,
        catalog_id: str,
        *,
        query: str | None,
        genre: str | None,
    ) -> dict[str, Any]:
        text = (query or "").strip()
        if len(text) < MIN_QUERY_LENGTH:
            return {"metas": []}
        requested = to_content_type(content_type) if content_type in {"movie", "series"} else None
        if catalog_id == MERGED_SEARCH_CATALOG_ID:
            sources = ["multi"]
            requested = None
        else:
            sources = self._search.available_sources(config)
            if not sources:
                return {"metas": []}
        results = await self._search.search(
            text, config, content_type=requested, sources=sources
        )
        items = await self._enrichment.enrich(results, config)
        metas = self._filter(to_stremio_metas(items), requested, genre)
        return {"metas": metas, "cacheMaxAge": SEARCH_CACHE_MAX_AGE}

    @staticmethod
    def _filter(
        metas: list[dict[str, Any]],
        content_type: ContentType | None,
        genre: str | None,
    ) -> list[dict[str, Any]]:
        if content_type is not None:
            metas = [meta for meta in metas if meta.get("type") == content_type]
        if genre and genre != "All":
            metas = [meta for meta in metas if matches_genre(meta, genre)]
        return metas

    async def meta(self, config: UserConfig, content_type: str, meta_id: str) -> dict[str, Any]:
        if not (meta_id.startswith("tt") or meta_id.startswith("tmdb:")):
            return {"meta": None}
        try:
            stub = self._stub(content_type, meta_id)
            enriched = await self._enrichment.enrich([stub], config)
            if enriched and enriched[0].title:
                meta = to_stremio_meta(enriched[0], meta_id=meta_id)
                return {"meta": meta, "cacheMaxAge": META_CACHE_MAX_AGE}
            logger.warning("No metadata source could describe %s", meta_id)
            return {"meta": {"id": meta_id, "type": content_type, "name": "Details unavailable"}}
        except Exception:
            logger.exception("Meta lookup for %s failed", meta_id)
            return {"meta": {"id": meta_id, "type": content_type, "name": "Error loading details"}}

    @staticmethod
    def _stub(content_type: str, meta_id: str) -> CanonicalItem:
        payload: dict[str, Any] = {"type": to_content_type(content_type) or "movie"}
        if meta_id.startswith("tmdb:"):
            payload["tmdb_id"] = meta_id.split(":", 1)[1]
        else:
            payload["imdb_id"] = meta_id
        return CanonicalItem.model_validate(payload)
