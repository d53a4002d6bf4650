"""Metadata enrichment for catalog items."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ..config import PrimaryFailurePolicy, Settings
from ..models import CanonicalItem
from ..user_config import UserConfig
from ..utils import gather_in_windows
from .fanart import FanartClient
from .metadata_addon import MetadataAddonClient
from .rpdb import RPDBClient
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

# Fields an item keeps from its list source regardless of what metadata says.
_SOURCE_FIELDS = {"type", "listed_at", "rank"}


def merge_metadata(original: CanonicalItem, fetched: CanonicalItem) -> CanonicalItem:
    """Overlay the populated fields of ``fetched`` onto ``original``."""

    update: dict[str, Any] = {}
    for name in CanonicalItem.model_fields:
        if name in _SOURCE_FIELDS:
            continue
        value = getattr(fetched, name)
        if value is None or value == [] or value == "":
            continue
        update[name] = value
    if original.imdb_id:
        update["imdb_id"] = original.imdb_id
    return original.model_copy(update=update)


class EnrichmentService:
    """Resolve display metadata and artwork for a batch of items.

    Three stages run in order: one primary metadata source (TMDB or
    Cinemeta), the fanart.tv image cascade, then the rating-poster override.
    A failure inside a stage leaves the affected item with the values it had
    before that stage.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        tmdb: TMDBClient,
        cinemeta: MetadataAddonClient,
        fanart: FanartClient,
        rpdb: RPDBClient,
    ):
        self._settings = settings
        self._tmdb = tmdb
        self._cinemeta = cinemeta
        self._fanart = fanart
        self._rpdb = rpdb

    async def enrich(
        self, items: Sequence[CanonicalItem], config: UserConfig
    ) -> list[CanonicalItem]:
        if not items:
            return []
        if config.metadata_source == "none":
            return list(items)

        policy = config.primary_failure_policy(self._settings.on_primary_failure)
        if self.uses_tmdb(config):
            enriched = await self._enrich_with_tmdb(items, config, policy)
        else:
            enriched = await self._enrich_with_cinemeta(items)

        enriched = await self._apply_artwork(enriched, config)
        if config.rpdb_api_key:
            enriched = await self._apply_rating_posters(enriched, config)
        return enriched

    def uses_tmdb(self, config: UserConfig) -> bool:
        if config.metadata_source != "tmdb":
            return False
        return config.has_tmdb_session() or bool(self._tmdb.resolve_token(config.tmdb_bearer_token))

    # ------------------------------------------------------------------
    # Primary metadata
    # ------------------------------------------------------------------
    async def _enrich_with_tmdb(
        self,
        items: Sequence[CanonicalItem],
        config: UserConfig,
        policy: PrimaryFailurePolicy,
    ) -> list[CanonicalItem]:
        token = config.tmdb_bearer_token
        language = config.tmdb_language
        lookups = await self._tmdb.batch_find_by_imdb(
            [item.imdb_id for item in items if item.imdb_id and item.tmdb_id is None], token
        )

        async def fetch(item: CanonicalItem) -> CanonicalItem | None:
            tmdb_id = item.tmdb_id
            if tmdb_id is None and item.imdb_id:
                found = lookups.get(item.imdb_id)
                if found is None or found[1] != item.type:
                    return None
                tmdb_id = found[0]
            if tmdb_id is None:
                return None
            return await self._tmdb.fetch_metadata(
                tmdb_id, item.type, language=language, token=token
            )

        results = await gather_in_windows(
            list(items), fetch, window=self._settings.tmdb_concurrency
        )
        enriched: list[CanonicalItem] = []
        failed: list[int] = []
        for index, (item, result) in enumerate(zip(items, results)):
            if isinstance(result, CanonicalItem):
                enriched.append(merge_metadata(item, result))
                continue
            if isinstance(result, BaseException):
                logger.warning("TMDB metadata for %s raised %s", item.primary_id, result)
            enriched.append(item)
            failed.append(index)

        if failed and policy == "fallback":
            logger.info("Falling back to Cinemeta for %d item(s)", len(failed))
            fallback = await self._enrich_with_cinemeta([enriched[index] for index in failed])
            for index, item in zip(failed, fallback):
                enriched[index] = item
        return enriched

    async def _enrich_with_cinemeta(
        self, items: Sequence[CanonicalItem]
    ) -> list[CanonicalItem]:
        found = await self._cinemeta.fetch_many(items)
        return [
            merge_metadata(item, found[item.primary_id]) if item.primary_id in found else item
            for item in items
        ]

    # ------------------------------------------------------------------
    # Artwork
    # ------------------------------------------------------------------
    async def _apply_artwork(
        self, items: list[CanonicalItem], config: UserConfig
    ) -> list[CanonicalItem]:
        if not self._fanart.enabled:
            return items

        async def apply(item: CanonicalItem) -> CanonicalItem:
            images = await self._fanart.images_for(
                item, language=config.tmdb_language, tmdb_token=config.tmdb_bearer_token
            )
            if not images:
                return item
            return item.model_copy(
                update={
                    "logo": images.logo or item.logo,
                    "background": item.background or images.background,
                    "poster": images.poster or item.poster,
                }
            )

        results = await gather_in_windows(
            items, apply, window=self._settings.metadata_batch_size
        )
        return [
            result if isinstance(result, CanonicalItem) else original
            for original, result in zip(items, results)
        ]

    async def _apply_rating_posters(
        self, items: list[CanonicalItem], config: UserConfig
    ) -> list[CanonicalItem]:
        imdb_ids = [item.imdb_id for item in items if item.imdb_id]
        if not imdb_ids or not config.rpdb_api_key:
            return items
        posters = await self._rpdb.batch_fetch_posters(
            imdb_ids, config.rpdb_api_key, config.tmdb_language
        )
        return [
            item.model_copy(update={"poster": posters[item.imdb_id]})
            if item.imdb_id in posters
            else item
            for item in items
        ]
