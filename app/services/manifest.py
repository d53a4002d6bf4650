"""Assembly of the addon manifest from the user's lists."""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Iterable, Sequence

from ..catalog_ids import (
    DISCOVERY_CATALOG_ID,
    MERGED_SEARCH_CATALOG_ID,
    SEARCH_MOVIES_CATALOG_ID,
    SEARCH_SERIES_CATALOG_ID,
)
from ..config import Settings
from ..models import CatalogDescriptor, CatalogExtra, ListSource
from ..user_config import UserConfig
from .cache import MISSING, CacheService
from .lists import ListDiscovery
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

MANIFEST_ID = "org.stremio.aiolists"
MANIFEST_VERSION = "1.2.7"
MANIFEST_DESCRIPTION = "Manage all your lists in one place."
MANIFEST_LOGO = "https://i.imgur.com/DigFuAQ.png"
BASE_TYPES = ("movie", "series", "all")

STATIC_GENRES = [
    "All",
    "Action",
    "Adventure",
    "Animation",
    "Comedy",
    "Crime",
    "Documentary",
    "Drama",
    "Family",
    "Fantasy",
    "History",
    "Horror",
    "Music",
    "Mystery",
    "Romance",
    "Science Fiction",
    "Thriller",
    "War",
    "Western",
]

SEARCH_SOURCES_WITHOUT_TOKEN = {"cinemeta", "trakt"}


def manifest_cache_key(config: UserConfig) -> str:
    """Serialize the configuration fields that shape the catalog list.

    Credentials only contribute whether they are present.
    """

    shape = {
        "apiKey": bool(config.api_key),
        "traktAccessToken": bool(config.trakt_access_token),
        "tmdbSessionId": bool(config.tmdb_session_id),
        "listOrder": config.list_order,
        "hiddenLists": config.hidden_lists,
        "removedLists": config.removed_lists,
        "customListNames": config.custom_list_names,
        "customMediaTypeNames": config.custom_media_type_names,
        "mergedLists": config.merged_lists,
        "importedAddons": list(config.imported_addons),
        "enableRandomListFeature": config.enable_random_list_feature,
        "randomMDBListUsernames": bool(config.random_mdblist_usernames),
        "disableGenreFilter": config.disable_genre_filter,
        "metadataSource": config.metadata_source,
        "tmdbLanguage": config.tmdb_language,
        "tmdbBearerToken": bool(config.tmdb_bearer_token),
        "searchSources": config.search_sources,
        "mergedSearchSources": config.merged_search_sources,
    }
    return json.dumps(shape, sort_keys=True, separators=(",", ":"))


def catalogs_for_source(
    source: ListSource,
    config: UserConfig,
    extra: Sequence[CatalogExtra],
) -> list[CatalogDescriptor]:
    """Expand one list into zero, one or two manifest catalogs."""

    catalog_id = source.catalog_id
    if catalog_id in config.hidden_lists or catalog_id in config.removed_lists:
        return []
    name = config.custom_list_names.get(catalog_id) or source.name or catalog_id
    custom_type = config.custom_media_type_names.get(catalog_id)
    if not (source.has_movies or source.has_shows or custom_type):
        return []

    def descriptor(catalog_type: str) -> CatalogDescriptor:
        return CatalogDescriptor(id=catalog_id, type=catalog_type, name=name, extra=list(extra))

    if source.has_movies and source.has_shows:
        if config.is_merged(catalog_id):
            return [descriptor(custom_type or "all")]
        return [descriptor("movie"), descriptor("series")]
    if custom_type:
        return [descriptor(custom_type)]
    return [descriptor("movie" if source.has_movies else "series")]


def apply_list_order(
    catalogs: Iterable[CatalogDescriptor], list_order: Sequence[str]
) -> list[CatalogDescriptor]:
    """Move catalogs named in ``list_order`` to the front, in that order."""

    positions = {str(catalog_id): index for index, catalog_id in enumerate(list_order)}
    ordered = list(catalogs)
    if not positions:
        return ordered
    return sorted(
        ordered,
        key=lambda catalog: (0, positions[catalog.id]) if catalog.id in positions else (1, 0),
    )


class ManifestBuilder:
    """Build (and briefly cache) the manifest for one user configuration."""

    def __init__(
        self,
        settings: Settings,
        *,
        discovery: ListDiscovery,
        tmdb: TMDBClient,
        cache: CacheService | None = None,
    ):
        self._settings = settings
        self._discovery = discovery
        self._tmdb = tmdb
        self._cache = cache or CacheService(
            default_ttl=settings.manifest_cache_ttl,
            maxsize=settings.manifest_cache_size,
        )

    async def build(self, config: UserConfig) -> dict[str, Any]:
        key = manifest_cache_key(config)
        if self._settings.enable_manifest_cache:
            cached = self._cache.lookup(key)
            if cached is not MISSING and cached is not None:
                return copy.deepcopy(cached)

        manifest = await self._assemble(config)
        if self._settings.enable_manifest_cache:
            self._cache.set(key, manifest)
        return copy.deepcopy(manifest)

    async def _assemble(self, config: UserConfig) -> dict[str, Any]:
        extra = [CatalogExtra(name="skip")]
        if not config.disable_genre_filter:
            genres = await self._genres(config)
            extra.append(CatalogExtra(name="genre", options=genres, is_required=False))

        catalogs: list[CatalogDescriptor] = []
        sources = await self._discovery.discover(config)
        for source in sources:
            catalogs.extend(catalogs_for_source(source, config, extra))
        catalogs = apply_list_order(catalogs, config.list_order)

        discovery_catalog = self._discovery_catalog(config, extra)
        if discovery_catalog is not None:
            catalogs.append(discovery_catalog)
        catalogs.extend(self._search_catalogs(config))

        logger.info("Built manifest with %d catalogs from %d lists", len(catalogs), len(sources))
        return {
            "id": MANIFEST_ID,
            "version": MANIFEST_VERSION,
            "name": self._settings.app_name,
            "description": MANIFEST_DESCRIPTION,
            "resources": ["catalog", "meta"],
            "types": self._types(config),
            "idPrefixes": ["tt", "tmdb:"],
            "catalogs": [catalog.to_manifest_entry() for catalog in catalogs],
            "logo": MANIFEST_LOGO,
            "behaviorHints": {"configurable": True, "configurationRequired": False},
        }

    def has_search_token(self, config: UserConfig) -> bool:
        return bool(self._tmdb.resolve_token(config.tmdb_bearer_token))

    def _types(self, config: UserConfig) -> list[str]:
        types = list(BASE_TYPES)
        if "tmdb" in config.merged_search_sources and self.has_search_token(config):
            types.append("search")
        for custom_type in config.custom_media_type_names.values():
            if custom_type and custom_type not in types:
                types.append(custom_type)
        return types

    async def _genres(self, config: UserConfig) -> list[str]:
        wants_translated = config.metadata_source == "tmdb" or config.tmdb_language != "en-US"
        if wants_translated and self.has_search_token(config):
            genres = await self._tmdb.fetch_genres(
                config.tmdb_language, config.tmdb_bearer_token
            )
            if genres:
                return genres
            logger.info("Falling back to static genres for %s", config.tmdb_language)
        return list(STATIC_GENRES)

    @staticmethod
    def _discovery_catalog(
        config: UserConfig, extra: Sequence[CatalogExtra]
    ) -> CatalogDescriptor | None:
        if not (config.enable_random_list_feature and config.random_mdblist_usernames):
            return None
        if DISCOVERY_CATALOG_ID in {*config.hidden_lists, *config.removed_lists}:
            return None
        custom_type = config.custom_media_type_names.get(DISCOVERY_CATALOG_ID)
        name = custom_type or config.custom_list_names.get(DISCOVERY_CATALOG_ID) or "Discovery"
        if not config.api_key:
            name = f"{name} (Public)"
        return CatalogDescriptor(
            id=DISCOVERY_CATALOG_ID,
            type=custom_type or "all",
            name=name,
            extra=list(extra),
        )

    def _search_catalogs(self, config: UserConfig) -> list[CatalogDescriptor]:
        search_extra = [CatalogExtra(name="search", is_required=True)]
        catalogs: list[CatalogDescriptor] = []
        sources = set(config.search_sources)
        if sources & SEARCH_SOURCES_WITHOUT_TOKEN or (
            "tmdb" in sources and self.has_search_token(config)
        ):
            catalogs.append(
                CatalogDescriptor(
                    id=SEARCH_MOVIES_CATALOG_ID,
                    type="movie",
                    name="Search Movies",
                    extra=search_extra,
                )
            )
            catalogs.append(
                CatalogDescriptor(
                    id=SEARCH_SERIES_CATALOG_ID,
                    type="series",
                    name="Search Series",
                    extra=search_extra,
                )
            )
        if "tmdb" in config.merged_search_sources and self.has_search_token(config):
            catalogs.append(
                CatalogDescriptor(
                    id=MERGED_SEARCH_CATALOG_ID,
                    type="search",
                    name="Merged Search",
                    extra=search_extra,
                )
            )
        return catalogs
