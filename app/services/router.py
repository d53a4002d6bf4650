"""Resolve catalog ids to list content from the matching provider."""

from __future__ import annotations

import logging
import random
from typing import Sequence

from ..catalog_ids import (
    CatalogRef,
    DiscoveryCatalog,
    MDBListList,
    MDBListUrlImport,
    MDBListWatchlist,
    SearchCatalog,
    TmdbList,
    TraktFeedList,
    TraktList,
    TraktPublicList,
    TraktWatchlist,
    parse_catalog_id,
    sort_lookup_id,
)
from ..models import ListContent, TypeHint
from ..user_config import UserConfig
from .mdblist import MDBListClient
from .tmdb import TMDBClient
from .trakt import TraktClient

logger = logging.getLogger(__name__)

# Used by the discovery catalog when no MDBList key is configured.
PUBLIC_DISCOVERY_LISTS: tuple[tuple[str, str], ...] = (
    ("garycrawfordgc", "latest-tv-shows"),
    ("linaspurinis", "top-watched-movies-of-the-week"),
    ("hdlists", "trending-movies"),
    ("hdlists", "trending-shows"),
    ("snoak", "latest-movies-digital-release"),
)

DEFAULT_SORTS: dict[str, tuple[str, str]] = {
    "mdblist": ("default", "desc"),
    "mdblist-public": ("rank", "asc"),
    "trakt": ("rank", "asc"),
    "tmdb": ("created_at", "desc"),
}


class ListRouter:
    """Dispatch a catalog id to the adapter that owns it.

    ``resolve`` returns ``None`` when the id is unknown or the credential the
    source needs is missing. An empty list is a valid result.
    """

    def __init__(
        self,
        *,
        mdblist: MDBListClient,
        trakt: TraktClient,
        tmdb: TMDBClient,
        rng: random.Random | None = None,
        public_lists: Sequence[tuple[str, str]] = PUBLIC_DISCOVERY_LISTS,
    ):
        self._mdblist = mdblist
        self._trakt = trakt
        self._tmdb = tmdb
        self._rng = rng or random.Random()
        self._public_lists = tuple(public_lists)
        self._public_cursor = 0

    async def resolve(
        self,
        catalog_id: str,
        config: UserConfig,
        *,
        skip: int = 0,
        genre: str | None = None,
        type_hint: TypeHint = "all",
    ) -> ListContent | None:
        ref = parse_catalog_id(catalog_id, config)
        if ref is None:
            logger.info("No source handles catalog %s", catalog_id)
            return None
        return await self.resolve_ref(
            ref, config, skip=max(skip, 0), genre=genre, type_hint=type_hint
        )

    async def resolve_ref(
        self,
        ref: CatalogRef,
        config: UserConfig,
        *,
        skip: int = 0,
        genre: str | None = None,
        type_hint: TypeHint = "all",
    ) -> ListContent | None:
        if isinstance(ref, SearchCatalog):
            return None
        if isinstance(ref, DiscoveryCatalog):
            return await self._resolve_discovery(config, skip=skip, genre=genre)
        if isinstance(ref, (MDBListList, MDBListWatchlist, MDBListUrlImport)):
            return await self._resolve_mdblist(ref, config, skip=skip, genre=genre)
        if isinstance(ref, (TraktList, TraktWatchlist, TraktFeedList, TraktPublicList)):
            if not isinstance(ref, TraktPublicList) and not config.has_trakt():
                public_feed = isinstance(ref, TraktFeedList) and not ref.requires_auth
                if not public_feed:
                    return None
            sort, order = self._sort_for(ref, config, "trakt")
            return await self._trakt.fetch_list_items(
                ref,
                config,
                skip=skip,
                sort=sort,
                order=order,
                genre=genre,
                type_hint=type_hint,
            )
        if isinstance(ref, TmdbList):
            if not config.has_tmdb_session():
                return None
            sort, order = self._sort_for(ref, config, "tmdb")
            return await self._tmdb.fetch_list_items(
                ref, config, skip=skip, sort=sort, order=order
            )
        return None

    def _sort_for(
        self, ref: CatalogRef, config: UserConfig, source: str
    ) -> tuple[str, str]:
        preference = config.sort_preference(sort_lookup_id(ref))
        default_sort, default_order = DEFAULT_SORTS[source]
        return preference.sort or default_sort, preference.order or default_order

    async def _resolve_mdblist(
        self,
        ref: MDBListList | MDBListWatchlist | MDBListUrlImport,
        config: UserConfig,
        *,
        skip: int,
        genre: str | None,
    ) -> ListContent | None:
        unified = config.is_merged(ref.catalog_id)
        if isinstance(ref, MDBListUrlImport):
            public_ref = (ref.username, ref.slug) if ref.username and ref.slug else None
            if not config.api_key:
                if public_ref is None:
                    return None
                sort, order = self._sort_for(ref, config, "mdblist-public")
                return await self._mdblist.fetch_public_list_items(
                    *public_ref, skip=skip, sort=sort, order=order, genre=genre, unified=unified
                )
            sort, order = self._sort_for(ref, config, "mdblist")
            return await self._mdblist.fetch_list_items(
                ref.list_id,
                config.api_key,
                kind=self._list_kind(ref.list_id, ref.catalog_id, config),
                skip=skip,
                sort=sort,
                order=order,
                genre=genre,
                unified=unified,
                public_ref=public_ref,
            )

        if not config.api_key:
            return None
        sort, order = self._sort_for(ref, config, "mdblist")
        if isinstance(ref, MDBListWatchlist):
            return await self._mdblist.fetch_list_items(
                "watchlist", config.api_key, kind="W", skip=skip, sort=sort, order=order, genre=genre
            )
        return await self._mdblist.fetch_list_items(
            ref.list_id,
            config.api_key,
            kind=ref.kind,
            skip=skip,
            sort=sort,
            order=order,
            genre=genre,
            unified=unified,
        )

    @staticmethod
    def _list_kind(list_id: str, catalog_id: str, config: UserConfig) -> str:
        for key in (catalog_id, list_id):
            metadata = config.lists_metadata.get(key)
            if metadata is not None and metadata.list_type in {"L", "E"}:
                return metadata.list_type
        return "L"

    async def _resolve_discovery(
        self, config: UserConfig, *, skip: int, genre: str | None
    ) -> ListContent | None:
        if not (config.enable_random_list_feature and config.random_mdblist_usernames):
            return None
        preference = config.sort_preference(DiscoveryCatalog().catalog_id)
        if config.api_key:
            username = self._rng.choice(config.random_mdblist_usernames)
            lists = await self._mdblist.fetch_lists_for_user(config.api_key, username)
            if not lists:
                logger.info("Discovery user %s has no public lists", username)
                return ListContent()
            chosen = self._rng.choice(lists)
            return await self._mdblist.fetch_list_items(
                chosen.slug or chosen.id,
                config.api_key,
                kind=chosen.kind,
                skip=skip,
                sort=preference.sort or "default",
                order=preference.order or "desc",
                genre=genre,
                username=username,
            )
        if not self._public_lists:
            return ListContent()
        username, slug = self._public_lists[self._public_cursor % len(self._public_lists)]
        self._public_cursor += 1
        return await self._mdblist.fetch_public_list_items(
            username,
            slug,
            skip=skip,
            sort=preference.sort or "rank",
            order=preference.order or "asc",
            genre=genre,
        )
