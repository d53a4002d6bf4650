"""Typed catalog identifiers.

Every catalog id the addon advertises is parsed exactly once into one of the
frozen dataclasses below. Downstream code dispatches on the class instead of
re-testing string prefixes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Union

from .user_config import UserConfig

DISCOVERY_CATALOG_ID = "random_mdblist_catalog"
SEARCH_MOVIES_CATALOG_ID = "aiolists_search_movies"
SEARCH_SERIES_CATALOG_ID = "aiolists_search_series"
MERGED_SEARCH_CATALOG_ID = "aiolists_merged_search"
MDBLIST_WATCHLIST_CATALOG_ID = "aiolists-watchlist-W"

TraktMedia = Literal["movies", "shows"]
TraktFeed = Literal["recommendations", "trending", "popular"]
TmdbListKind = Literal["watchlist", "favorites", "list"]
SearchKind = Literal["movies", "series", "merged"]

_MDBLIST_ID_RE = re.compile(r"^aiolists-(?P<list_id>.+)-(?P<kind>[LE])$")
_TRAKT_FEED_RE = re.compile(
    r"^trakt_(?P<feed>recommendations|trending|popular)_(?P<media>movies|shows)$"
)
_TRAKT_PUBLIC_RE = re.compile(r"^traktpublic_(?P<user>[^_]+)_(?P<slug>.+)$")
_TMDB_LIST_RE = re.compile(r"^tmdb_list_(?P<list_id>\d+)$")


@dataclass(frozen=True, slots=True)
class MDBListList:
    list_id: str
    kind: Literal["L", "E"] = "L"

    @property
    def catalog_id(self) -> str:
        return f"aiolists-{self.list_id}-{self.kind}"


@dataclass(frozen=True, slots=True)
class MDBListWatchlist:
    @property
    def catalog_id(self) -> str:
        return MDBLIST_WATCHLIST_CATALOG_ID


@dataclass(frozen=True, slots=True)
class MDBListUrlImport:
    """Public MDBList list imported by URL, keyed by its config entry."""

    key: str
    list_id: str
    username: str | None = None
    slug: str | None = None

    @property
    def catalog_id(self) -> str:
        return self.key


@dataclass(frozen=True, slots=True)
class TraktList:
    slug: str

    @property
    def catalog_id(self) -> str:
        return f"trakt_{self.slug}"


@dataclass(frozen=True, slots=True)
class TraktWatchlist:
    @property
    def catalog_id(self) -> str:
        return "trakt_watchlist"


@dataclass(frozen=True, slots=True)
class TraktFeedList:
    """Recommendations, trending or popular titles of one media kind."""

    feed: TraktFeed
    media: TraktMedia

    @property
    def catalog_id(self) -> str:
        return f"trakt_{self.feed}_{self.media}"

    @property
    def requires_auth(self) -> bool:
        return self.feed == "recommendations"


@dataclass(frozen=True, slots=True)
class TraktPublicList:
    username: str
    slug: str

    @property
    def catalog_id(self) -> str:
        return f"traktpublic_{self.username}_{self.slug}"


@dataclass(frozen=True, slots=True)
class TmdbList:
    kind: TmdbListKind
    list_id: str | None = None

    @property
    def catalog_id(self) -> str:
        if self.kind == "list":
            return f"tmdb_list_{self.list_id}"
        return f"tmdb_{self.kind}"


@dataclass(frozen=True, slots=True)
class DiscoveryCatalog:
    @property
    def catalog_id(self) -> str:
        return DISCOVERY_CATALOG_ID


@dataclass(frozen=True, slots=True)
class SearchCatalog:
    kind: SearchKind

    @property
    def catalog_id(self) -> str:
        if self.kind == "merged":
            return MERGED_SEARCH_CATALOG_ID
        return f"aiolists_search_{self.kind}"


CatalogRef = Union[
    MDBListList,
    MDBListWatchlist,
    MDBListUrlImport,
    TraktList,
    TraktWatchlist,
    TraktFeedList,
    TraktPublicList,
    TmdbList,
    DiscoveryCatalog,
    SearchCatalog,
]


def parse_catalog_id(raw: str, config: UserConfig | None = None) -> CatalogRef | None:
    """Classify ``raw`` into exactly one catalog kind, or ``None`` if unknown."""

    catalog_id = str(raw or "").strip()
    if not catalog_id:
        return None

    imported = config.imported_addons.get(catalog_id) if config else None
    if imported is not None and imported.is_url_import:
        if imported.is_trakt_public_list:
            match = _TRAKT_PUBLIC_RE.match(imported.id)
            username = imported.trakt_user or (match.group("user") if match else None)
            slug = imported.trakt_slug or (match.group("slug") if match else None)
            if username and slug:
                return TraktPublicList(username=username, slug=slug)
            return None
        return MDBListUrlImport(
            key=catalog_id,
            list_id=imported.mdblist_id or imported.id,
            username=imported.mdblist_username,
            slug=imported.mdblist_slug,
        )

    if catalog_id == DISCOVERY_CATALOG_ID:
        return DiscoveryCatalog()
    if catalog_id == SEARCH_MOVIES_CATALOG_ID:
        return SearchCatalog("movies")
    if catalog_id == SEARCH_SERIES_CATALOG_ID:
        return SearchCatalog("series")
    if catalog_id == MERGED_SEARCH_CATALOG_ID:
        return SearchCatalog("merged")

    if catalog_id == MDBLIST_WATCHLIST_CATALOG_ID:
        return MDBListWatchlist()
    match = _MDBLIST_ID_RE.match(catalog_id)
    if match:
        return MDBListList(list_id=match.group("list_id"), kind=match.group("kind"))  # type: ignore[arg-type]

    match = _TRAKT_PUBLIC_RE.match(catalog_id)
    if match:
        return TraktPublicList(username=match.group("user"), slug=match.group("slug"))
    if catalog_id == "trakt_watchlist":
        return TraktWatchlist()
    match = _TRAKT_FEED_RE.match(catalog_id)
    if match:
        return TraktFeedList(feed=match.group("feed"), media=match.group("media"))  # type: ignore[arg-type]
    if catalog_id.startswith("trakt_") and len(catalog_id) > len("trakt_"):
        return TraktList(slug=catalog_id[len("trakt_") :])

    if catalog_id == "tmdb_watchlist":
        return TmdbList("watchlist")
    if catalog_id == "tmdb_favorites":
        return TmdbList("favorites")
    match = _TMDB_LIST_RE.match(catalog_id)
    if match:
        return TmdbList("list", match.group("list_id"))

    return None


def sort_lookup_id(ref: CatalogRef) -> str:
    """Return the list id that keys ``sortPreferences`` for ``ref``.

    MDBList catalogs are keyed by the bare list id so preferences survive a
    change of the catalog id prefix or kind suffix.
    """

    if isinstance(ref, MDBListList):
        return ref.list_id
    if isinstance(ref, MDBListWatchlist):
        return "watchlist"
    if isinstance(ref, MDBListUrlImport):
        return ref.list_id
    return ref.catalog_id


def is_watchlist(catalog_id: str) -> bool:
    if not catalog_id:
        return False
    return (
        catalog_id.endswith("watchlist")
        or catalog_id.endswith("watchlist-W")
        or "trakt_watchlist" in catalog_id
    )
