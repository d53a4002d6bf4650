"""Client for MDBList user lists, watchlists and public list snapshots."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import MalformedResponse, ProviderAuthError, ProviderError
from ..models import CanonicalItem, ContentType, ListContent
from ..user_config import ImportedList
from .http import ProviderHttp
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

PUBLIC_USER_AGENT = "AIOLists-Stremio-Addon/1.0"
MDBLIST_URL_RE = re.compile(r"^https?://mdblist\.com/lists/([\w-]+)/([\w-]+)/?$")

PageFetcher = Callable[[int, int], Awaitable[list[CanonicalItem]]]


@dataclass(slots=True)
class MDBListSummary:
    """One list as reported by the list-discovery endpoints."""

    id: str
    name: str
    kind: str
    slug: str | None = None
    movies: int | None = None
    shows: int | None = None
    items: int | None = None
    public: bool = True


def matches_genre(item: CanonicalItem, genre: str) -> bool:
    """Case-insensitive genre test; items without genre data never match."""

    wanted = genre.strip().lower()
    return any(entry.lower() == wanted for entry in item.genres)


def _media_type(entry: dict[str, Any]) -> ContentType:
    for key in ("mediatype", "type", "media_type"):
        if entry.get(key) in {"show", "series"}:
            return "series"
    return "movie"


class MDBListClient:
    """Fetches MDBList content and normalizes it into canonical items."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        public_client: httpx.AsyncClient | None = None,
        *,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings
        policy = policy or RetryPolicy.from_settings(settings)
        self._api = ProviderHttp(http_client, "mdblist", policy, sleep=sleep)
        self._public = ProviderHttp(
            public_client or http_client, "mdblist-public", policy, sleep=sleep
        )

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------
    @staticmethod
    def normalize(raw: Any, content_type: ContentType | None = None) -> CanonicalItem | None:
        """Turn one MDBList entry into a canonical item; ``None`` without an IMDb id."""

        if not isinstance(raw, dict):
            return None
        imdb_id = raw.get("imdb_id") or raw.get("imdbid")
        if not imdb_id:
            return None
        payload = {
            "type": content_type or _media_type(raw),
            "imdb_id": imdb_id,
            "tvdb_id": raw.get("tvdb_id") or raw.get("tvdbid"),
            "title": raw.get("title") or raw.get("name"),
            "year": raw.get("release_year") or raw.get("year"),
            "genres": raw.get("genre") or raw.get("genres"),
            "rank": raw.get("rank"),
        }
        try:
            return CanonicalItem.model_validate(payload)
        except ValidationError:
            return None

    def parse_items(self, data: Any) -> list[CanonicalItem]:
        """Parse either the ``{movies, shows}`` shape or a unified array."""

        if isinstance(data, dict):
            if data.get("error"):
                logger.warning("MDBList returned an error payload: %s", data.get("error"))
                return []
            movies = data.get("movies")
            shows = data.get("shows")
            items: list[CanonicalItem | None] = []
            if isinstance(movies, list):
                items.extend(self.normalize(entry, "movie") for entry in movies)
            if isinstance(shows, list):
                items.extend(self.normalize(entry, "series") for entry in shows)
            if items:
                return [item for item in items if item is not None]
            entries = data.get("items") or data.get("results") or []
        elif isinstance(data, list):
            entries = data
        else:
            logger.warning("Unexpected MDBList response structure: %s", type(data).__name__)
            return []
        if not isinstance(entries, list):
            return []
        parsed = (self.normalize(entry) for entry in entries)
        return [item for item in parsed if item is not None]

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    async def fetch_list_items(
        self,
        list_id: str,
        api_key: str,
        *,
        kind: str = "L",
        skip: int = 0,
        sort: str = "default",
        order: str = "desc",
        genre: str | None = None,
        unified: bool = False,
        username: str | None = None,
        public_ref: tuple[str, str] | None = None,
    ) -> ListContent | None:
        """Fetch one page of a list through the authenticated API.

        ``kind`` selects the internal (``L``), external (``E``) or unified
        watchlist (``W``) endpoint. ``username`` addresses another user's list.
        A 401/403 answer is retried through the public snapshot when
        ``public_ref`` (owner, slug) is known.
        """

        is_watchlist = username is None and (kind == "W" or list_id in {"watchlist", "watchlist-W"})
        if username:
            path = f"/lists/{username}/{list_id}/items"
        elif is_watchlist:
            path = "/watchlist/items"
        elif kind == "E":
            path = f"/external/lists/{list_id}/items"
        else:
            path = f"/lists/{list_id}/items"

        async def fetch_page(offset: int, limit: int) -> list[CanonicalItem]:
            params: dict[str, Any] = {
                "apikey": api_key,
                "sort": sort,
                "order": order,
                "limit": limit,
                "offset": offset,
            }
            if is_watchlist or (unified and not username):
                params["unified"] = "true"
            if genre:
                params["append_to_response"] = "genre"
            data = await self._api.get_json(path, params=params)
            return self.parse_items(data)

        try:
            return await self._paginate(fetch_page, skip=skip, genre=genre)
        except ProviderAuthError:
            if public_ref is None:
                logger.warning("MDBList rejected the API key for list %s", list_id)
                return None
            owner, slug = public_ref
            logger.info("MDBList denied list %s, falling back to the public snapshot", list_id)
            return await self.fetch_public_list_items(
                owner,
                slug,
                skip=skip,
                sort=sort,
                order=order,
                genre=genre,
                unified=unified,
            )
        except MalformedResponse as exc:
            logger.warning("Discarding malformed MDBList page for %s: %s", list_id, exc)
            return ListContent()
        except ProviderError as exc:
            logger.warning("Failed to fetch MDBList list %s: %s", list_id, exc)
            return None

    async def fetch_public_list_items(
        self,
        username: str,
        slug: str,
        *,
        skip: int = 0,
        sort: str = "rank",
        order: str = "asc",
        genre: str | None = None,
        unified: bool = False,
    ) -> ListContent | None:
        """Read the public JSON snapshot of ``username``/``slug``; no key required."""

        path = f"/lists/{username}/{slug}/json/"

        async def fetch_page(offset: int, limit: int) -> list[CanonicalItem]:
            params: dict[str, Any] = {"limit": limit}
            if offset > 0:
                params["offset"] = offset
            if sort and sort != "default":
                params["sort"] = sort
            if order in {"asc", "desc"}:
                params["order"] = order
            if unified:
                params["unified"] = "true"
            params["append_to_response"] = "ratings,genre" if genre else "ratings"
            data = await self._public.get_json(
                path, params=params, headers={"User-Agent": PUBLIC_USER_AGENT}
            )
            if not isinstance(data, list):
                logger.warning("Public MDBList snapshot %s/%s is not a list", username, slug)
                return []
            parsed = (self.normalize(entry) for entry in data)
            return [item for item in parsed if item is not None]

        try:
            return await self._paginate(fetch_page, skip=skip, genre=genre)
        except MalformedResponse as exc:
            logger.warning("Discarding malformed snapshot %s/%s: %s", username, slug, exc)
            return ListContent()
        except ProviderError as exc:
            logger.warning("Failed to fetch public MDBList %s/%s: %s", username, slug, exc)
            return None

    async def _paginate(
        self, fetch_page: PageFetcher, *, skip: int, genre: str | None
    ) -> ListContent:
        limit = self._settings.items_per_page
        if not genre:
            return ListContent.from_items(await fetch_page(max(skip, 0), limit))

        # The API has no genre filter: walk pages until the window is filled.
        matches: list[CanonicalItem] = []
        offset = 0
        for attempt in range(self._settings.genre_filter_max_pages):
            try:
                page = await fetch_page(offset, limit)
            except ProviderError as exc:
                if attempt == 0:
                    raise
                logger.info("Stopping genre scan after page %s: %s", attempt, exc)
                break
            matches.extend(item for item in page if matches_genre(item, genre))
            if len(page) < limit or len(matches) >= skip + limit:
                break
            offset += limit
        return ListContent.from_items(matches[skip : skip + limit])

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------
    async def fetch_all_lists(self, api_key: str) -> list[MDBListSummary]:
        """Return the user's own (L) and external (E) lists plus the watchlist."""

        lists: list[MDBListSummary] = []
        for path, kind in (("/lists/user", "L"), ("/external/lists/user", "E")):
            lists.extend(await self._fetch_summaries(path, kind, api_key))
        lists.append(MDBListSummary(id="watchlist", name="My Watchlist", kind="W"))
        return lists

    async def fetch_lists_for_user(self, api_key: str, username: str) -> list[MDBListSummary]:
        """Return another user's public, non-empty lists."""

        lists: list[MDBListSummary] = []
        for path, kind in (
            (f"/lists/user/{username}", "L"),
            (f"/external/lists/user/{username}", "E"),
        ):
            lists.extend(await self._fetch_summaries(path, kind, api_key))
        return [entry for entry in lists if entry.public and (entry.items or 0) > 0]

    async def _fetch_summaries(
        self, path: str, kind: str, api_key: str
    ) -> list[MDBListSummary]:
        try:
            data = await self._api.get_json(path, params={"apikey": api_key})
        except ProviderError as exc:
            logger.warning("Failed to list MDBList lists from %s: %s", path, exc)
            return []
        if not isinstance(data, list):
            return []
        summaries: list[MDBListSummary] = []
        for entry in data:
            if not isinstance(entry, dict) or entry.get("id") is None:
                continue
            summaries.append(
                MDBListSummary(
                    id=str(entry["id"]),
                    name=str(entry.get("name") or entry["id"]),
                    kind=kind,
                    slug=entry.get("slug"),
                    movies=_optional_int(entry.get("movies")),
                    shows=_optional_int(entry.get("shows")),
                    items=_optional_int(entry.get("items")),
                    public=entry.get("private") is False or entry.get("public") is True,
                )
            )
        return summaries

    # ------------------------------------------------------------------
    # URL import
    # ------------------------------------------------------------------
    async def import_list_from_url(self, url: str, api_key: str | None = None) -> ImportedList:
        """Describe the list behind an ``mdblist.com/lists/<user>/<slug>`` URL."""

        match = MDBLIST_URL_RE.match((url or "").strip())
        if not match:
            raise ValueError(
                "Invalid MDBList URL format. Expected: https://mdblist.com/lists/username/list-slug"
            )
        username, slug = match.groups()
        if api_key:
            try:
                data = await self._api.get_json(
                    f"/lists/{username}/{slug}", params={"apikey": api_key}
                )
            except ProviderAuthError:
                logger.info("MDBList key rejected for %s/%s, probing public snapshot", username, slug)
            else:
                if isinstance(data, list) and data and isinstance(data[0], dict):
                    details = data[0]
                    list_id = str(details.get("id") or slug)
                    return ImportedList(
                        id=f"mdblisturl_{username}_{slug}",
                        name=str(details.get("name") or _humanize_slug(slug)),
                        is_mdblist_url_import=True,
                        mdblist_id=list_id,
                        mdblist_username=username,
                        mdblist_slug=slug,
                        has_movies=(_optional_int(details.get("movies")) or 0) > 0,
                        has_shows=(_optional_int(details.get("shows")) or 0) > 0,
                    )
                raise ProviderError("mdblist", f"list {username}/{slug} not found")
        return await self._probe_public_list(username, slug)

    async def _probe_public_list(self, username: str, slug: str) -> ImportedList:
        data = await self._public.get_json(
            f"/lists/{username}/{slug}/json/",
            params={"limit": 1},
            headers={"User-Agent": PUBLIC_USER_AGENT},
        )
        if not isinstance(data, list):
            raise ProviderError("mdblist-public", "public snapshot returned an invalid format")
        has_movies = any(_media_type(entry) == "movie" for entry in data if isinstance(entry, dict))
        has_shows = any(_media_type(entry) == "series" for entry in data if isinstance(entry, dict))
        if not (has_movies or has_shows):
            has_movies = has_shows = True
        return ImportedList(
            id=f"mdblisturl_{username}_{slug}",
            name=_humanize_slug(slug),
            is_mdblist_url_import=True,
            mdblist_id=slug,
            mdblist_username=username,
            mdblist_slug=slug,
            has_movies=has_movies,
            has_shows=has_shows,
        )


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _humanize_slug(slug: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in slug.split("-") if word)
