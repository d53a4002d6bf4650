"""Utilities for communicating with the Trakt API."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

import httpx
from pydantic import ValidationError

from ..catalog_ids import (
    TraktFeedList,
    TraktList,
    TraktPublicList,
    TraktWatchlist,
)
from ..config import Settings
from ..errors import MalformedResponse, ProviderAuthError, ProviderError
from ..models import CanonicalItem, ContentType, ListContent, ListSource, TypeHint
from ..user_config import ImportedList, UserConfig
from ..utils import gather_in_windows
from .http import ProviderHttp
from .retry import RetryPolicy
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

TRAKT_LIST_URL_RE = re.compile(r"^https?://trakt\.tv/users/([\w-]+)/lists/([\w-]+)/?$")
PUBLIC_SORT_FIELDS = {
    "rank",
    "added",
    "title",
    "released",
    "runtime",
    "popularity",
    "votes",
    "random",
}
PUBLIC_SAMPLE_SIZE = 10

SPECIAL_LISTS: tuple[tuple[TraktFeedList, str, bool, bool], ...] = (
    (TraktFeedList("recommendations", "movies"), "Recommended Movies", True, False),
    (TraktFeedList("recommendations", "shows"), "Recommended Shows", False, True),
    (TraktFeedList("trending", "movies"), "Trending Movies", True, False),
    (TraktFeedList("trending", "shows"), "Trending Shows", False, True),
    (TraktFeedList("popular", "movies"), "Popular Movies", True, False),
    (TraktFeedList("popular", "shows"), "Popular Shows", False, True),
)


@dataclass(slots=True)
class TraktTokens:
    access_token: str
    refresh_token: str | None
    expires_at: float


def _expires_at_seconds(value: float) -> float:
    # Tokens written by the configuration page store milliseconds.
    return value / 1000 if value > 10**11 else value


def _media_segment(content_type: ContentType) -> str:
    return "movies" if content_type == "movie" else "shows"


class TraktClient:
    """Thin wrapper around the Trakt HTTP API."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        tmdb: TMDBClient | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._http = ProviderHttp(
            http_client, "trakt", policy or RetryPolicy.from_settings(settings), sleep=sleep
        )
        self._tmdb = tmdb
        self._clock = clock
        self._refreshes: dict[str, asyncio.Task[TraktTokens]] = {}

    def _headers(self, *, access_token: str | None = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "trakt-api-version": "2",
            "User-Agent": f"{self._settings.app_name} (aiolists)",
        }
        if self._settings.trakt_client_id:
            headers["trakt-api-key"] = self._settings.trakt_client_id
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------
    async def ensure_access_token(self, config: UserConfig) -> str | None:
        """Return a usable access token, refreshing an expired one first.

        Concurrent callers holding the same refresh token share one refresh
        request. A refresh rejected with 401 clears the tokens on ``config``.
        """

        if not config.trakt_access_token:
            return None
        if config.trakt_expires_at is None:
            return config.trakt_access_token
        if self._clock() < _expires_at_seconds(config.trakt_expires_at):
            return config.trakt_access_token
        refresh_token = config.trakt_refresh_token
        if not refresh_token:
            logger.info("Trakt access token expired and no refresh token is available")
            return None

        task = self._refreshes.get(refresh_token)
        if task is None:
            task = asyncio.ensure_future(self._refresh(refresh_token))
            self._refreshes[refresh_token] = task
            task.add_done_callback(lambda _: self._refreshes.pop(refresh_token, None))
        try:
            tokens = await task
        except ProviderAuthError:
            logger.warning("Trakt refresh token was rejected; clearing stored tokens")
            config.trakt_access_token = None
            config.trakt_refresh_token = None
            config.trakt_expires_at = None
            return None
        except ProviderError as exc:
            logger.warning("Failed to refresh Trakt token: %s", exc)
            return None
        config.trakt_access_token = tokens.access_token
        config.trakt_refresh_token = tokens.refresh_token
        config.trakt_expires_at = tokens.expires_at
        return tokens.access_token

    async def _refresh(self, refresh_token: str) -> TraktTokens:
        payload = {
            "refresh_token": refresh_token,
            "client_id": self._settings.trakt_client_id,
            "client_secret": self._settings.trakt_client_secret,
            "redirect_uri": self._settings.trakt_redirect_uri,
            "grant_type": "refresh_token",
        }
        data = await self._http.post_json("/oauth/token", json=payload, headers=self._headers())
        if not isinstance(data, dict) or not data.get("access_token"):
            raise MalformedResponse("trakt", "token response without access_token")
        expires_in = float(data.get("expires_in") or 0)
        return TraktTokens(
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_at=self._clock() + expires_in,
        )

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------
    @staticmethod
    def _unwrap(
        entry: Any, media_hint: ContentType | None
    ) -> tuple[ContentType, dict[str, Any]] | None:
        if not isinstance(entry, dict):
            return None
        kind = entry.get("type")
        if kind == "movie" and isinstance(entry.get("movie"), dict):
            return "movie", entry["movie"]
        if kind in {"show", "episode", "season"} and isinstance(entry.get("show"), dict):
            return "series", entry["show"]
        if media_hint is not None:
            key = "movie" if media_hint == "movie" else "show"
            nested = entry.get(key)
            if isinstance(nested, dict) and nested.get("ids"):
                return media_hint, nested
            if isinstance(entry.get("ids"), dict) and entry.get("title"):
                return media_hint, entry
        return None

    @staticmethod
    def normalize(
        entry: Any, media_hint: ContentType | None = None
    ) -> CanonicalItem | None:
        """Map one Trakt entry onto a canonical item (no IMDb lookup)."""

        unwrapped = TraktClient._unwrap(entry, media_hint)
        if unwrapped is None:
            return None
        content_type, media = unwrapped
        ids = media.get("ids") or {}
        payload = {
            "type": content_type,
            "imdb_id": ids.get("imdb"),
            "tmdb_id": ids.get("tmdb"),
            "tvdb_id": ids.get("tvdb"),
            "trakt_id": ids.get("trakt"),
            "title": media.get("title"),
            "year": media.get("year"),
            "overview": media.get("overview"),
            "genres": [genre.replace("-", " ").title() for genre in media.get("genres") or [] if isinstance(genre, str)],
            "runtime": media.get("runtime"),
            "rating": media.get("rating"),
            "status": media.get("status"),
            "original_language": media.get("language"),
            "listed_at": entry.get("listed_at") if isinstance(entry, dict) else None,
            "rank": entry.get("rank") if isinstance(entry, dict) else None,
        }
        try:
            return CanonicalItem.model_validate(payload)
        except ValidationError:
            return None

    async def _resolve_items(
        self,
        entries: Sequence[Any],
        *,
        media_hint: ContentType | None,
        type_hint: TypeHint,
        tmdb_token: str | None,
    ) -> list[CanonicalItem]:
        normalized = [self.normalize(entry, media_hint) for entry in entries]
        items = [
            item
            for item in normalized
            if item is not None and (type_hint == "all" or item.type == type_hint)
        ]

        async def attach_imdb(item: CanonicalItem) -> CanonicalItem:
            if item.imdb_id or item.tmdb_id is None or self._tmdb is None:
                return item
            imdb_id = await self._tmdb.fetch_imdb_id(item.tmdb_id, item.type, tmdb_token)
            return item.model_copy(update={"imdb_id": imdb_id}) if imdb_id else item

        results = await gather_in_windows(
            items, attach_imdb, window=self._settings.tmdb_concurrency
        )
        return [
            result if isinstance(result, CanonicalItem) else original
            for original, result in zip(items, results)
        ]

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    async def fetch_list_items(
        self,
        ref: TraktList | TraktWatchlist | TraktFeedList | TraktPublicList,
        config: UserConfig,
        *,
        skip: int = 0,
        sort: str = "rank",
        order: str = "asc",
        genre: str | None = None,
        type_hint: TypeHint = "all",
    ) -> ListContent | None:
        """Fetch one page of any Trakt list kind.

        Trending and popular feeds and imported public lists need no user
        token; every other kind returns ``None`` without a valid one.
        """

        limit = self._settings.items_per_page
        params: dict[str, Any] = {
            "limit": limit,
            "page": max(skip, 0) // limit + 1,
            "extended": "full",
        }
        media_hint: ContentType | None = None
        access_token: str | None = None
        client_sort_added = False

        if isinstance(ref, TraktFeedList):
            media_hint = "movie" if ref.media == "movies" else "series"
            if type_hint != "all" and type_hint != media_hint:
                return ListContent()
            if ref.requires_auth:
                access_token = await self.ensure_access_token(config)
                if not access_token:
                    return None
                path = f"/recommendations/{ref.media}"
            else:
                path = f"/{ref.media}/{ref.feed}"
            if genre:
                params["genres"] = re.sub(r"\s+", "-", genre.strip().lower())
        elif isinstance(ref, TraktPublicList):
            path = f"/users/{ref.username}/lists/{ref.slug}/items"
            if type_hint != "all":
                path = f"{path}/{_media_segment(type_hint)}"
            if sort in PUBLIC_SORT_FIELDS:
                params["sort_by"] = sort
                params["sort_how"] = order
        elif isinstance(ref, TraktWatchlist):
            access_token = await self.ensure_access_token(config)
            if not access_token:
                return None
            segment = "all" if type_hint == "all" else _media_segment(type_hint)
            if sort == "added":
                client_sort_added = True
                path = f"/sync/watchlist/{segment}"
            else:
                path = f"/sync/watchlist/{segment}/{sort}/{order}"
        elif isinstance(ref, TraktList):
            access_token = await self.ensure_access_token(config)
            if not access_token:
                return None
            path = f"/users/me/lists/{ref.slug}/items"
            if type_hint != "all":
                path = f"{path}/{_media_segment(type_hint)}"
            params["sort_by"] = sort
            params["sort_how"] = order
        else:
            return None

        try:
            data = await self._http.get_json(
                path, params=params, headers=self._headers(access_token=access_token)
            )
        except MalformedResponse as exc:
            logger.warning("Discarding malformed Trakt page for %s: %s", ref.catalog_id, exc)
            return ListContent()
        except ProviderError as exc:
            logger.warning("Failed to fetch Trakt list %s: %s", ref.catalog_id, exc)
            return None
        if not isinstance(data, list):
            logger.warning("Unexpected Trakt response structure for %s", ref.catalog_id)
            return ListContent()

        items = await self._resolve_items(
            data,
            media_hint=media_hint,
            type_hint=type_hint,
            tmdb_token=config.tmdb_bearer_token,
        )
        if client_sort_added:
            items.sort(key=lambda item: item.listed_at or "", reverse=order != "asc")
        return ListContent.from_items(items)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------
    async def fetch_lists(self, config: UserConfig) -> list[ListSource]:
        """Return the user's lists plus the watchlist and the six feeds.

        Custom lists and the watchlist report no content flags; the caller
        probes them. Feeds carry a fixed content type.
        """

        access_token = await self.ensure_access_token(config)
        if not access_token:
            return []
        try:
            data = await self._http.get_json(
                "/users/me/lists", headers=self._headers(access_token=access_token)
            )
        except ProviderError as exc:
            logger.warning("Failed to fetch Trakt lists: %s", exc)
            return []
        sources: list[ListSource] = []
        for entry in data if isinstance(data, list) else []:
            slug = (entry.get("ids") or {}).get("slug") if isinstance(entry, dict) else None
            if not slug:
                continue
            ref = TraktList(slug=str(slug))
            sources.append(
                ListSource(
                    source="trakt",
                    catalog_id=ref.catalog_id,
                    raw_id=str(slug),
                    name=str(entry.get("name") or slug),
                    list_kind="list",
                )
            )
        watchlist = TraktWatchlist()
        sources.append(
            ListSource(
                source="trakt",
                catalog_id=watchlist.catalog_id,
                raw_id="watchlist",
                name="Trakt Watchlist",
                list_kind="watchlist",
            )
        )
        for ref, name, has_movies, has_shows in SPECIAL_LISTS:
            sources.append(
                ListSource(
                    source="trakt",
                    catalog_id=ref.catalog_id,
                    raw_id=ref.catalog_id,
                    name=name,
                    list_kind=ref.feed,
                    has_movies=has_movies,
                    has_shows=has_shows,
                )
            )
        return sources

    async def import_public_list(self, url: str) -> ImportedList:
        """Describe the public list behind a ``trakt.tv/users/<u>/lists/<slug>`` URL."""

        match = TRAKT_LIST_URL_RE.match((url or "").split("?", 1)[0].strip())
        if not match:
            raise ValueError("Invalid Trakt list URL format.")
        username, slug_or_id = match.groups()
        details = await self._http.get_json(
            f"/users/{username}/lists/{slug_or_id}", headers=self._headers()
        )
        if not isinstance(details, dict) or not isinstance(details.get("ids"), dict):
            raise MalformedResponse("trakt", "list details without ids")
        slug = str(details["ids"].get("slug") or slug_or_id)
        item_count = int(details.get("item_count") or 0)
        has_movies = has_shows = False
        if item_count > 0:
            sample = await self._http.get_json(
                f"/users/{username}/lists/{slug}/items",
                params={"limit": min(item_count, PUBLIC_SAMPLE_SIZE), "extended": "full"},
                headers=self._headers(),
            )
            for entry in sample if isinstance(sample, list) else []:
                if not isinstance(entry, dict):
                    continue
                if entry.get("type") == "movie" and entry.get("movie"):
                    has_movies = True
                if entry.get("type") == "show" and entry.get("show"):
                    has_shows = True
                if has_movies and has_shows:
                    break
        ref = TraktPublicList(username=username, slug=slug)
        return ImportedList(
            id=ref.catalog_id,
            name=str(details.get("name") or slug),
            is_trakt_public_list=True,
            trakt_user=username,
            trakt_slug=slug,
            has_movies=has_movies,
            has_shows=has_shows,
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    async def search(
        self, query: str, content_type: ContentType | None, *, limit: int = 50
    ) -> list[CanonicalItem]:
        if content_type is None:
            kinds = "movie,show"
        else:
            kinds = "movie" if content_type == "movie" else "show"
        try:
            data = await self._http.get_json(
                f"/search/{kinds}",
                params={"query": query, "extended": "full", "limit": limit},
                headers=self._headers(),
            )
        except ProviderError as exc:
            logger.warning("Trakt search for %r failed: %s", query, exc)
            return []
        if not isinstance(data, list):
            return []
        return await self._resolve_items(
            data, media_hint=None, type_hint=content_type or "all", tmdb_token=None
        )
