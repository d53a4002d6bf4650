"""Utilities for resolving lists and metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Sequence

import httpx
from pydantic import ValidationError

from ..catalog_ids import TmdbList
from ..config import Settings
from ..errors import MalformedResponse, ProviderError
from ..models import CanonicalItem, ContentType, ListContent, Video
from ..user_config import UserConfig
from ..utils import gather_in_windows, normalize_imdb_id, pick_localized
from .cache import MISSING, CacheService
from .http import ProviderHttp
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
ORIGINAL_BASE_URL = "https://image.tmdb.org/t/p/original"
STILL_BASE_URL = "https://image.tmdb.org/t/p/w500"
RUNNING_STATUSES = {"Returning Series", "In Production"}
WRITER_JOBS = {"Writer", "Screenplay", "Story"}


@dataclass(slots=True)
class TMDBListSummary:
    id: str
    name: str
    item_count: int | None = None


def infer_content_type(raw: dict[str, Any]) -> ContentType | None:
    """Infer movie vs series from the shape of a TMDB record.

    Movies carry ``title``/``release_date``; series carry ``name``/``first_air_date``.
    """

    if raw.get("title") is not None or "release_date" in raw:
        return "movie"
    if raw.get("name") is not None or "first_air_date" in raw:
        return "series"
    return None


def has_absolute_numbering(seasons: Sequence[dict[str, Any]]) -> bool:
    """Detect shows whose seasons continue the episode count of the previous one."""

    total = 0
    for season in seasons:
        episodes = season.get("episodes") or []
        if not episodes:
            continue
        first = episodes[0].get("episode_number") or 0
        number = season.get("season_number") or 0
        if (
            first > len(episodes) * 2
            or (number <= 5 and first >= 100)
            or (total > 0 and first > total)
        ):
            return True
        total += len(episodes)
    return False


def build_videos(seasons: Sequence[dict[str, Any]], base_id: str) -> list[Video]:
    """Flatten season listings into episodes, renumbering absolute numbering per season."""

    absolute = has_absolute_numbering(seasons)
    videos: list[Video] = []
    for season in seasons:
        season_number = int(season.get("season_number") or 0)
        for index, episode in enumerate(season.get("episodes") or []):
            original_number = int(episode.get("episode_number") or index + 1)
            number = index + 1 if absolute else original_number
            still = episode.get("still_path")
            air_date = episode.get("air_date")
            rating = episode.get("vote_average")
            videos.append(
                Video(
                    id=f"{base_id}:{season_number}:{number}",
                    title=episode.get("name") or f"Episode {number}",
                    season=season_number,
                    episode=number,
                    released=f"{air_date}T00:00:00.001Z" if air_date else None,
                    thumbnail=f"{STILL_BASE_URL}{still}" if still else None,
                    overview=episode.get("overview") or "",
                    rating=f"{float(rating):.1f}" if isinstance(rating, (int, float)) else "0",
                    absolute_number=original_number if absolute else None,
                )
            )
    videos.sort(key=lambda video: (video.season, video.episode))
    return videos


def format_series_year(
    first_air_date: str | None, last_air_date: str | None, status: str | None
) -> str | None:
    """``YYYY-`` while a show is running, ``YYYY-YYYY`` once it ended."""

    if not first_air_date:
        return None
    start = first_air_date.split("-")[0]
    if status in RUNNING_STATUSES or not last_air_date:
        return f"{start}-"
    end = last_air_date.split("-")[0]
    if end != start:
        return f"{start}-{end}"
    return start


class TMDBClient:
    """Client for TMDB account lists, id conversion and full metadata records."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        id_cache: CacheService | None = None,
        metadata_cache: CacheService | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings
        self._http = ProviderHttp(
            http_client, "tmdb", policy or RetryPolicy.from_settings(settings), sleep=sleep
        )
        self._id_cache = id_cache or CacheService(
            default_ttl=settings.id_cache_ttl,
            negative_ttl=settings.negative_cache_ttl,
            maxsize=settings.cache_max_entries,
        )
        self._metadata_cache = metadata_cache or CacheService(
            default_ttl=settings.metadata_cache_ttl,
            negative_ttl=settings.negative_cache_ttl,
            maxsize=settings.cache_max_entries,
        )

    def resolve_token(self, token: str | None = None) -> str | None:
        return token or self._settings.tmdb_bearer_token

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = {"accept": "application/json"}
        resolved = self.resolve_token(token)
        if resolved:
            headers["Authorization"] = f"Bearer {resolved}"
        return headers

    async def _get(self, path: str, token: str | None, **params: Any) -> Any:
        return await self._http.get_json(path, params=params, headers=self._headers(token))

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------
    @staticmethod
    def normalize(raw: Any) -> CanonicalItem | None:
        if not isinstance(raw, dict) or raw.get("id") is None:
            return None
        content_type = infer_content_type(raw)
        if content_type is None:
            return None
        is_movie = content_type == "movie"
        poster = raw.get("poster_path")
        backdrop = raw.get("backdrop_path")
        payload = {
            "type": content_type,
            "tmdb_id": raw.get("id"),
            "title": raw.get("title") if is_movie else raw.get("name"),
            "year": raw.get("release_date") if is_movie else raw.get("first_air_date"),
            "overview": raw.get("overview"),
            "poster": f"{POSTER_BASE_URL}{poster}" if poster else None,
            "background": f"{ORIGINAL_BASE_URL}{backdrop}" if backdrop else None,
            "rating": raw.get("vote_average"),
            "original_language": raw.get("original_language"),
        }
        try:
            return CanonicalItem.model_validate(payload)
        except ValidationError:
            return None

    async def fetch_lists(self, config: UserConfig) -> list[TMDBListSummary]:
        """Return the watchlist, favorites and the account's own lists."""

        if not (config.tmdb_session_id and config.tmdb_account_id):
            return []
        lists = [
            TMDBListSummary(id=TmdbList("watchlist").catalog_id, name="TMDB Watchlist"),
            TMDBListSummary(id=TmdbList("favorites").catalog_id, name="TMDB Favorites"),
        ]
        try:
            data = await self._get(
                f"/account/{config.tmdb_account_id}/lists",
                config.tmdb_bearer_token,
                session_id=config.tmdb_session_id,
                page=1,
            )
        except ProviderError as exc:
            logger.warning("Failed to fetch TMDB lists: %s", exc)
            return lists
        results = data.get("results") if isinstance(data, dict) else None
        for entry in results or []:
            if not isinstance(entry, dict) or entry.get("id") is None:
                continue
            lists.append(
                TMDBListSummary(
                    id=TmdbList("list", str(entry["id"])).catalog_id,
                    name=str(entry.get("name") or entry["id"]),
                    item_count=entry.get("item_count"),
                )
            )
        return lists

    async def fetch_list_items(
        self,
        ref: TmdbList,
        config: UserConfig,
        *,
        skip: int = 0,
        sort: str = "created_at",
        order: str = "desc",
    ) -> ListContent | None:
        if not (config.tmdb_session_id and config.tmdb_account_id):
            return None
        token = config.tmdb_bearer_token
        params: dict[str, Any] = {
            "session_id": config.tmdb_session_id,
            "page": max(skip, 0) // self._settings.items_per_page + 1,
            "language": config.tmdb_language,
        }
        try:
            if ref.kind == "list":
                data = await self._get(f"/list/{ref.list_id}", token, **params)
                raw_items = data.get("items") if isinstance(data, dict) else None
            else:
                segment = "watchlist" if ref.kind == "watchlist" else "favorite"
                params["sort_by"] = f"{sort}.{order}"
                base = f"/account/{config.tmdb_account_id}/{segment}"
                movies, shows = await asyncio.gather(
                    self._get(f"{base}/movies", token, **params),
                    self._get(f"{base}/tv", token, **params),
                    return_exceptions=True,
                )
                raw_items = []
                for page in (movies, shows):
                    if isinstance(page, ProviderError):
                        logger.warning("Partial TMDB %s result: %s", ref.kind, page)
                        continue
                    if isinstance(page, BaseException):
                        raise page
                    if isinstance(page, dict):
                        raw_items.extend(page.get("results") or [])
                if isinstance(movies, ProviderError) and isinstance(shows, ProviderError):
                    return None
        except MalformedResponse as exc:
            logger.warning("Discarding malformed TMDB list %s: %s", ref.catalog_id, exc)
            return ListContent()
        except ProviderError as exc:
            logger.warning("Failed to fetch TMDB list %s: %s", ref.catalog_id, exc)
            return None

        items = [item for item in map(self.normalize, raw_items or []) if item is not None]
        items = await self.attach_imdb_ids(items, token)
        return ListContent.from_items(items)

    async def attach_imdb_ids(
        self, items: Sequence[CanonicalItem], token: str | None
    ) -> list[CanonicalItem]:
        """Resolve IMDb ids for items that only carry a TMDB id, a window at a time."""

        async def resolve(item: CanonicalItem) -> CanonicalItem:
            if item.imdb_id or item.tmdb_id is None:
                return item
            ids = await self.fetch_external_ids(item.tmdb_id, item.type, token)
            update: dict[str, Any] = {}
            imdb_id = normalize_imdb_id(ids.get("imdb_id")) if ids else None
            if imdb_id:
                update["imdb_id"] = imdb_id
            if ids and ids.get("tvdb_id") and not item.tvdb_id:
                update["tvdb_id"] = ids["tvdb_id"]
            return item.model_copy(update=update) if update else item

        results = await gather_in_windows(
            list(items), resolve, window=self._settings.tmdb_concurrency
        )
        return [
            result if isinstance(result, CanonicalItem) else original
            for original, result in zip(items, results)
        ]

    # ------------------------------------------------------------------
    # Id conversion
    # ------------------------------------------------------------------
    async def fetch_external_ids(
        self, tmdb_id: int, content_type: ContentType, token: str | None = None
    ) -> dict[str, Any] | None:
        endpoint = "movie" if content_type == "movie" else "tv"
        key = f"external:{endpoint}:{tmdb_id}"

        async def load() -> dict[str, Any] | None:
            try:
                data = await self._get(f"/{endpoint}/{tmdb_id}/external_ids", token)
            except ProviderError as exc:
                logger.info("No external ids for TMDB %s %s: %s", endpoint, tmdb_id, exc)
                return None
            return data if isinstance(data, dict) else None

        return await self._id_cache.get_or_load(key, load)

    async def find_by_imdb(
        self, imdb_id: str, token: str | None = None
    ) -> tuple[int, ContentType] | None:
        """Resolve an IMDb id to ``(tmdb_id, type)`` through ``/find``."""

        if not normalize_imdb_id(imdb_id):
            return None
        key = f"find:{imdb_id}"

        async def load() -> tuple[int, ContentType] | None:
            try:
                data = await self._get(f"/find/{imdb_id}", token, external_source="imdb_id")
            except ProviderError as exc:
                logger.info("TMDB lookup failed for %s: %s", imdb_id, exc)
                return None
            if not isinstance(data, dict):
                return None
            movies = data.get("movie_results") or []
            shows = data.get("tv_results") or []
            if movies and isinstance(movies[0], dict) and movies[0].get("id"):
                return int(movies[0]["id"]), "movie"
            if shows and isinstance(shows[0], dict) and shows[0].get("id"):
                return int(shows[0]["id"]), "series"
            return None

        return await self._id_cache.get_or_load(key, load)

    async def batch_find_by_imdb(
        self, imdb_ids: Iterable[str], token: str | None = None
    ) -> dict[str, tuple[int, ContentType] | None]:
        unique = list(dict.fromkeys(imdb_ids))
        results = await gather_in_windows(
            unique,
            lambda imdb_id: self.find_by_imdb(imdb_id, token),
            window=self._settings.tmdb_concurrency,
        )
        return {
            imdb_id: result if not isinstance(result, BaseException) else None
            for imdb_id, result in zip(unique, results)
        }

    async def fetch_imdb_id(
        self, tmdb_id: int, content_type: ContentType, token: str | None = None
    ) -> str | None:
        ids = await self.fetch_external_ids(tmdb_id, content_type, token)
        return normalize_imdb_id(ids.get("imdb_id")) if ids else None

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    async def fetch_metadata(
        self,
        tmdb_id: int,
        content_type: ContentType,
        *,
        language: str = "en-US",
        token: str | None = None,
    ) -> CanonicalItem | None:
        """Return a fully populated item for ``tmdb_id`` (cached per language)."""

        key = f"meta:{content_type}:{tmdb_id}:{language}"
        cached = self._metadata_cache.lookup(key)
        if cached is not MISSING:
            return cached
        endpoint = "movie" if content_type == "movie" else "tv"
        try:
            data = await self._get(
                f"/{endpoint}/{tmdb_id}",
                token,
                language=language,
                append_to_response="credits,videos,external_ids,images",
            )
        except ProviderError as exc:
            logger.warning("Failed to fetch TMDB metadata for %s %s: %s", endpoint, tmdb_id, exc)
            self._metadata_cache.set_negative(key)
            return None
        if not isinstance(data, dict):
            self._metadata_cache.set_negative(key)
            return None
        seasons: list[dict[str, Any]] = []
        if content_type == "series" and data.get("number_of_seasons"):
            seasons = await self._fetch_seasons(tmdb_id, int(data["number_of_seasons"]), language, token)
        item = self._to_item(data, content_type, seasons, language)
        self._metadata_cache.set(key, item)
        return item

    async def _fetch_seasons(
        self, tmdb_id: int, season_count: int, language: str, token: str | None
    ) -> list[dict[str, Any]]:
        numbers = [
            number
            for number in range(0, season_count + 1)
            if not (number == 0 and season_count > 5)
        ]
        results = await asyncio.gather(
            *(
                self._get(f"/tv/{tmdb_id}/season/{number}", token, language=language)
                for number in numbers
            ),
            return_exceptions=True,
        )
        seasons: list[dict[str, Any]] = []
        for number, result in zip(numbers, results):
            if isinstance(result, ProviderError):
                logger.info("Skipping season %s of TMDB %s: %s", number, tmdb_id, result)
                continue
            if isinstance(result, BaseException):
                raise result
            if isinstance(result, dict):
                seasons.append(result)
        return seasons

    def _to_item(
        self,
        data: dict[str, Any],
        content_type: ContentType,
        seasons: Sequence[dict[str, Any]],
        language: str,
    ) -> CanonicalItem | None:
        is_movie = content_type == "movie"
        external = data.get("external_ids") or {}
        imdb_id = normalize_imdb_id(external.get("imdb_id") or data.get("imdb_id"))
        tmdb_id = data.get("id")
        credits = data.get("credits") or {}
        crew = credits.get("crew") or []
        release_date = data.get("release_date") if is_movie else data.get("first_air_date")
        if is_movie:
            release_info = release_date.split("-")[0] if release_date else None
        else:
            release_info = format_series_year(
                release_date, data.get("last_air_date"), data.get("status")
            )
        logos = (data.get("images") or {}).get("logos") or []
        logo_entry = pick_localized(
            logos, language=language, original_language=data.get("original_language")
        )
        trailers = [
            {"title": data.get("title") or data.get("name") or "", "ytId": video["key"]}
            for video in (data.get("videos") or {}).get("results") or []
            if video.get("type") == "Trailer" and video.get("site") == "YouTube" and video.get("key")
        ]
        runtime = data.get("runtime") if is_movie else (data.get("episode_run_time") or [None])[0]
        if is_movie:
            country = ((data.get("production_countries") or [{}])[0] or {}).get("name")
        else:
            country = (data.get("origin_country") or [None])[0]
        poster = data.get("poster_path")
        backdrop = data.get("backdrop_path")
        base_id = imdb_id or f"tmdb:{tmdb_id}"
        payload = {
            "type": content_type,
            "imdb_id": imdb_id,
            "tmdb_id": tmdb_id,
            "tvdb_id": external.get("tvdb_id"),
            "title": data.get("title") if is_movie else data.get("name"),
            "year": release_date,
            "release_info": release_info,
            "released": f"{release_date}T00:00:00.000Z" if release_date else None,
            "overview": data.get("overview") or "",
            "genres": data.get("genres"),
            "runtime": runtime,
            "poster": f"{POSTER_BASE_URL}{poster}" if poster else None,
            "background": f"{ORIGINAL_BASE_URL}{backdrop}" if backdrop else None,
            "logo": f"{ORIGINAL_BASE_URL}{logo_entry['file_path']}"
            if logo_entry and logo_entry.get("file_path")
            else None,
            "rating": data.get("vote_average"),
            "cast": [p["name"] for p in (credits.get("cast") or [])[:10] if p.get("name")],
            "director": [p["name"] for p in crew if p.get("job") == "Director" and p.get("name")],
            "writer": [p["name"] for p in crew if p.get("job") in WRITER_JOBS and p.get("name")],
            "country": country,
            "status": None if is_movie else data.get("status"),
            "original_language": data.get("original_language"),
            "trailer_streams": trailers,
            "videos": [] if is_movie else build_videos(seasons, base_id),
        }
        try:
            return CanonicalItem.model_validate(payload)
        except ValidationError:
            logger.warning("Discarding TMDB record %s without usable ids", tmdb_id)
            return None

    # ------------------------------------------------------------------
    # Genres and search
    # ------------------------------------------------------------------
    async def fetch_genres(self, language: str = "en-US", token: str | None = None) -> list[str]:
        """Return translated movie + TV genres prefixed with ``All``."""

        key = f"genres:{language}"

        async def load() -> list[str] | None:
            try:
                movie, tv = await asyncio.gather(
                    self._get("/genre/movie/list", token, language=language),
                    self._get("/genre/tv/list", token, language=language),
                )
            except ProviderError as exc:
                logger.warning("Failed to fetch TMDB genres for %s: %s", language, exc)
                return None
            names: dict[str, str] = {}
            for payload in (movie, tv):
                genres = payload.get("genres") if isinstance(payload, dict) else None
                for genre in genres or []:
                    name = genre.get("name") if isinstance(genre, dict) else None
                    if name and name.lower() not in names:
                        names[name.lower()] = name
            return ["All", *sorted(names.values())]

        return await self._metadata_cache.get_or_load(key, load) or []

    async def search(
        self,
        query: str,
        content_type: ContentType | None,
        *,
        language: str = "en-US",
        token: str | None = None,
    ) -> list[CanonicalItem]:
        """Search movies, series or both (``None`` uses the multi endpoint)."""

        if content_type == "movie":
            path = "/search/movie"
        elif content_type == "series":
            path = "/search/tv"
        else:
            path = "/search/multi"
        try:
            data = await self._get(
                path, token, query=query, include_adult="false", language=language, page=1
            )
        except ProviderError as exc:
            logger.warning("TMDB search for %r failed: %s", query, exc)
            return []
        results = data.get("results") if isinstance(data, dict) else None
        items: list[CanonicalItem] = []
        for entry in results or []:
            if not isinstance(entry, dict) or entry.get("media_type") == "person":
                continue
            item = self.normalize(entry)
            if item is not None:
                items.append(item)
        return await self.attach_imdb_ids(items, token)
