"""Tests for the TMDB client and its helpers."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from app.catalog_ids import TmdbList
from app.config import Settings
from app.services.tmdb import (
    TMDBClient,
    build_videos,
    format_series_year,
    has_absolute_numbering,
    infer_content_type,
)
from app.user_config import UserConfig


def build_settings(**overrides: Any) -> Settings:
    base = {"RETRY_BASE_DELAY": 0, "RETRY_MAX_ATTEMPTS": 1, "TMDB_BEARER_TOKEN": "server-token"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


async def _no_sleep(_: float) -> None:
    return None


def _season(number: int, first: int, count: int) -> dict[str, Any]:
    return {
        "season_number": number,
        "episodes": [
            {"episode_number": first + offset, "name": f"E{first + offset}"}
            for offset in range(count)
        ],
    }


def test_content_type_is_inferred_from_record_shape() -> None:
    assert infer_content_type({"title": "Heat", "release_date": "1995-12-15"}) == "movie"
    assert infer_content_type({"name": "The Wire", "first_air_date": "2002-06-02"}) == "series"
    assert infer_content_type({"id": 1}) is None


def test_absolute_numbering_is_detected_and_renumbered() -> None:
    seasons = [_season(1, 1, 12), _season(2, 13, 12)]

    assert has_absolute_numbering(seasons) is True
    videos = build_videos(seasons, "tt0877057")
    second_season = [video for video in videos if video.season == 2]
    assert second_season[0].episode == 1
    assert second_season[0].absolute_number == 13
    assert second_season[0].id == "tt0877057:2:1"


def test_regular_numbering_is_kept() -> None:
    seasons = [_season(1, 1, 10), _season(2, 1, 10)]

    assert has_absolute_numbering(seasons) is False
    videos = build_videos(seasons, "tmdb:1399")
    assert videos[-1].episode == 10
    assert videos[-1].absolute_number is None


@pytest.mark.parametrize(
    ("first", "last", "status", "expected"),
    [
        ("2008-01-20", "2013-09-29", "Ended", "2008-2013"),
        ("2011-04-17", "2019-05-19", "Returning Series", "2011-"),
        ("2020-01-01", "2020-03-01", "Ended", "2020"),
        ("2020-01-01", None, "Canceled", "2020-"),
        (None, None, None, None),
    ],
)
def test_series_year_ranges(first, last, status, expected) -> None:
    assert format_series_year(first, last, status) == expected


@pytest.mark.anyio("asyncio")
async def test_watchlist_returns_partial_result_when_one_half_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/watchlist/tv"):
            return httpx.Response(503)
        if request.url.path.endswith("/external_ids"):
            return httpx.Response(200, json={"imdb_id": "tt0113277"})
        assert request.url.params["sort_by"] == "created_at.desc"
        assert request.headers["Authorization"] == "Bearer server-token"
        return httpx.Response(
            200, json={"results": [{"id": 949, "title": "Heat", "release_date": "1995-12-15"}]}
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.themoviedb.org/3") as http_client:
        client = TMDBClient(build_settings(), http_client, sleep=_no_sleep)
        content = await client.fetch_list_items(
            TmdbList("watchlist"),
            UserConfig(tmdbSessionId="session", tmdbAccountId=7),
        )

    assert content is not None
    assert [(item.tmdb_id, item.imdb_id, item.year) for item in content.items] == [
        (949, "tt0113277", 1995)
    ]


@pytest.mark.anyio("asyncio")
async def test_lists_need_a_session() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with httpx.AsyncClient(transport=transport, base_url="https://api.themoviedb.org/3") as http_client:
        client = TMDBClient(build_settings(), http_client, sleep=_no_sleep)
        assert await client.fetch_list_items(TmdbList("favorites"), UserConfig()) is None
        assert await client.fetch_lists(UserConfig()) == []


@pytest.mark.anyio("asyncio")
async def test_find_by_imdb_is_cached() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"movie_results": [], "tv_results": [{"id": 1396}]})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.themoviedb.org/3") as http_client:
        client = TMDBClient(build_settings(), http_client, sleep=_no_sleep)
        first = await client.find_by_imdb("tt0903747")
        second = await client.find_by_imdb("tt0903747")
        invalid = await client.find_by_imdb("not-an-id")

    assert first == second == (1396, "series")
    assert invalid is None
    assert calls == ["/3/find/tt0903747"]


@pytest.mark.anyio("asyncio")
async def test_series_metadata_includes_episodes_and_localized_logo() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/3/tv/1396":
            return httpx.Response(
                200,
                json={
                    "id": 1396,
                    "name": "Breaking Bad",
                    "first_air_date": "2008-01-20",
                    "last_air_date": "2013-09-29",
                    "status": "Ended",
                    "number_of_seasons": 1,
                    "overview": "A chemist turns to crime.",
                    "genres": [{"id": 18, "name": "Drama"}],
                    "episode_run_time": [47],
                    "vote_average": 8.9,
                    "original_language": "en",
                    "poster_path": "/poster.jpg",
                    "external_ids": {"imdb_id": "tt0903747", "tvdb_id": 81189},
                    "credits": {
                        "cast": [{"name": "Bryan Cranston"}],
                        "crew": [{"job": "Writer", "name": "Vince Gilligan"}],
                    },
                    "videos": {"results": [{"type": "Trailer", "site": "YouTube", "key": "abc"}]},
                    "images": {
                        "logos": [
                            {"iso_639_1": "en", "file_path": "/logo-en.png"},
                            {"iso_639_1": "de", "file_path": "/logo-de.png"},
                        ]
                    },
                    "origin_country": ["US"],
                },
            )
        if path == "/3/tv/1396/season/0":
            return httpx.Response(404)
        if path == "/3/tv/1396/season/1":
            return httpx.Response(200, json=_season(1, 1, 2))
        raise AssertionError(f"unexpected request {path}")

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.themoviedb.org/3") as http_client:
        client = TMDBClient(build_settings(), http_client, sleep=_no_sleep)
        item = await client.fetch_metadata(1396, "series", language="de-DE")

    assert item is not None
    assert item.imdb_id == "tt0903747"
    assert item.tvdb_id == 81189
    assert item.release_info == "2008-2013"
    assert item.runtime == "47 min"
    assert item.rating == "8.9"
    assert item.logo == "https://image.tmdb.org/t/p/original/logo-de.png"
    assert item.writer == ["Vince Gilligan"]
    assert item.trailer_streams == [{"title": "Breaking Bad", "ytId": "abc"}]
    assert [video.id for video in item.videos] == ["tt0903747:1:1", "tt0903747:1:2"]


@pytest.mark.anyio("asyncio")
async def test_genres_are_merged_and_prefixed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/movie/list"):
            return httpx.Response(200, json={"genres": [{"name": "Drama"}, {"name": "Action"}]})
        return httpx.Response(200, json={"genres": [{"name": "Drama"}, {"name": "Kids"}]})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.themoviedb.org/3") as http_client:
        client = TMDBClient(build_settings(), http_client, sleep=_no_sleep)
        genres = await client.fetch_genres("en-US")

    assert genres == ["All", "Action", "Drama", "Kids"]
