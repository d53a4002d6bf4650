"""Tests for the MDBList client."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from app.config import Settings
from app.errors import ProviderError
from app.services.mdblist import MDBListClient


def build_settings(**overrides: object) -> Settings:
    values = {"RETRY_BASE_DELAY": 0, "RETRY_MAX_ATTEMPTS": 2, "ITEMS_PER_PAGE": 2}
    values.update(overrides)
    return Settings(_env_file=None, **values)


async def _no_sleep(_: float) -> None:
    return None


def build_client(handler, **overrides: object) -> MDBListClient:
    transport = httpx.MockTransport(handler)
    api = httpx.AsyncClient(transport=transport, base_url="https://api.mdblist.com")
    public = httpx.AsyncClient(transport=transport, base_url="https://mdblist.com")
    return MDBListClient(build_settings(**overrides), api, public, sleep=_no_sleep)


def test_watchlist_uses_unified_endpoint_and_keeps_media_types() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "movies": [{"imdb_id": "tt0133093", "title": "The Matrix", "release_year": 1999}],
                "shows": [{"imdb_id": "tt0903747", "title": "Breaking Bad"}],
            },
        )

    client = build_client(handler)
    content = asyncio.run(client.fetch_list_items("watchlist", "key", kind="W"))

    assert content is not None
    assert [item.type for item in content.items] == ["movie", "series"]
    assert content.has_movies and content.has_shows
    assert seen[0].url.path == "/watchlist/items"
    assert seen[0].url.params["unified"] == "true"


def test_entries_without_imdb_id_are_dropped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[
                {"imdb_id": "tt0111161", "mediatype": "movie", "title": "Shawshank"},
                {"title": "Mystery", "mediatype": "movie"},
            ],
        )

    client = build_client(handler)
    content = asyncio.run(client.fetch_list_items("42", "key"))

    assert [item.imdb_id for item in content.items] == ["tt0111161"]


def test_external_lists_use_the_external_endpoint() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json=[])

    client = build_client(handler)
    asyncio.run(client.fetch_list_items("77", "key", kind="E"))

    assert paths == ["/external/lists/77/items"]


def test_rejected_key_falls_back_to_public_snapshot() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.mdblist.com":
            return httpx.Response(403, json={"error": "forbidden"})
        assert request.url.path == "/lists/garycrawford/top-horror/json/"
        assert request.headers["User-Agent"].startswith("AIOLists")
        return httpx.Response(
            200, json=[{"imdb_id": "tt0081505", "mediatype": "movie", "title": "The Shining"}]
        )

    client = build_client(handler)
    content = asyncio.run(
        client.fetch_list_items(
            "123", "bad-key", public_ref=("garycrawford", "top-horror")
        )
    )

    assert [item.title for item in content.items] == ["The Shining"]


def test_rejected_key_without_public_ref_yields_none() -> None:
    client = build_client(lambda request: httpx.Response(401))

    assert asyncio.run(client.fetch_list_items("123", "bad-key")) is None


def test_malformed_page_becomes_empty_content() -> None:
    client = build_client(lambda request: httpx.Response(200, text="<html>"))

    content = asyncio.run(client.fetch_list_items("123", "key"))

    assert content is not None
    assert content.items == []


def test_genre_filter_scans_additional_pages() -> None:
    pages = {
        0: [
            {"imdb_id": "tt0000001", "mediatype": "movie", "genre": ["Drama"]},
            {"imdb_id": "tt0000002", "mediatype": "movie", "genre": ["Horror"]},
        ],
        2: [
            {"imdb_id": "tt0000003", "mediatype": "movie", "genre": ["horror"]},
            {"imdb_id": "tt0000004", "mediatype": "movie", "genre": ["Comedy"]},
        ],
        4: [{"imdb_id": "tt0000005", "mediatype": "movie", "genre": ["Horror"]}],
    }
    offsets: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params["offset"])
        offsets.append(offset)
        return httpx.Response(200, json=pages.get(offset, []))

    client = build_client(handler, GENRE_FILTER_MAX_PAGES=5)
    content = asyncio.run(client.fetch_list_items("9", "key", genre="Horror"))

    assert [item.imdb_id for item in content.items] == ["tt0000002", "tt0000003"]
    assert offsets == [0, 2]


def test_fetch_all_lists_appends_watchlist() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/lists/user":
            return httpx.Response(200, json=[{"id": 1, "name": "Faves", "movies": 3, "shows": 0}])
        return httpx.Response(200, json=[{"id": 2, "name": "Imported", "slug": "imported"}])

    client = build_client(handler)
    lists = asyncio.run(client.fetch_all_lists("key"))

    assert [(entry.id, entry.kind) for entry in lists] == [("1", "L"), ("2", "E"), ("watchlist", "W")]
    assert lists[0].movies == 3


def test_import_from_url_rejects_other_hosts() -> None:
    client = build_client(lambda request: httpx.Response(500))

    with pytest.raises(ValueError):
        asyncio.run(client.import_list_from_url("https://example.com/lists/a/b"))


def test_import_from_url_without_key_probes_public_snapshot() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"imdb_id": "tt0903747", "mediatype": "show"}])

    client = build_client(handler)
    imported = asyncio.run(
        client.import_list_from_url("https://mdblist.com/lists/garycrawford/best-tv/")
    )

    assert imported.id == "mdblisturl_garycrawford_best-tv"
    assert imported.name == "Best Tv"
    assert imported.has_shows and not imported.has_movies


def test_import_from_url_reports_unknown_lists() -> None:
    client = build_client(lambda request: httpx.Response(200, json=[]))

    with pytest.raises(ProviderError):
        asyncio.run(client.import_list_from_url("https://mdblist.com/lists/a/b", "key"))


def test_genre_without_matches_is_empty_not_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"imdb_id": "tt0000001", "mediatype": "movie", "genre": ["Drama"]}])

    client = build_client(handler)
    content = asyncio.run(client.fetch_list_items("9", "key", genre="Western"))

    assert content is not None
    assert (content.items, content.has_movies, content.has_shows) == ([], False, False)


def test_genre_filter_requests_genres_and_skips_items_without_them() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {"imdb_id": "tt0000001", "mediatype": "movie"},
                {"imdb_id": "tt0000002", "mediatype": "show"},
            ],
        )

    client = build_client(handler)
    content = asyncio.run(client.fetch_list_items("watchlist", "key", kind="W", genre="Western"))

    assert (content.items, content.has_movies, content.has_shows) == ([], False, False)
    assert seen[0].url.params["append_to_response"] == "genre"


def test_public_snapshot_asks_for_genres_when_filtering() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"imdb_id": "tt0000001", "mediatype": "movie"}])

    client = build_client(handler)
    content = asyncio.run(client.fetch_public_list_items("gary", "westerns", genre="Western"))

    assert content.items == []
    assert seen[0].url.params["append_to_response"] == "ratings,genre"
