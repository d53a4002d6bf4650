"""Tests for the Cinemeta metadata client."""

import asyncio

import httpx

from app.config import Settings
from app.models import CanonicalItem
from app.services.metadata_addon import MetadataAddonClient


def build_settings(**overrides):
    base = {"RETRY_BASE_DELAY": 0, "RETRY_MAX_ATTEMPTS": 1}
    base.update(overrides)
    return Settings(_env_file=None, **base)


async def _no_sleep(_):
    return None


def build_client(handler):
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://v3-cinemeta.strem.io"
    )
    return MetadataAddonClient(build_settings(), http_client, sleep=_no_sleep)


def test_parse_meta_maps_addon_fields():
    item = MetadataAddonClient.parse_meta(
        {
            "id": "tt0903747",
            "name": "Breaking Bad",
            "releaseInfo": "2008-2013",
            "description": "A chemist turns to crime.",
            "imdbRating": "9.5",
            "genres": ["Drama", "Crime"],
            "cast": "Bryan Cranston, Aaron Paul",
            "poster": "https://images.metahub.space/poster/medium/tt0903747/img",
            "logo": "/relative/logo.png",
            "trailerStreams": [{"title": "Trailer", "ytId": "HhesaQXLuRY"}, {"title": "Broken"}],
            "videos": [
                {"id": "tt0903747:1:1", "name": "Pilot", "season": 1, "episode": 1},
                {"id": "tt0903747:1:2", "title": "Cat's in the Bag...", "season": 1, "number": 2},
                {"id": "broken", "season": 1},
            ],
        },
        "series",
    )

    assert item is not None
    assert item.title == "Breaking Bad"
    assert item.year == 2008
    assert item.release_info == "2008-2013"
    assert item.rating == "9.5"
    assert item.cast == ["Bryan Cranston", "Aaron Paul"]
    assert item.logo is None
    assert item.trailer_streams == [{"title": "Trailer", "ytId": "HhesaQXLuRY"}]
    assert [video.episode for video in item.videos] == [1, 2]


def test_parse_meta_rejects_records_without_ids():
    assert MetadataAddonClient.parse_meta({"name": "Nothing"}, "movie") is None
    assert MetadataAddonClient.parse_meta(None, "movie") is None


def test_not_found_is_remembered():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(404)

    client = build_client(handler)

    async def run():
        first = await client.fetch_meta("tt9999999", "movie")
        second = await client.fetch_meta("tt9999999", "movie")
        return first, second

    assert asyncio.run(run()) == (None, None)
    assert calls == ["/meta/movie/tt9999999.json"]


def test_transient_failures_are_not_remembered():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"meta": {"id": "tt0133093", "name": "The Matrix"}})

    client = build_client(handler)

    async def run():
        first = await client.fetch_meta("tt0133093", "movie")
        second = await client.fetch_meta("tt0133093", "movie")
        return first, second

    first, second = asyncio.run(run())
    assert first is None
    assert second.title == "The Matrix"
    assert len(calls) == 2


def test_fetch_many_keys_results_by_primary_id():
    def handler(request):
        imdb_id = request.url.path.rsplit("/", 1)[-1].removesuffix(".json")
        if imdb_id == "tt0000002":
            return httpx.Response(404)
        return httpx.Response(200, json={"meta": {"id": imdb_id, "name": f"Title {imdb_id}"}})

    client = build_client(handler)
    items = [
        CanonicalItem(type="movie", imdb_id="tt0000001"),
        CanonicalItem(type="movie", imdb_id="tt0000002"),
        CanonicalItem(type="movie", tmdb_id=42),
    ]

    found = asyncio.run(client.fetch_many(items))

    assert list(found) == ["tt0000001"]
    assert found["tt0000001"].title == "Title tt0000001"


def test_search_quotes_the_query():
    paths = []

    def handler(request):
        paths.append(request.url.raw_path.decode("ascii"))
        return httpx.Response(200, json={"metas": [{"id": "tt0133093", "name": "The Matrix"}]})

    client = build_client(handler)
    results = asyncio.run(client.search("the matrix", "movie"))

    assert [item.imdb_id for item in results] == ["tt0133093"]
    assert paths == ["/catalog/movie/top/search=the%20matrix.json"]
