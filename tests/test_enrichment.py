"""Tests for the metadata and artwork enrichment cascade."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from app.config import Settings
from app.models import CanonicalItem
from app.services.enrichment import EnrichmentService, merge_metadata
from app.services.fanart import FanartClient
from app.services.metadata_addon import MetadataAddonClient
from app.services.rpdb import RPDBClient
from app.services.tmdb import TMDBClient
from app.user_config import UserConfig

Handler = Callable[[httpx.Request], httpx.Response]


def build_settings(**overrides: Any) -> Settings:
    base = {"RETRY_BASE_DELAY": 0, "RETRY_MAX_ATTEMPTS": 1}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


async def _no_sleep(_: float) -> None:
    return None


def build_service(handler: Handler, **overrides: Any) -> EnrichmentService:
    settings = build_settings(**overrides)
    transport = httpx.MockTransport(handler)

    def client(base_url: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=transport, base_url=base_url)

    tmdb = TMDBClient(settings, client("https://api.themoviedb.org/3"), sleep=_no_sleep)
    return EnrichmentService(
        settings,
        tmdb=tmdb,
        cinemeta=MetadataAddonClient(
            settings, client("https://v3-cinemeta.strem.io"), sleep=_no_sleep
        ),
        fanart=FanartClient(
            settings, client("https://webservice.fanart.tv/v3"), tmdb=tmdb, sleep=_no_sleep
        ),
        rpdb=RPDBClient(settings, client("https://api.ratingposterdb.com"), sleep=_no_sleep),
    )


def cinemeta_meta(imdb_id: str, **fields: Any) -> httpx.Response:
    return httpx.Response(200, json={"meta": {"id": imdb_id, **fields}})


def test_merge_keeps_source_identity_and_order_fields() -> None:
    original = CanonicalItem(type="movie", imdb_id="tt0133093", rank=3, title="Matrix")
    fetched = CanonicalItem(
        type="series", imdb_id="tt9999999", tmdb_id=603, title="The Matrix", rank=1, genres=[]
    )

    merged = merge_metadata(original, fetched)

    assert merged.imdb_id == "tt0133093"
    assert merged.tmdb_id == 603
    assert merged.title == "The Matrix"
    assert merged.type == "movie"
    assert merged.rank == 3


@pytest.mark.anyio("asyncio")
async def test_none_source_skips_every_stage() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError(f"unexpected request {request.url}")

    service = build_service(handler, FANART_API_KEY="fanart")
    items = [CanonicalItem(type="movie", imdb_id="tt0133093")]

    enriched = await service.enrich(
        items, UserConfig(metadataSource="none", rpdbApiKey="t0-free-rpdb")
    )

    assert enriched == items


@pytest.mark.anyio("asyncio")
async def test_cinemeta_enrichment_and_rating_posters() -> None:
    head_requests: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "v3-cinemeta.strem.io":
            imdb_id = request.url.path.rsplit("/", 1)[-1].removesuffix(".json")
            return cinemeta_meta(
                imdb_id,
                name=f"Title {imdb_id}",
                description="Found on Cinemeta",
                poster=f"https://images.example/{imdb_id}.jpg",
            )
        if host == "api.ratingposterdb.com":
            assert request.method == "HEAD"
            head_requests.append(request.url.path)
            if "tt0000002" in request.url.path:
                return httpx.Response(404)
            return httpx.Response(200)
        raise AssertionError(f"unexpected request {request.url}")

    service = build_service(handler)
    items = [
        CanonicalItem(type="movie", imdb_id="tt0000001"),
        CanonicalItem(type="movie", imdb_id="tt0000002"),
    ]

    enriched = await service.enrich(items, UserConfig(rpdbApiKey="t0-free-rpdb"))

    assert [item.title for item in enriched] == ["Title tt0000001", "Title tt0000002"]
    assert enriched[0].poster == (
        "https://api.ratingposterdb.com/t0-free-rpdb/imdb/poster-default/tt0000001.jpg"
        "?fallback=true"
    )
    assert enriched[1].poster == "https://images.example/tt0000002.jpg"
    assert len(head_requests) == 2


def _tmdb_handler(cinemeta_calls: list[str]) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        path = request.url.path
        if host == "api.themoviedb.org":
            if path == "/3/find/tt0133093":
                return httpx.Response(200, json={"movie_results": [{"id": 603}]})
            if path == "/3/find/tt0903747":
                # /find reports a series for an item listed as a movie.
                return httpx.Response(200, json={"tv_results": [{"id": 1396}]})
            if path == "/3/movie/603":
                return httpx.Response(
                    200,
                    json={
                        "id": 603,
                        "title": "The Matrix",
                        "release_date": "1999-03-30",
                        "overview": "From TMDB",
                        "external_ids": {"imdb_id": "tt0133093"},
                    },
                )
        if host == "v3-cinemeta.strem.io":
            cinemeta_calls.append(path)
            return cinemeta_meta("tt0903747", name="From Cinemeta")
        raise AssertionError(f"unexpected request {request.url}")

    return handler


@pytest.mark.anyio("asyncio")
async def test_tmdb_failures_fall_back_to_cinemeta() -> None:
    cinemeta_calls: list[str] = []
    service = build_service(_tmdb_handler(cinemeta_calls), TMDB_BEARER_TOKEN="server")
    items = [
        CanonicalItem(type="movie", imdb_id="tt0133093"),
        CanonicalItem(type="movie", imdb_id="tt0903747"),
    ]

    enriched = await service.enrich(
        items, UserConfig(metadataSource="tmdb", onPrimaryFailure="fallback")
    )

    assert enriched[0].title == "The Matrix"
    assert enriched[0].overview == "From TMDB"
    assert enriched[0].tmdb_id == 603
    assert enriched[1].title == "From Cinemeta"
    assert cinemeta_calls == ["/meta/movie/tt0903747.json"]


@pytest.mark.anyio("asyncio")
async def test_tmdb_failures_stay_unenriched_when_configured() -> None:
    cinemeta_calls: list[str] = []
    service = build_service(_tmdb_handler(cinemeta_calls), TMDB_BEARER_TOKEN="server")
    items = [
        CanonicalItem(type="movie", imdb_id="tt0133093"),
        CanonicalItem(type="movie", imdb_id="tt0903747", title="Listed title"),
    ]

    enriched = await service.enrich(
        items, UserConfig(metadataSource="tmdb", onPrimaryFailure="leaveUnenriched")
    )

    assert enriched[0].title == "The Matrix"
    assert enriched[1] == items[1]
    assert cinemeta_calls == []


def test_tmdb_source_without_credentials_uses_cinemeta() -> None:
    service = build_service(lambda request: httpx.Response(500))

    assert service.uses_tmdb(UserConfig(metadataSource="tmdb")) is False
    assert service.uses_tmdb(UserConfig(metadataSource="tmdb", tmdbSessionId="s")) is True
    assert service.uses_tmdb(UserConfig(metadataSource="tmdb", tmdbBearerToken="t")) is True


@pytest.mark.anyio("asyncio")
async def test_fanart_resolves_tvdb_id_for_series() -> None:
    fanart_paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        path = request.url.path
        if host == "v3-cinemeta.strem.io":
            return httpx.Response(404)
        if host == "api.themoviedb.org" and path == "/3/tv/1396/external_ids":
            return httpx.Response(200, json={"imdb_id": "tt0903747", "tvdb_id": 81189})
        if host == "webservice.fanart.tv":
            fanart_paths.append(path)
            assert request.url.params["api_key"] == "fanart-key"
            return httpx.Response(
                200,
                json={
                    "hdtvlogo": [
                        {"lang": "de", "url": "https://fanart.example/logo-de.png"},
                        {"lang": "en", "url": "https://fanart.example/logo-en.png"},
                    ],
                    "showbackground": [{"lang": "", "url": "https://fanart.example/bg.jpg"}],
                    "tvposter": [{"lang": "en", "url": "https://fanart.example/poster.jpg"}],
                },
            )
        raise AssertionError(f"unexpected request {request.url}")

    service = build_service(handler, FANART_API_KEY="fanart-key", TMDB_BEARER_TOKEN="server")
    items = [
        CanonicalItem(
            type="series",
            imdb_id="tt0903747",
            tmdb_id=1396,
            background="https://images.example/existing-bg.jpg",
            poster="https://images.example/existing-poster.jpg",
        )
    ]

    enriched = await service.enrich(items, UserConfig())

    assert fanart_paths == ["/v3/tv/81189"]
    assert enriched[0].logo == "https://fanart.example/logo-en.png"
    assert enriched[0].background == "https://images.example/existing-bg.jpg"
    assert enriched[0].poster == "https://fanart.example/poster.jpg"
