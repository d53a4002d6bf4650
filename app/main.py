"""Entry point for the FastAPI-powered Stremio addon."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any
from urllib.parse import parse_qsl

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import settings
from .errors import ProviderError
from .services.addon import AddonService
from .services.cache import CacheService
from .services.enrichment import EnrichmentService
from .services.fanart import FanartClient
from .services.lists import ListDiscovery
from .services.manifest import ManifestBuilder
from .services.mdblist import MDBListClient
from .services.metadata_addon import MetadataAddonClient
from .services.router import ListRouter
from .services.rpdb import RPDBClient
from .services.search import SearchService
from .services.tmdb import TMDBClient
from .services.trakt import TraktClient
from .user_config import InvalidConfig, UserConfig

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()

    async def client(base_url: object, timeout: float) -> httpx.AsyncClient:
        return await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(base_url).rstrip("/"),
                timeout=httpx.Timeout(timeout, connect=5.0),
            )
        )

    mdblist_http = await client(settings.mdblist_api_url, 15.0)
    mdblist_public_http = await client(settings.mdblist_public_url, 15.0)
    trakt_http = await client(settings.trakt_api_url, 20.0)
    tmdb_http = await client(settings.tmdb_api_url, 15.0)
    cinemeta_http = await client(settings.cinemeta_url, 5.0)
    fanart_http = await client(settings.fanart_api_url, 10.0)
    rpdb_http = await client(settings.rpdb_api_url, 10.0)

    metadata_cache = CacheService(
        default_ttl=settings.metadata_cache_ttl,
        negative_ttl=settings.negative_cache_ttl,
        maxsize=settings.cache_max_entries,
    )
    id_cache = CacheService(
        default_ttl=settings.id_cache_ttl,
        negative_ttl=settings.negative_cache_ttl,
        maxsize=settings.cache_max_entries,
    )

    tmdb = TMDBClient(settings, tmdb_http, id_cache=id_cache, metadata_cache=metadata_cache)
    trakt = TraktClient(settings, trakt_http, tmdb=tmdb)
    mdblist = MDBListClient(settings, mdblist_http, mdblist_public_http)
    cinemeta = MetadataAddonClient(settings, cinemeta_http, cache=metadata_cache)
    fanart = FanartClient(settings, fanart_http, tmdb=tmdb, cache=metadata_cache)
    rpdb = RPDBClient(settings, rpdb_http, cache=metadata_cache)

    router = ListRouter(mdblist=mdblist, trakt=trakt, tmdb=tmdb)
    discovery = ListDiscovery(settings, router=router, mdblist=mdblist, trakt=trakt, tmdb=tmdb)
    fastapi_app.state.addon_service = AddonService(
        settings,
        manifest=ManifestBuilder(settings, discovery=discovery, tmdb=tmdb),
        router=router,
        enrichment=EnrichmentService(
            settings, tmdb=tmdb, cinemeta=cinemeta, fanart=fanart, rpdb=rpdb
        ),
        search=SearchService(cinemeta=cinemeta, trakt=trakt, tmdb=tmdb),
    )
    fastapi_app.state.mdblist = mdblist
    fastapi_app.state.trakt = trakt

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Catalogs for your MDBList, Trakt and TMDB lists in Stremio",
        version="1.2.7",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_addon_service(app: FastAPI) -> AddonService:
    service = getattr(app.state, "addon_service", None)
    if not isinstance(service, AddonService):
        raise RuntimeError("Addon service not initialised")
    return service


def parse_extra(raw: str | None) -> dict[str, str]:
    """Parse the ``skip=..&genre=..&search=..`` catalog path segment."""

    if not raw:
        return {}
    return dict(parse_qsl(raw, keep_blank_values=False))


def _parse_skip(value: str | None) -> int:
    try:
        return max(int(value or 0), 0)
    except ValueError:
        return 0


def register_routes(fastapi_app: FastAPI) -> None:
    def _load_config(segment: str | None) -> UserConfig:
        if segment is None:
            return UserConfig()
        try:
            return UserConfig.from_segment(segment)
        except (InvalidConfig, ValidationError) as exc:
            raise HTTPException(status_code=400, detail=f"Invalid configuration: {exc}") from exc

    async def _catalog_endpoint(
        request: Request,
        config_segment: str,
        content_type: str,
        catalog_id: str,
        extra: str | None = None,
    ) -> JSONResponse:
        config = _load_config(config_segment)
        params = dict(request.query_params)
        params.update(parse_extra(extra))
        service = get_addon_service(fastapi_app)
        payload = await service.catalog(
            config,
            content_type,
            catalog_id,
            skip=_parse_skip(params.get("skip")),
            genre=params.get("genre") or None,
            search=params.get("search") or None,
        )
        return JSONResponse(payload)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/manifest.json")
    async def manifest() -> dict[str, Any]:
        return await get_addon_service(fastapi_app).manifest(UserConfig())

    @fastapi_app.get("/{config_segment}/manifest.json")
    async def manifest_with_config(config_segment: str) -> dict[str, Any]:
        config = _load_config(config_segment)
        return await get_addon_service(fastapi_app).manifest(config)

    @fastapi_app.get("/{config_segment}/catalog/{content_type}/{catalog_id}.json")
    async def catalog(
        request: Request, config_segment: str, content_type: str, catalog_id: str
    ) -> JSONResponse:
        return await _catalog_endpoint(request, config_segment, content_type, catalog_id)

    @fastapi_app.get("/{config_segment}/catalog/{content_type}/{catalog_id}/{extra}.json")
    async def catalog_with_extra(
        request: Request,
        config_segment: str,
        content_type: str,
        catalog_id: str,
        extra: str,
    ) -> JSONResponse:
        return await _catalog_endpoint(
            request, config_segment, content_type, catalog_id, extra
        )

    @fastapi_app.get("/{config_segment}/meta/{content_type}/{meta_id}.json")
    async def meta(config_segment: str, content_type: str, meta_id: str) -> JSONResponse:
        config = _load_config(config_segment)
        payload = await get_addon_service(fastapi_app).meta(config, content_type, meta_id)
        return JSONResponse(payload)

    @fastapi_app.post("/api/import-list")
    async def import_list(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict) or not isinstance(payload.get("url"), str):
            raise HTTPException(status_code=400, detail="A list URL is required")
        url = payload["url"].strip()
        try:
            if "trakt.tv" in url:
                imported = await fastapi_app.state.trakt.import_public_list(url)
            elif "mdblist.com" in url:
                api_key = payload.get("apiKey") if isinstance(payload.get("apiKey"), str) else None
                imported = await fastapi_app.state.mdblist.import_list_from_url(url, api_key)
            else:
                raise HTTPException(status_code=400, detail="Unsupported list URL")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except ProviderError as exc:
            logger.warning("List import from %s failed: %s", url, exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return JSONResponse(imported.to_payload())


app = create_app()
