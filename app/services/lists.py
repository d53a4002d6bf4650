"""Discovery of the lists a user has connected."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..catalog_ids import MDBListList, MDBListWatchlist
from ..config import Settings
from ..models import ListContent, ListSource
from ..user_config import UserConfig
from ..utils import gather_in_windows
from .mdblist import MDBListClient
from .router import ListRouter
from .tmdb import TMDBClient
from .trakt import TraktClient

logger = logging.getLogger(__name__)

_STATIC_TRAKT_KINDS = {"recommendations", "trending", "popular"}


@dataclass(slots=True)
class _Candidate:
    source: ListSource
    needs_probe: bool


class ListDiscovery:
    """Collect every list across providers together with its content flags.

    Providers that do not report whether a list holds movies, series or both
    are probed with a first-page fetch through the router, so the manifest
    advertises exactly the types the catalog handler will later return.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        router: ListRouter,
        mdblist: MDBListClient,
        trakt: TraktClient,
        tmdb: TMDBClient,
    ):
        self._settings = settings
        self._router = router
        self._mdblist = mdblist
        self._trakt = trakt
        self._tmdb = tmdb

    async def discover(self, config: UserConfig) -> list[ListSource]:
        candidates: list[_Candidate] = []
        if config.api_key:
            candidates.extend(await self._mdblist_candidates(config.api_key))
        if config.has_trakt():
            for source in await self._trakt.fetch_lists(config):
                candidates.append(
                    _Candidate(source, needs_probe=source.list_kind not in _STATIC_TRAKT_KINDS)
                )
        if config.tmdb_session_id and config.tmdb_account_id:
            for summary in await self._tmdb.fetch_lists(config):
                candidates.append(
                    _Candidate(
                        ListSource(
                            source="tmdb",
                            catalog_id=summary.id,
                            raw_id=summary.id,
                            name=summary.name,
                        ),
                        needs_probe=True,
                    )
                )
        for key, imported in config.imported_addons.items():
            if not imported.is_url_import:
                continue
            candidates.append(
                _Candidate(
                    ListSource(
                        source="imported",
                        catalog_id=key,
                        raw_id=imported.mdblist_id or imported.id,
                        name=imported.name or key,
                        list_kind="trakt" if imported.is_trakt_public_list else "mdblist",
                        has_movies=imported.has_movies,
                        has_shows=imported.has_shows,
                    ),
                    needs_probe=False,
                )
            )

        excluded = set(config.hidden_lists) | set(config.removed_lists)
        to_probe = [
            candidate.source
            for candidate in candidates
            if candidate.needs_probe and candidate.source.catalog_id not in excluded
        ]
        if to_probe:
            await self._probe(to_probe, config)
        return [candidate.source for candidate in candidates]

    async def _mdblist_candidates(self, api_key: str) -> list[_Candidate]:
        candidates: list[_Candidate] = []
        for summary in await self._mdblist.fetch_all_lists(api_key):
            if summary.kind == "W":
                catalog_id = MDBListWatchlist().catalog_id
            else:
                kind = "E" if summary.kind == "E" else "L"
                catalog_id = MDBListList(summary.id, kind).catalog_id
            counted = summary.movies is not None or summary.shows is not None
            candidates.append(
                _Candidate(
                    ListSource(
                        source="mdblist",
                        catalog_id=catalog_id,
                        raw_id=summary.id,
                        name=summary.name,
                        list_kind=summary.kind,
                        has_movies=(summary.movies or 0) > 0,
                        has_shows=(summary.shows or 0) > 0,
                    ),
                    needs_probe=not counted,
                )
            )
        return candidates

    async def _probe(self, sources: list[ListSource], config: UserConfig) -> None:
        async def probe(source: ListSource) -> ListContent | None:
            return await self._router.resolve(source.catalog_id, config, skip=0)

        results = await gather_in_windows(
            sources, probe, window=self._settings.manifest_concurrency
        )
        for source, result in zip(sources, results):
            if isinstance(result, ListContent):
                source.has_movies = result.has_movies
                source.has_shows = result.has_shows
            elif isinstance(result, BaseException):
                logger.warning("Probing list %s raised %s", source.catalog_id, result)
