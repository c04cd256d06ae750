"""
SuperflixAPI: on-demand player pages, no catalog.

Movies are addressed by IMDb id (looked up through TMDB external ids),
series by TMDB id with one-indexed season / episode numbers.
"""
from __future__ import annotations
import logging
import re

from ...core.models import Audio, ContentType, Provider, Quality
from ...exceptions import ExtractionError
from ..base import ProviderContext, get_page, refresh_endpoint
from ..endpoints import EndpointSpec, EndpointState
from ..extract import extract_media_url
from ..registry import register_provider

log = logging.getLogger("lumecine.providers.superflixapi")

SUPERFLIX_CANDIDATES = (
    "https://superflixapi.run",
    "https://superflixapi.asia",
    "https://superflixapi.top",
)


@register_provider
class SuperflixAPI:
    tag = Provider.SUPERFLIXAPI
    name = "SuperflixAPI"
    has_catalog = False
    endpoint_spec = EndpointSpec(
        key="superflixapi",
        candidates=SUPERFLIX_CANDIDATES,
        domain_pattern=re.compile(r"superflix", re.IGNORECASE),
        search_query="superflixapi player",
    )

    def __init__(self, ctx: ProviderContext):
        self.ctx = ctx
        self.endpoint = EndpointState(current_url=SUPERFLIX_CANDIDATES[0])

    async def refresh_endpoint(self) -> EndpointState:
        return await refresh_endpoint(self)

    async def fetch_catalog(self):
        return []

    async def materialize_catalog(self, items) -> int:
        return 0

    async def list_episodes(self, media):
        # Episodes come from TMDB / other providers, nothing to list here
        return []

    async def _resolve(self, path: str) -> str:
        html = await get_page(self, path)
        page_url = f"{self.endpoint.current_url}/{path}"
        try:
            url = await extract_media_url(html, self.ctx.fetcher, page_url=page_url)
        except ExtractionError:
            log.debug(f"[superflixapi] no direct media in {page_url}, serving player page")
            return page_url
        log.info(f"[superflixapi] direct media found for {path}")
        return url

    async def resolve_movie_url(self, media, audio: Audio, quality: Quality):
        imdb_id = await self.ctx.tmdb.imdb_id(ContentType.MOVIE, media.id)
        if not imdb_id:
            log.warning(f"[superflixapi] no IMDb id for TMDB movie {media.id}")
            return None
        return await self._resolve(f"filme/{imdb_id}")

    async def resolve_series_url(self, media, season: int, episode: int, audio: Audio):
        return await self._resolve(f"serie/{media.id}/{season + 1}/{episode + 1}")
