"""
WarezCDN source, IMDb-based, audio-aware. Resolves the embed player that
matches the requested audio track through warezcdn's getPlay redirect.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Optional
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from ...core.models import Audio, ContentType, Provider, Quality
from ...exceptions import ExtractionError
from ..base import ProviderContext, get_page, refresh_endpoint
from ..endpoints import EndpointSpec, EndpointState
from ..registry import register_provider

log = logging.getLogger("lumecine.providers.warezcdn")

WAREZCDN_CANDIDATES = (
    "https://embed.warezcdn.link",
    "https://embed.warezcdn.com",
)
WAREZCDN_API = "https://warezcdn.com/embed"

# warezcdn audio codes
AUDIO_CODES = {"1": Audio.SUBTITLED, "2": Audio.DUBBED}
HOST_PREFERENCE = ("warezcdn", "mixdrop")


def parse_movie_embeds(html: str) -> list[tuple[str, str, Optional[Audio]]]:
    """(host, embed id, audio) for every `data-load-embed` button on a movie page."""
    soup = BeautifulSoup(html, "html.parser")
    embeds = []
    for el in soup.find_all(attrs={"data-load-embed": True}):
        host = el.get("data-load-embed-host", "")
        code = el.get("data-load-embed-audio") or el.get("data-audio")
        embeds.append((host, el["data-load-embed"], AUDIO_CODES.get(str(code)) if code else None))
    return embeds


def pick_embed(embeds, audio: Audio):
    matching = [e for e in embeds if e[2] in (audio, None)]
    for host in HOST_PREFERENCE:
        for e in matching:
            if e[0] == host:
                return e
    return matching[0] if matching else None


@register_provider
class WarezCDN:
    tag = Provider.WAREZCDN
    name = "WarezCDN"
    has_catalog = False
    endpoint_spec = EndpointSpec(
        key="warezcdn",
        candidates=WAREZCDN_CANDIDATES,
        domain_pattern=re.compile(r"warezcdn", re.IGNORECASE),
        search_query="warezcdn embed filme",
    )

    def __init__(self, ctx: ProviderContext):
        self.ctx = ctx
        self.endpoint = EndpointState(current_url=WAREZCDN_CANDIDATES[0])

    async def refresh_endpoint(self) -> EndpointState:
        return await refresh_endpoint(self)

    async def fetch_catalog(self):
        return []

    async def materialize_catalog(self, items) -> int:
        return 0

    async def list_episodes(self, media):
        return []

    async def _player_url(self, host: str, embed_id: str) -> str:
        """Real embed URL via warezcdn getPlay.php redirect."""
        params = {"id": embed_id, "sv": host}
        body = await self.ctx.fetcher.get(
            f"{WAREZCDN_API}/getPlay.php",
            params=params,
            headers={"Referer": f"{WAREZCDN_API}/getEmbed.php?{urlencode(params)}"},
        )
        m = re.search(r'window\.location\.href="([^"]*)"', body)
        if not m:
            raise ExtractionError("WarezCDN: embed redirect not found")
        return m.group(1)

    async def resolve_movie_url(self, media, audio: Audio, quality: Quality):
        imdb_id = await self.ctx.tmdb.imdb_id(ContentType.MOVIE, media.id)
        if not imdb_id:
            return None
        page = await get_page(self, f"filme/{imdb_id}")
        chosen = pick_embed(parse_movie_embeds(page), audio)
        if chosen is None:
            log.info(f"[warezcdn] no {audio.value} embed for {imdb_id}")
            return None
        host, embed_id, _ = chosen
        return await self._player_url(host or "warezcdn", embed_id)

    async def resolve_series_url(self, media, season: int, episode: int, audio: Audio):
        imdb_id = await self.ctx.tmdb.imdb_id(ContentType.TV, media.id)
        if not imdb_id:
            return None
        path = f"serie/{imdb_id}/{season + 1}/{episode + 1}"
        page = await get_page(self, path)

        ep_m = re.search(r"\$\('\[data-load-episode-content=\"(\d+)\"\]'\)", page)
        if not ep_m:
            raise ExtractionError("WarezCDN: episode ID not found")

        base = self.endpoint.current_url
        raw = await self.ctx.fetcher.post(
            f"{base}/serieAjax.php",
            data={"getAudios": ep_m.group(1)},
            headers={
                "Origin": base,
                "Referer": f"{base}/{path}",
                "X-Requested-With": "XMLHttpRequest",
            },
        )
        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise ExtractionError(f"WarezCDN: bad audio list: {e}") from e
        tracks = payload.get("list", {}) if isinstance(payload, dict) else None
        if not isinstance(tracks, dict):
            raise ExtractionError(f"WarezCDN: unexpected audio list for {imdb_id} S{season}E{episode}")

        for track in tracks.values():
            if not isinstance(track, dict):
                continue
            if AUDIO_CODES.get(str(track.get("audio"))) not in (audio, None):
                continue
            for host in HOST_PREFERENCE:
                if track.get(f"{host}Status") == "3":
                    return await self._player_url(host, track["id"])
        log.info(f"[warezcdn] no {audio.value} track for {imdb_id} S{season}E{episode}")
        return None
