"""
RedeCanais: scraped catalog provider.

The site publishes two link maps (movies and series). fetch_catalog walks
them; materialize_catalog matches every title against TMDB, stores the item
and leaves an already-expired stream record pointing at the provider page so
the first playback request resolves it. Series pages list episodes grouped
by "Temporada N" with one link per audio track.
"""
from __future__ import annotations
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from bs4 import BeautifulSoup
from rapidfuzz import fuzz, process

from ...core.models import Audio, ContentType, Provider, Quality
from ...exceptions import UpstreamError
from ..base import CatalogItem, EpisodeGroup, ProviderContext, Track, get_page, refresh_endpoint
from ..endpoints import EndpointSpec, EndpointState
from ..extract import extract_media_url
from ..registry import register_provider

log = logging.getLogger("lumecine.providers.redecanais")

REDECANAIS_CANDIDATES = (
    "https://redecanais.ec",
    "https://redecanais.gs",
    "https://redecanais.dev",
)
MOVIE_MAP = "mapafilmes.html"
SERIES_MAP = "mapa.html"

# Stream records created from the catalog start out expired
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MATCH_CUTOFF = 85

TITLE_RE = re.compile(
    r"^(?P<title>.+?)"
    r"(?:\s*\((?P<year>\d{4})\))?"
    r"(?:\s+-\s+(?P<audio>Dublado|Legendado|Nacional))?"
    r"(?:\s+-\s+[^-]*)?$",
    re.IGNORECASE,
)
SEASON_RE = re.compile(r"Temporada\s+(\d+)", re.IGNORECASE)
EPISODE_RE = re.compile(
    r"Epis[oó]dio\s+(\d+)(.*?)(?=Epis[oó]dio\s+\d+|$)",
    re.IGNORECASE | re.DOTALL,
)
TRACK_RE = re.compile(
    r"""<a[^>]+href=["']([^"']+)["'][^>]*>\s*(Dublado|Legendado)\s*</a>""",
    re.IGNORECASE,
)


def _audio(label: Optional[str]) -> Audio:
    if label and label.lower() == "legendado":
        return Audio.SUBTITLED
    return Audio.DUBBED


def parse_title(text: str) -> tuple[str, Optional[int], Audio]:
    m = TITLE_RE.match(text.strip())
    if not m:
        return text.strip(), None, Audio.DUBBED
    year = int(m.group("year")) if m.group("year") else None
    return m.group("title").strip(), year, _audio(m.group("audio"))


def parse_map(html: str, content_type: ContentType) -> list[CatalogItem]:
    soup = BeautifulSoup(html, "html.parser")
    items = []
    seen = set()
    for a in soup.find_all("a", href=True):
        text = a.get_text(" ", strip=True)
        href = a["href"].strip()
        if not text or href.startswith(("#", "javascript")):
            continue
        if content_type == ContentType.MOVIE and "filme" not in href.lower():
            continue
        if href in seen:
            continue
        seen.add(href)
        title, year, audio = parse_title(text)
        items.append(CatalogItem(content_type, title, href.lstrip("/"), audio, year))
    return items


def _strip_tags(fragment: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"<[^>]+>", " ", fragment)).strip(" -:")


def parse_episodes(html: str) -> list[EpisodeGroup]:
    """Season/episode numbers on the page are one-indexed; returned zero-indexed."""
    groups = []
    chunks = SEASON_RE.split(html)
    # split() yields [before, n1, body1, n2, body2, ...]
    for i in range(1, len(chunks) - 1, 2):
        season = int(chunks[i]) - 1
        for ep in EPISODE_RE.finditer(chunks[i + 1]):
            number, body = int(ep.group(1)), ep.group(2)
            head = body.split("<a", 1)[0]
            tracks = [Track(url=href.lstrip("/"), audio=_audio(label)) for href, label in TRACK_RE.findall(body)]
            if not tracks:
                continue
            groups.append(EpisodeGroup(
                title=_strip_tags(head) or f"Episódio {number}",
                season=season,
                episode=number - 1,
                tracks=tracks,
            ))
    return groups


@register_provider
class RedeCanais:
    tag = Provider.REDECANAIS
    name = "RedeCanais"
    has_catalog = True
    endpoint_spec = EndpointSpec(
        key="redecanais",
        candidates=REDECANAIS_CANDIDATES,
        domain_pattern=re.compile(r"redecanais", re.IGNORECASE),
        search_query="redecanais filmes online",
    )

    def __init__(self, ctx: ProviderContext):
        self.ctx = ctx
        self.endpoint = EndpointState(current_url=None)
        self._series_pages: dict[int, str] = {}

    async def refresh_endpoint(self) -> EndpointState:
        return await refresh_endpoint(self)

    # ── catalog ────────────────────────────

    async def fetch_catalog(self) -> list[CatalogItem]:
        items = []
        for path, content_type in ((MOVIE_MAP, ContentType.MOVIE), (SERIES_MAP, ContentType.TV)):
            html = await get_page(self, path)
            found = parse_map(html, content_type)
            log.info(f"[redecanais] {len(found)} {content_type.value} entries in {path}")
            items.extend(found)
        return items

    async def _match(self, item: CatalogItem):
        results = await self.ctx.tmdb.search(item.content_type, item.title, year=item.year)
        if not results:
            return None
        best = process.extractOne(
            item.title, {r.id: r.title for r in results},
            scorer=fuzz.WRatio, score_cutoff=MATCH_CUTOFF,
        )
        if best is None:
            return None
        return next(r for r in results if r.id == best[2])

    async def materialize_catalog(self, items) -> int:
        store = self.ctx.store
        created = 0
        for item in items:
            try:
                data = await self._match(item)
            except UpstreamError as e:
                log.warning(f"[redecanais] TMDB lookup failed for {item.title!r}: {e}")
                continue
            if data is None:
                log.debug(f"[redecanais] no TMDB match for {item.title!r}")
                continue

            media = await store.upsert_media(item.content_type, data)
            if item.content_type == ContentType.MOVIE:
                if not await store.find_movie_stream(media.id, self.tag, item.audio, Quality.UNKNOWN):
                    await store.add_movie_stream(
                        movie_id=media.id, provider=self.tag, audio=item.audio,
                        quality=Quality.UNKNOWN, access_url="", refresh_url=item.url,
                        expires_at=EPOCH,
                    )
            else:
                self._series_pages[media.id] = item.url
                try:
                    groups = await self.list_episodes(media)
                except UpstreamError as e:
                    log.warning(f"[redecanais] episodes unavailable for {item.title!r}: {e}")
                    groups = []
                for group in groups:
                    for track in group.tracks:
                        if await store.find_series_stream(
                            media.id, self.tag, group.season, group.episode, track.audio,
                        ):
                            continue
                        await store.add_series_stream(
                            series_id=media.id, provider=self.tag, season=group.season,
                            episode=group.episode, audio=track.audio, access_url="",
                            refresh_url=track.url, expires_at=EPOCH,
                        )
            created += 1
        log.info(f"[redecanais] materialized {created}/{len(items)} catalog entries")
        return created

    async def list_episodes(self, media) -> list[EpisodeGroup]:
        path = self._series_pages.get(media.id)
        if not path:
            return []
        return parse_episodes(await get_page(self, path))

    # ── streams ────────────────────────────

    async def _resolve(self, path: str) -> str:
        html = await get_page(self, path)
        return await extract_media_url(
            html, self.ctx.fetcher, page_url=f"{self.endpoint.current_url}/{path}",
        )

    async def resolve_movie_url(self, media, audio: Audio, quality: Quality):
        record = await self.ctx.store.find_movie_stream(media.id, self.tag, audio, quality)
        if record is None and quality != Quality.UNKNOWN:
            record = await self.ctx.store.find_movie_stream(media.id, self.tag, audio, Quality.UNKNOWN)
        if record is None or not record.refresh_url:
            return None
        return await self._resolve(record.refresh_url)

    async def resolve_series_url(self, media, season: int, episode: int, audio: Audio):
        record = await self.ctx.store.find_series_stream(media.id, self.tag, season, episode, audio)
        path = record.refresh_url if record is not None else None
        if not path:
            for group in await self.list_episodes(media):
                if group.season == season and group.episode == episode:
                    path = next((t.url for t in group.tracks if t.audio == audio), None)
                    break
        if not path:
            return None
        return await self._resolve(path)
