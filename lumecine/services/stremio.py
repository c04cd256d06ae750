"""
Stremio addon helpers: stream ids in and stream descriptors out.

Accepted ids:
    lumecine:<tmdb id>                  movie
    lumecine:<tmdb id>.<season>.<ep>    episode, zero-indexed like our records
    tt1234567                           movie, by IMDb id
    tt1234567:<season>:<ep>             episode, by IMDb id, one-indexed (Cinemeta)
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from ..core.models import Audio, Provider, Quality
from .streams import StreamLink

ID_PREFIX = "lumecine:"

AUDIO_LABELS = {Audio.DUBBED: "Dublado", Audio.SUBTITLED: "Legendado"}
QUALITY_LABELS = {
    Quality.UNKNOWN: "",
    Quality.SD: "SD",
    Quality.HD: "HD",
    Quality.FULL_HD: "1080p",
}
PROVIDER_LABELS = {
    Provider.SUPERFLIXAPI: "SuperflixAPI",
    Provider.REDECANAIS: "RedeCanais",
    Provider.WAREZCDN: "WarezCDN",
}

_INTERNAL_RE = re.compile(r"^(\d+)(?:\.(\d+)\.(\d+))?$")
_IMDB_RE = re.compile(r"^(tt\d+)(?::(\d+):(\d+))?$")


@dataclass(frozen=True)
class StreamRequest:
    tmdb_id: Optional[int] = None
    imdb_id: Optional[str] = None
    season: Optional[int] = None          # zero-indexed
    episode: Optional[int] = None         # zero-indexed

    @property
    def is_episode(self) -> bool:
        return self.season is not None


def parse_stream_id(raw: str) -> Optional[StreamRequest]:
    """Parse an addon stream id, None when it is not one of ours."""
    raw = raw.strip()
    if raw.endswith(".json"):
        raw = raw[:-5]

    if raw.startswith(ID_PREFIX):
        m = _INTERNAL_RE.match(raw[len(ID_PREFIX):].lstrip(":"))
        if not m:
            return None
        tmdb_id, season, episode = m.groups()
        if season is None:
            return StreamRequest(tmdb_id=int(tmdb_id))
        return StreamRequest(tmdb_id=int(tmdb_id), season=int(season), episode=int(episode))

    m = _IMDB_RE.match(raw)
    if not m:
        return None
    imdb_id, season, episode = m.groups()
    if season is None:
        return StreamRequest(imdb_id=imdb_id)
    return _with_episode(StreamRequest(imdb_id=imdb_id), season, episode)


def _with_episode(req: StreamRequest, season: str, episode: str) -> Optional[StreamRequest]:
    s, e = int(season), int(episode)
    if s < 1 or e < 1:
        return None
    return StreamRequest(req.tmdb_id, req.imdb_id, s - 1, e - 1)


def watch_url(app_url: str, stream_id: str) -> str:
    return f"{app_url}/stream/watch/{quote(stream_id)}"


def proxied(proxy_url: str | None, url: str) -> str:
    if not proxy_url:
        return url
    return f"{proxy_url}?url={quote(url, safe='')}"


def describe(link: StreamLink, app_url: str, title: str) -> dict:
    audio = AUDIO_LABELS.get(link.audio, link.audio.value)
    quality = QUALITY_LABELS.get(link.quality, "") if link.quality else ""
    name = f"LumeCine\n{quality}" if quality else "LumeCine"
    return {
        "name": name,
        "title": f"{title}\n{PROVIDER_LABELS.get(link.provider, link.provider.value)} | {audio}",
        "url": watch_url(app_url, link.id),
        "behaviorHints": {
            "notWebReady": False,
            "bingeGroup": f"lumecine-{link.provider.value.lower()}-{link.audio.value.lower()}",
        },
    }
