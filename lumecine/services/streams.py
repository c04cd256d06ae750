"""
Stream resolution orchestrator.

Turns (media, season, episode, audio, quality) into a playable URL, backed by
persistent stream records with an expiry:

  fresh record     -> stored URL, no network
  expired record   -> ask the provider; on success update the same record,
                      on failure keep the stale record and return None
  no record        -> ask the provider; insert only on success

Provider faults are contained here: one failing provider never stops the
others from being tried.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from ..core.models import Audio, MovieStream, Provider, Quality, SeriesStream, utcnow
from ..core.store import Store
from ..exceptions import LumeCineError
from ..providers.registry import ProviderRegistry

log = logging.getLogger("lumecine.streams")

DEFAULT_AUDIO = Audio.DUBBED
DEFAULT_QUALITY = Quality.UNKNOWN
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class StreamLink:
    id: str
    provider: Provider
    audio: Audio
    url: str
    quality: Optional[Quality] = None
    fresh: bool = True


def is_fresh(record, now: datetime) -> bool:
    return bool(record.access_url) and record.expires_at > now


def _link(record, now: datetime, quality: Optional[Quality] = None) -> StreamLink:
    return StreamLink(
        record.id, record.provider, record.audio, record.access_url, quality, is_fresh(record, now),
    )


class StreamOrchestrator:
    def __init__(
        self,
        store: Store,
        registry: ProviderRegistry,
        *,
        stream_ttl: int = 3600,
        resolve_timeout: float = 30,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.stream_ttl = stream_ttl
        self.resolve_timeout = resolve_timeout
        self._clock = clock

    def _expiry(self) -> datetime:
        return self._clock() + timedelta(seconds=self.stream_ttl)

    async def _attempt(self, label: str, fn: Callable[[], Awaitable], what: str = "resolution"):
        try:
            return await asyncio.wait_for(fn(), timeout=self.resolve_timeout)
        except asyncio.TimeoutError:
            log.warning(f"[{label}] {what} timed out")
        except LumeCineError as e:
            log.warning(f"[{label}] {what} failed: {e}")
        except Exception:
            log.exception(f"[{label}] unexpected provider error during {what}")
        return None

    # ── movies ─────────────────────────────

    async def movie_record(self, provider, movie, audio: Audio, quality: Quality) -> Optional[MovieStream]:
        record = await self.store.find_movie_stream(movie.id, provider.tag, audio, quality)
        if record is not None and is_fresh(record, self._clock()):
            return record

        label = provider.tag.value.lower()
        url = await self._attempt(label, lambda: provider.resolve_movie_url(movie, audio, quality))
        if not url:
            return None

        if record is not None:
            return await self.store.update_stream(record, url, self._expiry())
        log.info(f"[{label}] new stream for movie {movie.id} ({audio.value}/{quality.value})")
        return await self.store.add_movie_stream(
            movie_id=movie.id, provider=provider.tag, audio=audio, quality=quality,
            access_url=url, refresh_url=str(movie.id), expires_at=self._expiry(),
        )

    async def movie_url(self, provider, movie, audio: Audio, quality: Quality) -> Optional[str]:
        record = await self.movie_record(provider, movie, audio, quality)
        return record.access_url if record is not None else None

    async def movie_streams(self, movie) -> list[StreamLink]:
        """Stored records plus on-demand resolution for providers without one.

        Stored records are listed as they are; an expired one is refreshed
        when it is played (watch_url).
        """
        stored = await self.store.movie_streams(movie.id)
        now = self._clock()
        links = [_link(r, now, r.quality) for r in stored if r.provider in self.registry]
        for provider in self.registry:
            if any(r.provider == provider.tag for r in stored):
                continue
            record = await self.movie_record(provider, movie, DEFAULT_AUDIO, DEFAULT_QUALITY)
            if record is not None:
                links.append(_link(record, now, record.quality))
        return links

    # ── series ─────────────────────────────

    async def series_record(
        self, provider, series, season: int, episode: int, audio: Audio,
    ) -> Optional[SeriesStream]:
        record = await self.store.find_series_stream(series.id, provider.tag, season, episode, audio)
        if record is not None and is_fresh(record, self._clock()):
            return record

        label = provider.tag.value.lower()
        url = await self._attempt(
            label, lambda: provider.resolve_series_url(series, season, episode, audio),
        )
        if not url:
            return None

        if record is not None:
            return await self.store.update_stream(record, url, self._expiry())
        log.info(f"[{label}] new stream for series {series.id} S{season}E{episode} ({audio.value})")
        return await self.store.add_series_stream(
            series_id=series.id, provider=provider.tag, season=season, episode=episode,
            audio=audio, access_url=url, refresh_url=f"{series.id}/{season}/{episode}",
            expires_at=self._expiry(),
        )

    async def series_url(self, provider, series, season: int, episode: int, audio: Audio) -> Optional[str]:
        record = await self.series_record(provider, series, season, episode, audio)
        return record.access_url if record is not None else None

    async def series_streams(self, series, season: int, episode: int) -> list[StreamLink]:
        """Same as movie_streams. Providers that list episodes get an expired
        record per track, resolved on first playback."""
        stored = await self.store.series_streams(series.id, season, episode)
        now = self._clock()
        links = [_link(r, now) for r in stored if r.provider in self.registry]
        for provider in self.registry:
            if any(r.provider == provider.tag for r in stored):
                continue
            label = provider.tag.value.lower()
            tracks = await self._episode_tracks(provider, series, season, episode)
            first_per_audio = {}
            for track in tracks:
                first_per_audio.setdefault(track.audio, track)
            for track in first_per_audio.values():
                record = await self.store.add_series_stream(
                    series_id=series.id, provider=provider.tag, season=season, episode=episode,
                    audio=track.audio, access_url="", refresh_url=track.url, expires_at=EPOCH,
                )
                links.append(_link(record, now))
            if tracks:
                log.info(f"[{label}] {len(tracks)} tracks for series {series.id} S{season}E{episode}")
                continue
            record = await self.series_record(provider, series, season, episode, DEFAULT_AUDIO)
            if record is not None:
                links.append(_link(record, now))
        return links

    async def _episode_tracks(self, provider, series, season: int, episode: int):
        label = provider.tag.value.lower()
        groups = await self._attempt(label, lambda: provider.list_episodes(series), "episode listing")
        for group in groups or []:
            if group.season == season and group.episode == episode:
                return group.tracks
        return []

    # ── playback ───────────────────────────

    async def watch_url(self, stream_id: str) -> Optional[str]:
        """Current URL for a stored record, refreshed first when expired."""
        record = await self.store.get_stream(stream_id)
        if record is None:
            return None
        if is_fresh(record, self._clock()):
            return record.access_url

        provider = self.registry.get(record.provider)
        if provider is None:
            log.warning(f"stream {stream_id} belongs to unregistered provider {record.provider}")
            return None

        if isinstance(record, MovieStream):
            movie = await self.store.get_movie(record.movie_id)
            if movie is None:
                return None
            return await self.movie_url(provider, movie, record.audio, record.quality)

        series = await self.store.get_series(record.series_id)
        if series is None:
            return None
        return await self.series_url(provider, series, record.season, record.episode, record.audio)
