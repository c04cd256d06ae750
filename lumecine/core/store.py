"""
Persistent store: every read/write the services issue against the database.

Each public coroutine is one unit of work (own session, committed before it
returns). Units are serialized by a single asyncio.Lock so bounded-concurrency
workers never interleave transactions on the same SQLite connection.
"""
from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import (
    Audio, ContentType, Movie, MovieGenre, MovieStream, Provider, Quality,
    Series, SeriesGenre, SeriesStream,
)

log = logging.getLogger("lumecine.store")

StreamRecord = Union[MovieStream, SeriesStream]
MediaItem = Union[Movie, Series]


@dataclass
class GenreData:
    id: int
    name: str


@dataclass
class MediaData:
    """Upstream item ready to be materialized (image paths already absolute)."""
    id: int
    title: str
    description: str = ""
    thumbnail: str = ""
    poster: str = ""
    rating: float = 0.0
    released_at: Optional[datetime] = None
    genres: list[GenreData] = field(default_factory=list)


def _tables(content_type: ContentType):
    if content_type == ContentType.MOVIE:
        return Movie, MovieGenre
    return Series, SeriesGenre


class Store:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _unit(self) -> AsyncIterator[AsyncSession]:
        async with self._lock:
            async with self._session_factory() as session:
                try:
                    yield session
                except Exception:
                    await session.rollback()
                    raise

    # ── media ──────────────────────────────

    async def get_media(self, content_type: ContentType, media_id: int) -> Optional[MediaItem]:
        model, _ = _tables(content_type)
        async with self._unit() as session:
            return await session.get(model, media_id)

    async def get_movie(self, movie_id: int) -> Optional[Movie]:
        return await self.get_media(ContentType.MOVIE, movie_id)

    async def get_series(self, series_id: int) -> Optional[Series]:
        return await self.get_media(ContentType.TV, series_id)

    async def list_media(self, content_type: ContentType) -> list[MediaItem]:
        model, _ = _tables(content_type)
        async with self._unit() as session:
            result = await session.execute(select(model).order_by(model.rating.desc()))
            return list(result.scalars().all())

    async def upsert_media(self, content_type: ContentType, data: MediaData) -> MediaItem:
        """Insert an item unless one with the same upstream id exists.

        Genres are created first (existing genres are left untouched), so the
        item never references a genre row that does not exist.
        """
        model, genre_model = _tables(content_type)
        async with self._unit() as session:
            found = await session.get(model, data.id)
            if found is not None:
                return found

            genres = []
            seen = set()
            for genre in data.genres:
                if genre.id in seen:
                    continue
                seen.add(genre.id)
                row = await session.get(genre_model, genre.id)
                if row is None:
                    row = genre_model(id=genre.id, name=genre.name)
                    session.add(row)
                genres.append(row)

            item = model(
                id=data.id,
                title=data.title,
                description=data.description,
                thumbnail=data.thumbnail,
                poster=data.poster,
                rating=data.rating,
                released_at=data.released_at,
                genres=genres,
            )
            session.add(item)
            await session.commit()
            log.debug("Materialized %s %s: %s", content_type.value, data.id, data.title)
            return item

    async def upsert_genres(self, content_type: ContentType, genres: list[GenreData]) -> None:
        """Create or rename genres (used with the upstream genre listing)."""
        _, genre_model = _tables(content_type)
        async with self._unit() as session:
            for genre in genres:
                row = await session.get(genre_model, genre.id)
                if row is None:
                    session.add(genre_model(id=genre.id, name=genre.name))
                elif row.name != genre.name:
                    row.name = genre.name
            await session.commit()

    async def count(self, model) -> int:
        async with self._unit() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    # ── stream records ─────────────────────

    async def find_movie_stream(
        self, movie_id: int, provider: Provider, audio: Audio, quality: Quality,
    ) -> Optional[MovieStream]:
        async with self._unit() as session:
            result = await session.execute(
                select(MovieStream).where(
                    MovieStream.movie_id == movie_id,
                    MovieStream.provider == provider,
                    MovieStream.audio == audio,
                    MovieStream.quality == quality,
                )
            )
            return result.scalars().first()

    async def find_series_stream(
        self, series_id: int, provider: Provider, season: int, episode: int, audio: Audio,
    ) -> Optional[SeriesStream]:
        async with self._unit() as session:
            result = await session.execute(
                select(SeriesStream).where(
                    SeriesStream.series_id == series_id,
                    SeriesStream.provider == provider,
                    SeriesStream.season == season,
                    SeriesStream.episode == episode,
                    SeriesStream.audio == audio,
                )
            )
            return result.scalars().first()

    async def movie_streams(self, movie_id: int) -> list[MovieStream]:
        async with self._unit() as session:
            result = await session.execute(
                select(MovieStream).where(MovieStream.movie_id == movie_id)
            )
            return list(result.scalars().all())

    async def series_streams(self, series_id: int, season: int, episode: int) -> list[SeriesStream]:
        async with self._unit() as session:
            result = await session.execute(
                select(SeriesStream).where(
                    SeriesStream.series_id == series_id,
                    SeriesStream.season == season,
                    SeriesStream.episode == episode,
                )
            )
            return list(result.scalars().all())

    async def add_movie_stream(
        self, *, movie_id: int, provider: Provider, audio: Audio, quality: Quality,
        access_url: str, refresh_url: str, expires_at: datetime,
    ) -> MovieStream:
        async with self._unit() as session:
            result = await session.execute(
                select(MovieStream).where(
                    MovieStream.movie_id == movie_id,
                    MovieStream.provider == provider,
                    MovieStream.audio == audio,
                    MovieStream.quality == quality,
                )
            )
            record = result.scalars().first()
            if record is None:
                record = MovieStream(
                    movie_id=movie_id, provider=provider, audio=audio, quality=quality,
                )
                session.add(record)
            record.access_url = access_url
            record.refresh_url = refresh_url
            record.expires_at = expires_at
            await session.commit()
            return record

    async def add_series_stream(
        self, *, series_id: int, provider: Provider, season: int, episode: int, audio: Audio,
        access_url: str, refresh_url: str, expires_at: datetime,
    ) -> SeriesStream:
        async with self._unit() as session:
            result = await session.execute(
                select(SeriesStream).where(
                    SeriesStream.series_id == series_id,
                    SeriesStream.provider == provider,
                    SeriesStream.season == season,
                    SeriesStream.episode == episode,
                    SeriesStream.audio == audio,
                )
            )
            record = result.scalars().first()
            if record is None:
                record = SeriesStream(
                    series_id=series_id, provider=provider, season=season,
                    episode=episode, audio=audio,
                )
                session.add(record)
            record.access_url = access_url
            record.refresh_url = refresh_url
            record.expires_at = expires_at
            await session.commit()
            return record

    async def update_stream(self, record: StreamRecord, access_url: str, expires_at: datetime) -> StreamRecord:
        """Refresh a record in place: same id, new URL and expiry."""
        async with self._unit() as session:
            row = await session.get(type(record), record.id)
            if row is None:
                raise LookupError(f"stream record {record.id} vanished")
            row.access_url = access_url
            row.expires_at = expires_at
            await session.commit()
        record.access_url = access_url
        record.expires_at = expires_at
        return record

    async def get_stream(self, stream_id: str) -> Optional[StreamRecord]:
        async with self._unit() as session:
            record = await session.get(MovieStream, stream_id)
            if record is not None:
                return record
            return await session.get(SeriesStream, stream_id)
