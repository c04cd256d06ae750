"""
Catalog service: media lookups, filtered listings and provider indexing.

Listings are served from in-memory snapshots of the store (reloaded by
refresh()) or, for a specific trending list, from the TrendingIndex.
"""
from __future__ import annotations
import logging
import unicodedata
from typing import Optional

from rapidfuzz import fuzz

from ..core.models import ContentType, TrendingType
from ..core.store import Store
from ..exceptions import LumeCineError
from .retry import RetryPolicy
from .trending import TrendingIndex

log = logging.getLogger("lumecine.catalog")

DEFAULT_TAKE = 25
QUERY_CUTOFF = 80


def normalize(text: str) -> str:
    """Lowercase, strip accents and surrounding whitespace."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower().strip()


def title_matches(title: str, query: str) -> bool:
    a, b = normalize(title), normalize(query)
    if not b:
        return True
    return b in a or fuzz.token_set_ratio(a, b) >= QUERY_CUTOFF


def filter_media(
    items: list,
    *,
    query: str | None = None,
    genre: str | None = None,
    skip: int = 0,
    take: int = DEFAULT_TAKE,
) -> list:
    out = items
    if query:
        out = [m for m in out if title_matches(m.title, query)]
    if genre:
        out = [m for m in out if any(g.name == genre for g in m.genres)]
    return out[skip:skip + take]


class CatalogService:
    def __init__(
        self,
        store: Store,
        tmdb,
        registry,
        index: TrendingIndex,
        *,
        retry: RetryPolicy | None = None,
    ):
        self.store = store
        self.tmdb = tmdb
        self.registry = registry
        self.index = index
        self.retry = retry or RetryPolicy()
        self.movies: list = []
        self.series: list = []

    async def refresh(self) -> None:
        log.info("Fetching providers, please wait...")
        self.movies = await self.store.list_media(ContentType.MOVIE)
        self.series = await self.store.list_media(ContentType.TV)
        log.info(f"Catalog loaded: {len(self.movies)} movies, {len(self.series)} series")

    # ── lookups ────────────────────────────

    async def get_media(self, content_type: ContentType, media_id: int):
        found = await self.store.get_media(content_type, media_id)
        if found is not None:
            return found

        log.info(f"{content_type.value} {media_id} not in database, fetching from TMDB...")
        try:
            data = await self.tmdb.details(content_type, media_id)
        except LumeCineError as e:
            log.error(f"Failed to get {content_type.value} details: {e}")
            return None
        if data is None:
            return None

        created = await self.store.upsert_media(content_type, data)
        snapshot = self.movies if content_type == ContentType.MOVIE else self.series
        if all(m.id != created.id for m in snapshot):
            snapshot.append(created)
        log.info(f"{content_type.value} {media_id} created on-demand: {created.title}")
        return created

    async def get_movie(self, movie_id: int):
        return await self.get_media(ContentType.MOVIE, movie_id)

    async def get_series(self, series_id: int):
        return await self.get_media(ContentType.TV, series_id)

    # ── listings ───────────────────────────

    def _list(self, content_type: ContentType, trending: TrendingType, **filters) -> list:
        if trending == TrendingType.ALL:
            pool = self.movies if content_type == ContentType.MOVIE else self.series
        else:
            pool = self.index.items(content_type, trending)
        return filter_media(pool, **filters)

    def list_movies(
        self,
        trending: TrendingType = TrendingType.ALL,
        query: Optional[str] = None,
        genre: Optional[str] = None,
        skip: int = 0,
        take: int = DEFAULT_TAKE,
    ) -> list:
        return self._list(ContentType.MOVIE, trending, query=query, genre=genre, skip=skip, take=take)

    def list_series(
        self,
        trending: TrendingType = TrendingType.ALL,
        query: Optional[str] = None,
        genre: Optional[str] = None,
        skip: int = 0,
        take: int = DEFAULT_TAKE,
    ) -> list:
        return self._list(ContentType.TV, trending, query=query, genre=genre, skip=skip, take=take)

    # ── provider indexing ──────────────────

    async def _index(self, provider) -> int:
        items = await provider.fetch_catalog()
        return await provider.materialize_catalog(items)

    async def index_providers(self) -> dict[str, int]:
        """fetch_catalog + materialize_catalog for every catalog provider, with retries."""
        log.info("Indexing providers, this process can take a while, please wait...")
        counts = {}
        for provider in self.registry.catalog_providers():
            label = provider.tag.value.lower()
            try:
                counts[provider.tag.value] = await self.retry.run(
                    lambda p=provider: self._index(p), label=label,
                )
            except LumeCineError as e:
                log.error(f"[{label}] indexing abandoned: {e}")
                counts[provider.tag.value] = 0
        await self.refresh()
        log.info("Providers was successfully indexed.")
        return counts
