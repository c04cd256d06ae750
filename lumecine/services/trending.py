"""
Trending catalog sync.

load() pulls PAGES pages of every trending list from TMDB through a pool of
at most CONCURRENCY pages in flight. Per page it fetches, in parallel:
movie+tv POPULAR, movie+tv TOP_RATED and movie THEATER. A page that fails is
logged and contributes nothing.

save() materializes the results into the store (genres first) under the same
cap, registers each stored item in a fresh TrendingIndex and swaps it in
once complete, so readers see either the previous lists or the new ones.
"""
from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from ..core.models import ContentType, TrendingType
from ..core.store import MediaData, Store
from ..exceptions import LumeCineError

log = logging.getLogger("lumecine.trending")

CONCURRENCY_LIMIT = 25
PAGES_TO_FETCH = 100

TRENDING_LABELS = {
    TrendingType.ALL: "Todos",
    TrendingType.POPULAR: "Em alta",
    TrendingType.TOP_RATED: "Mais avaliados",
    TrendingType.THEATER: "Lançamentos",
}

# (content type, list) pairs fetched for every page
PAGE_LISTS = (
    (ContentType.MOVIE, TrendingType.POPULAR),
    (ContentType.TV, TrendingType.POPULAR),
    (ContentType.MOVIE, TrendingType.TOP_RATED),
    (ContentType.TV, TrendingType.TOP_RATED),
    (ContentType.MOVIE, TrendingType.THEATER),
)

T = TypeVar("T")


async def bounded_gather(
    items: Iterable[T],
    worker: Callable[[T], Awaitable],
    limit: int,
) -> list:
    """Run `worker` over `items` with at most `limit` in flight, results in input order."""
    sem = asyncio.Semaphore(limit)

    async def _run(item):
        async with sem:
            return await worker(item)

    return await asyncio.gather(*(_run(item) for item in items))


@dataclass
class TrendingItem:
    content_type: ContentType
    trending: TrendingType
    data: MediaData


@dataclass
class TrendingEntry:
    trending: TrendingType
    item: object                        # stored Movie / Series


@dataclass
class SyncReport:
    pages: int = 0
    failed_pages: list[int] = field(default_factory=list)
    fetched: int = 0
    saved: int = 0
    failed_items: int = 0
    seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "pages": self.pages,
            "failed_pages": self.failed_pages,
            "fetched": self.fetched,
            "saved": self.saved,
            "failed_items": self.failed_items,
            "seconds": round(self.seconds, 2),
        }


class TrendingIndex:
    """In-memory map (trending, media id) -> entry, one per content type."""

    def __init__(self):
        self._entries: dict[ContentType, dict[tuple[TrendingType, int], TrendingEntry]] = {
            ContentType.MOVIE: {},
            ContentType.TV: {},
        }

    def clear(self) -> None:
        for entries in self._entries.values():
            entries.clear()

    def swap(self, other: TrendingIndex) -> None:
        """Take over `other`'s entries in one step, readers never see a partial set."""
        self._entries = other._entries

    def put(self, content_type: ContentType, trending: TrendingType, item) -> None:
        self._entries[content_type][(trending, item.id)] = TrendingEntry(trending, item)

    def get(self, content_type: ContentType, trending: TrendingType, media_id: int) -> Optional[TrendingEntry]:
        return self._entries[content_type].get((trending, media_id))

    def items(self, content_type: ContentType, trending: TrendingType = TrendingType.ALL) -> list:
        """Stored items in insertion order, unique by id."""
        seen = set()
        out = []
        for (kind, media_id), entry in self._entries[content_type].items():
            if trending != TrendingType.ALL and kind != trending:
                continue
            if media_id in seen:
                continue
            seen.add(media_id)
            out.append(entry.item)
        return out

    def ids(self, content_type: ContentType, trending: TrendingType = TrendingType.ALL) -> set[int]:
        return {item.id for item in self.items(content_type, trending)}

    def __len__(self) -> int:
        return sum(len(e) for e in self._entries.values())


class CatalogSynchronizer:
    def __init__(
        self,
        tmdb,
        store: Store,
        index: TrendingIndex,
        *,
        pages: int = PAGES_TO_FETCH,
        concurrency: int = CONCURRENCY_LIMIT,
    ):
        self.tmdb = tmdb
        self.store = store
        self.index = index
        self.pages = pages
        self.concurrency = concurrency

    async def _load_page(self, page: int) -> list[TrendingItem]:
        results = await asyncio.gather(
            *(self.tmdb.trending(content_type, trending, page) for content_type, trending in PAGE_LISTS),
            return_exceptions=True,
        )
        for found in results:
            if isinstance(found, BaseException):
                raise found
        items = []
        for (content_type, trending), found in zip(PAGE_LISTS, results):
            items.extend(TrendingItem(content_type, trending, data) for data in found)
        return items

    async def load(
        self,
        report: SyncReport | None = None,
        on_page: Callable[[int], None] | None = None,
    ) -> list[TrendingItem]:
        report = report if report is not None else SyncReport()

        async def _page(page: int) -> list[TrendingItem]:
            try:
                return await self._load_page(page)
            except LumeCineError as e:
                log.warning(f"Trending page {page} failed: {e}")
                report.failed_pages.append(page)
                return []
            except Exception:
                log.exception(f"Trending page {page} failed unexpectedly")
                report.failed_pages.append(page)
                return []
            finally:
                if on_page is not None:
                    on_page(page)

        pages = await bounded_gather(range(1, self.pages + 1), _page, self.concurrency)
        items = [item for found in pages for item in found]
        report.pages = self.pages
        report.fetched = len(items)
        report.failed_pages.sort()
        log.info(f"Loaded {len(items)} trending items from {self.pages} pages")
        return items

    async def save(self, items: list[TrendingItem], report: SyncReport | None = None) -> int:
        report = report if report is not None else SyncReport()
        staging = TrendingIndex()

        async def _save(entry: TrendingItem) -> bool:
            try:
                stored = await self.store.get_media(entry.content_type, entry.data.id)
                if stored is None:
                    stored = await self.store.upsert_media(entry.content_type, entry.data)
            except Exception as e:
                log.warning(f"Could not store {entry.content_type.value} {entry.data.id}: {e}")
                report.failed_items += 1
                return False
            staging.put(entry.content_type, entry.trending, stored)
            return True

        saved = sum(await bounded_gather(items, _save, self.concurrency))
        self.index.swap(staging)
        report.saved = saved
        return saved

    async def sync_genres(self) -> None:
        """Give upstream genre names to the genre rows (trending payloads carry ids only)."""
        for content_type in (ContentType.MOVIE, ContentType.TV):
            try:
                genres = await self.tmdb.list_genres(content_type)
            except LumeCineError as e:
                log.warning(f"Genre list for {content_type.value} unavailable: {e}")
                continue
            await self.store.upsert_genres(content_type, genres)

    async def sync(self, on_page: Callable[[int], None] | None = None) -> SyncReport:
        log.info("Syncing trendings with tmdb, please wait...")
        start = time.monotonic()
        report = SyncReport()
        items = await self.load(report, on_page=on_page)
        await self.save(items, report)
        await self.sync_genres()
        report.seconds = time.monotonic() - start
        log.info(
            f"Trending sync done: {report.saved}/{report.fetched} items, "
            f"{len(report.failed_pages)} failed pages, {report.seconds:.1f}s"
        )
        return report
