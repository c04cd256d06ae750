"""
Shared fixtures: an in-memory store and network fakes.

Nothing here touches the network. FakeFetcher answers from a route table
keyed by absolute URL; FakeTmdb serves canned MediaData.
"""
from __future__ import annotations
from datetime import datetime, timezone
from urllib.parse import urljoin

import pytest

from lumecine.config import Settings
from lumecine.core.database import create_engine, create_session_factory, init_db
from lumecine.core.models import ContentType
from lumecine.core.store import GenreData, MediaData, Store
from lumecine.exceptions import UpstreamError
from lumecine.providers.endpoints import EndpointState


class FakeFetcher:
    """Route table: url -> str | dict | list | int (HEAD status) | Exception."""

    def __init__(self, routes: dict | None = None, live: set | None = None):
        self.routes = dict(routes or {})
        self.live = set(live or ())
        self.calls: list[tuple[str, str]] = []

    def _answer(self, method: str, url: str, base_url: str | None = None):
        full = urljoin(base_url, url) if base_url else url
        self.calls.append((method, full))
        answer = self.routes.get(full)
        if answer is None:
            raise UpstreamError(f"{method} {full} -> 404", url=full, status=404)
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def get(self, url, *, base_url=None, **kwargs):
        return self._answer("GET", url, base_url)

    async def get_json(self, url, *, base_url=None, **kwargs):
        return self._answer("GET", url, base_url)

    async def post(self, url, *, base_url=None, **kwargs):
        return self._answer("POST", url, base_url)

    async def head(self, url, **kwargs):
        self.calls.append(("HEAD", url))
        return 200 if url in self.live else 404

    async def probe(self, url, *, timeout=5):
        self.calls.append(("HEAD", url))
        return url in self.live

    async def close(self):
        pass

    def requested(self, method: str = "GET") -> list[str]:
        return [u for m, u in self.calls if m == method]


class FakeTmdb:
    def __init__(self, media: dict | None = None, imdb: dict | None = None):
        # (content type, id) -> MediaData
        self.media = dict(media or {})
        # (content type, id) -> imdb id
        self.imdb = dict(imdb or {})
        self.valid = True
        self.trending_pages: dict = {}
        self.search_results: dict = {}
        self.genres: dict = {}

    async def validate_key(self):
        return self.valid

    async def details(self, content_type, tmdb_id):
        return self.media.get((content_type, tmdb_id))

    async def imdb_id(self, content_type, tmdb_id):
        return self.imdb.get((content_type, tmdb_id))

    async def find_by_imdb_id(self, imdb_id):
        for key, value in self.imdb.items():
            if value == imdb_id:
                return key
        return None

    async def search(self, content_type, query, *, page=1, year=None):
        return self.search_results.get((content_type, query), [])

    async def trending(self, content_type, trending, page=1):
        return self.trending_pages.get((content_type, trending, page), [])

    async def list_genres(self, content_type):
        return self.genres.get(content_type, [])


class FakeProvider:
    """Scripted provider: `answers` is a list of str / None / Exception, consumed in order."""

    has_catalog = False

    def __init__(self, tag, answers=None, episodes=None):
        self.tag = tag
        self.name = tag.value.title()
        self.endpoint = EndpointState(current_url="https://fake.test")
        self.answers = list(answers or [])
        self.episodes = list(episodes or [])
        self.calls = []

    def _next(self, call):
        self.calls.append(call)
        answer = self.answers.pop(0) if self.answers else None
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def refresh_endpoint(self):
        return self.endpoint

    async def fetch_catalog(self):
        return []

    async def materialize_catalog(self, items):
        return 0

    async def list_episodes(self, media):
        return self.episodes

    async def resolve_movie_url(self, media, audio, quality):
        return self._next(("movie", media.id, audio, quality))

    async def resolve_series_url(self, media, season, episode, audio):
        return self._next(("series", media.id, season, episode, audio))


def make_media(media_id: int, title: str, genres=(), rating: float = 7.0) -> MediaData:
    return MediaData(
        id=media_id,
        title=title,
        description=f"{title} overview",
        poster=f"https://image.test/{media_id}.jpg",
        rating=rating,
        released_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
        genres=[GenreData(gid, name) for gid, name in genres],
    )


@pytest.fixture
async def store():
    engine = create_engine("sqlite+aiosqlite://")
    await init_db(engine)
    yield Store(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def tmdb():
    return FakeTmdb(
        media={
            (ContentType.MOVIE, 603): make_media(603, "Matrix", [(28, "Ação"), (878, "Ficção científica")]),
            (ContentType.TV, 1396): make_media(1396, "Breaking Bad", [(18, "Drama")]),
        },
        imdb={
            (ContentType.MOVIE, 603): "tt0133093",
            (ContentType.TV, 1396): "tt0903747",
        },
    )


@pytest.fixture
def settings():
    return Settings(
        tmdb_key="test-key",
        database_url="sqlite+aiosqlite://",
        providers_url="https://overrides.test/raw",
        app_url="http://testserver",
        proxy_url="https://proxy.test/",
    )
