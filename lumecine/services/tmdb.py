"""
TMDB API client (v3, bearer auth). All listings come back in pt-BR with
absolute image URLs; lookups are memoized in a TTLCache.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Optional

from ..cache import TTLCache
from ..core.models import ContentType, TrendingType
from ..core.store import GenreData, MediaData
from ..exceptions import ExtractionError, UpstreamError
from ..providers.fetcher import Fetcher

log = logging.getLogger("lumecine.tmdb")

API_URL = "https://api.themoviedb.org/3/"
IMAGE_URL = "https://image.tmdb.org/t/p/original"
LANGUAGE = "pt-BR"

# discover/ filters per trending list
TRENDING_PARAMS = {
    TrendingType.POPULAR: {"sort_by": "popularity.desc"},
    TrendingType.TOP_RATED: {"sort_by": "vote_average.desc", "vote_count.gte": 200},
    TrendingType.THEATER: {"sort_by": "popularity.desc", "with_release_type": "2|3"},
}


def image_url(path: str | None) -> str:
    return f"{IMAGE_URL}{path}" if path else ""


def parse_date(value: str | None) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def to_media(item: dict, genres: dict[int, str] | None = None) -> MediaData:
    """Normalize a TMDB movie/tv payload (search result or details)."""
    if "genres" in item:
        genre_list = [GenreData(g["id"], g["name"]) for g in item.get("genres") or []]
    else:
        genre_list = [
            GenreData(gid, (genres or {}).get(gid, f"Genre {gid}"))
            for gid in item.get("genre_ids") or []
        ]
    return MediaData(
        id=int(item["id"]),
        title=item.get("title") or item.get("name") or "",
        description=item.get("overview") or "",
        thumbnail=image_url(item.get("backdrop_path")),
        poster=image_url(item.get("poster_path")),
        rating=round(float(item.get("vote_average") or 0), 1),
        released_at=parse_date(item.get("release_date") or item.get("first_air_date")),
        genres=genre_list,
    )


def to_media_list(items, genres: dict[int, str] | None = None) -> list[MediaData]:
    """Normalize a result list, dropping entries that are not media payloads."""
    if not isinstance(items, list):
        raise ExtractionError(f"TMDB: expected a result list, got {type(items).__name__}")
    out = []
    for item in items:
        try:
            out.append(to_media(item, genres))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.warning(f"Skipping malformed TMDB result {item!r:.80}: {e!r}")
    return out


class TmdbClient:
    def __init__(self, fetcher: Fetcher, api_key: str, *, cache_ttl: float = 6 * 3600):
        self.fetcher = fetcher
        self.headers = {"Authorization": f"Bearer {api_key}", "Accept": "application/json"}
        self.cache: TTLCache = TTLCache(cache_ttl, maxsize=5000)

    async def _get(self, path: str, params: dict | None = None, *, cached: bool = True):
        key = (path, tuple(sorted((params or {}).items())))
        if cached:
            hit = self.cache.get(key)
            if hit is not None:
                return hit
        data = await self.fetcher.get_json(path, base_url=API_URL, headers=self.headers, params=params)
        if cached:
            self.cache.set(key, data)
        return data

    async def validate_key(self) -> bool:
        try:
            await self._get("authentication", cached=False)
        except UpstreamError as e:
            log.error(f"TMDB key validation failed: {e}")
            return False
        return True

    async def list_genres(self, content_type: ContentType) -> list[GenreData]:
        data = await self._get(f"genre/{content_type.value}/list", {"language": LANGUAGE})
        return [GenreData(g["id"], g["name"]) for g in data.get("genres", [])]

    async def search(
        self, content_type: ContentType, query: str, *, page: int = 1, year: int | None = None,
    ) -> list[MediaData]:
        params = {"query": query, "page": page, "language": LANGUAGE, "include_adult": "true"}
        if year:
            params["year" if content_type == ContentType.MOVIE else "first_air_date_year"] = year
        data = await self._get(f"search/{content_type.value}", params)
        return to_media_list(data.get("results", []) if isinstance(data, dict) else None)

    async def trending(
        self, content_type: ContentType, trending: TrendingType, page: int = 1,
    ) -> list[MediaData]:
        params = {"page": page, "language": LANGUAGE, "include_adult": "false"}
        params.update(TRENDING_PARAMS.get(trending, {}))
        data = await self._get(f"discover/{content_type.value}", params, cached=False)
        return to_media_list(data.get("results", []) if isinstance(data, dict) else None)

    async def external_ids(self, content_type: ContentType, tmdb_id: int) -> dict:
        return await self._get(f"{content_type.value}/{tmdb_id}/external_ids")

    async def imdb_id(self, content_type: ContentType, tmdb_id: int) -> Optional[str]:
        try:
            data = await self.external_ids(content_type, tmdb_id)
        except UpstreamError as e:
            log.error(f"Failed to get IMDb id from TMDB: {e}")
            return None
        return data.get("imdb_id") or None

    async def details(self, content_type: ContentType, tmdb_id: int) -> Optional[MediaData]:
        try:
            data = await self._get(f"{content_type.value}/{tmdb_id}", {"language": LANGUAGE})
        except UpstreamError as e:
            if e.status == 404:
                return None
            raise
        try:
            return to_media(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ExtractionError(f"TMDB: malformed {content_type.value} {tmdb_id}: {e!r}") from e

    async def find_by_imdb_id(self, imdb_id: str) -> Optional[tuple[ContentType, int]]:
        """Map an IMDb id (tt…) to (content type, TMDB id)."""
        data = await self._get(f"find/{imdb_id}", {"external_source": "imdb_id"})
        if data.get("movie_results"):
            return ContentType.MOVIE, data["movie_results"][0]["id"]
        if data.get("tv_results"):
            return ContentType.TV, data["tv_results"][0]["id"]
        return None
