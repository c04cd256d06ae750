"""
OMDb client. Optional: without OMDB_KEY every lookup returns None.
"""
from __future__ import annotations
import logging
from typing import Optional

from ..cache import TTLCache
from ..exceptions import UpstreamError
from ..providers.fetcher import Fetcher

log = logging.getLogger("lumecine.omdb")

OMDB_API_URL = "https://www.omdbapi.com/"
CACHE_TTL = 24 * 60 * 60


class OmdbClient:
    def __init__(self, fetcher: Fetcher, api_key: str | None):
        self.fetcher = fetcher
        self.api_key = api_key
        self.search_cache: TTLCache = TTLCache(CACHE_TTL)
        self.details_cache: TTLCache = TTLCache(CACHE_TTL)
        if api_key:
            log.info("OMDB API configured successfully")
        else:
            log.warning("OMDB API key not configured - OMDB features disabled")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _query(self, params: dict) -> Optional[dict]:
        try:
            data = await self.fetcher.get_json(OMDB_API_URL, params={"apikey": self.api_key, **params})
        except UpstreamError as e:
            log.error(f"OMDB request failed: {e}")
            return None
        if data.get("Response") == "True":
            return data
        if data.get("Error"):
            log.debug(f"OMDB error: {data['Error']}")
        return None

    async def search_by_title(
        self, title: str, type: str | None = None, year: int | None = None,
    ) -> list[dict]:
        """`Search` results for a title, optionally narrowed to movie/series and year."""
        if not self.api_key:
            return []
        key = f"search:{title}:{type or 'all'}:{year or 'any'}"
        cached = self.search_cache.get(key)
        if cached is not None:
            log.debug(f"Cache hit for search: {title}")
            return cached

        params = {"s": title}
        if type:
            params["type"] = type
        if year:
            params["y"] = year
        data = await self._query(params)
        results = data.get("Search", []) if data else []
        if data is not None:
            self.search_cache.set(key, results)
        return results

    async def get_by_imdb_id(self, imdb_id: str) -> Optional[dict]:
        if not self.api_key:
            return None
        key = f"details:{imdb_id}"
        cached = self.details_cache.get(key)
        if cached is not None:
            log.debug(f"Cache hit for IMDB ID: {imdb_id}")
            return cached

        data = await self._query({"i": imdb_id, "plot": "full"})
        if data is not None:
            self.details_cache.set(key, data)
        return data
