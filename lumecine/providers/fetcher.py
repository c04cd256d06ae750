"""
HTTP fetcher shared by providers, the endpoint resolver and the upstream
API clients. Wraps aiohttp with common defaults, headers, timeouts and
optional proxy support. Every failure (connection error, timeout, non-2xx)
surfaces as UpstreamError so callers only catch one thing.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urljoin

import aiohttp

from ..exceptions import UpstreamError

log = logging.getLogger("lumecine.fetcher")

DEFAULT_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class Fetcher:
    def __init__(self, *, timeout: int = 10, proxy: str | None = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=4)
        self.proxy = proxy
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"User-Agent": DEFAULT_UA},
                connector=aiohttp.TCPConnector(ssl=False),
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def _timeout(self, timeout: float | None) -> aiohttp.ClientTimeout | None:
        return aiohttp.ClientTimeout(total=timeout) if timeout else None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        base_url: str | None = None,
        headers: dict | None = None,
        params: dict | None = None,
        data: Any = None,
        json_body: Any = None,
        timeout: float | None = None,
        follow_redirects: bool = True,
        parse: str = "text",
    ) -> Any:
        full = urljoin(base_url, url) if base_url else url
        session = await self._get_session()
        try:
            async with session.request(
                method,
                full,
                headers=headers or {},
                params=params,
                data=data,
                json=json_body,
                allow_redirects=follow_redirects,
                proxy=self.proxy,
                timeout=self._timeout(timeout),
            ) as resp:
                if resp.status >= 400:
                    raise UpstreamError(f"{method} {full} -> {resp.status}", url=full, status=resp.status)
                if parse == "json":
                    return await resp.json(content_type=None)
                if parse == "status":
                    return resp.status
                return await resp.text()
        except UpstreamError:
            raise
        except asyncio.TimeoutError:
            raise UpstreamError(f"{method} {full} timed out", url=full) from None
        except (aiohttp.ClientError, ValueError) as e:
            raise UpstreamError(f"{method} {full} failed: {e}", url=full) from e

    # ── convenience methods ──────────────────

    async def get(self, url: str, **kwargs) -> str:
        return await self._request("GET", url, **kwargs)

    async def get_json(self, url: str, **kwargs) -> dict | list:
        return await self._request("GET", url, parse="json", **kwargs)

    async def post(self, url: str, **kwargs) -> str:
        return await self._request("POST", url, **kwargs)

    async def head(self, url: str, **kwargs) -> int:
        """Returns status code."""
        return await self._request("HEAD", url, parse="status", **kwargs)

    async def probe(self, url: str, *, timeout: float = 5) -> bool:
        """Lightweight liveness check: HEAD answered with 200 <= status < 400."""
        try:
            status = await self.head(url, timeout=timeout)
        except UpstreamError as e:
            log.debug("probe %s failed: %s", url, e)
            return False
        return 200 <= status < 400
