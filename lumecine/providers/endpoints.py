"""
Endpoint resolver: keeps each provider pointed at a domain that answers.

Provider sites move between domains all the time. Resolution walks an
ordered list of strategies and stops at the first one that yields a live
base URL:

  1. current    the URL we already hold still answers a HEAD probe
  2. override   operator-maintained `provider=url` document (PROVIDERS_URL)
  3. static     hardcoded list of historically valid domains
  4. duckduckgo search-engine discovery, filtered by the provider's domain pattern
  5. bing       same, against the fallback engine

If every strategy misses, the old URL stays in place and the provider keeps
running degraded until the next attempt. The result is advisory: callers must
still tolerate request failures right after a successful resolution.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional, Pattern, Protocol
from urllib.parse import parse_qs, quote_plus, urlparse

from bs4 import BeautifulSoup

from ..exceptions import UpstreamError
from .fetcher import Fetcher

log = logging.getLogger("lumecine.providers.endpoints")

_OVERRIDE_LINE = re.compile(r"^(\w+)=(https?://\S+)$", re.IGNORECASE)


@dataclass(frozen=True)
class EndpointState:
    current_url: Optional[str]
    last_verified_at: Optional[datetime] = None
    discovery_source: str = "default"


@dataclass(frozen=True)
class EndpointSpec:
    """Static knowledge about where a provider may live."""
    key: str                                  # key in the override document
    candidates: tuple[str, ...] = ()
    domain_pattern: Optional[Pattern[str]] = None
    search_query: Optional[str] = None


def parse_provider_urls(text: str) -> dict[str, str]:
    """Parse `KEY=https://host` lines. Keys are lowercased, trailing slash dropped."""
    urls: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        m = _OVERRIDE_LINE.match(line)
        if not m:
            log.debug("skipping malformed override line: %r", line)
            continue
        key, url = m.groups()
        urls[key.lower()] = url.rstrip("/")
    return urls


class ProviderUrls:
    """The centralized override document, fetched over HTTP with a short timeout."""

    def __init__(self, fetcher: Fetcher, source_url: str, *, timeout: float = 10):
        self.fetcher = fetcher
        self.source_url = source_url
        self.timeout = timeout
        self._urls: dict[str, str] = {}
        self._loaded = False

    async def fetch(self) -> dict[str, str]:
        log.info("Fetching provider URLs from: %s", self.source_url)
        try:
            text = await self.fetcher.get(self.source_url, timeout=self.timeout)
        except UpstreamError as e:
            log.error("Failed to fetch provider URLs: %s", e)
            return self._urls
        self._urls = parse_provider_urls(text)
        self._loaded = True
        for key, url in self._urls.items():
            log.info("Loaded URL for %s: %s", key, url)
        log.info("Successfully loaded %d provider URLs", len(self._urls))
        return self._urls

    async def refresh(self) -> dict[str, str]:
        self._urls = {}
        self._loaded = False
        return await self.fetch()

    async def get(self, key: str) -> Optional[str]:
        if not self._loaded:
            await self.fetch()
        return self._urls.get(key.lower())


# ──────────────────────────────
#  Strategies
# ──────────────────────────────
class Strategy(Protocol):
    name: str

    async def find(self, spec: EndpointSpec, state: EndpointState) -> Optional[str]:
        ...


class CurrentUrl:
    name = "current"

    def __init__(self, fetcher: Fetcher, *, timeout: float = 5):
        self.fetcher = fetcher
        self.timeout = timeout

    async def find(self, spec, state):
        if state.current_url and await self.fetcher.probe(state.current_url, timeout=self.timeout):
            return state.current_url
        return None


class OverrideList:
    name = "override"

    def __init__(self, fetcher: Fetcher, urls: ProviderUrls, *, timeout: float = 5):
        self.fetcher = fetcher
        self.urls = urls
        self.timeout = timeout

    async def find(self, spec, state):
        url = await self.urls.get(spec.key)
        if url and await self.fetcher.probe(url, timeout=self.timeout):
            return url
        return None


class StaticCandidates:
    name = "static"

    def __init__(self, fetcher: Fetcher, *, timeout: float = 5):
        self.fetcher = fetcher
        self.timeout = timeout

    async def find(self, spec, state):
        for url in spec.candidates:
            url = url.rstrip("/")
            if url == state.current_url:
                continue                      # already probed by `current`
            if await self.fetcher.probe(url, timeout=self.timeout):
                return url
        return None


def search_result_links(html: str) -> list[str]:
    """Pull outbound result links out of a search-engine results page.

    DuckDuckGo wraps targets as /l/?uddg=<encoded>, unwrap those.
    """
    soup = BeautifulSoup(html, "html.parser")
    links = []
    for a in soup.find_all("a", href=True):
        href = a["href"]
        if href.startswith("//"):
            href = "https:" + href
        parsed = urlparse(href)
        if "uddg" in parsed.query:
            target = parse_qs(parsed.query).get("uddg", [None])[0]
            if target:
                href = target
        if href.startswith("http"):
            links.append(href)
    return links


def _origin(url: str) -> Optional[str]:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


class SearchEngine:
    def __init__(self, name: str, search_url: str, fetcher: Fetcher, *, timeout: float = 5):
        self.name = name
        self.search_url = search_url        # format string with {query}
        self.fetcher = fetcher
        self.timeout = timeout

    async def find(self, spec, state):
        if not spec.search_query or spec.domain_pattern is None:
            return None
        try:
            html = await self.fetcher.get(
                self.search_url.format(query=quote_plus(spec.search_query)),
                timeout=self.timeout * 2,
            )
        except UpstreamError as e:
            log.debug("[%s] search failed: %s", self.name, e)
            return None

        seen = set()
        for link in search_result_links(html):
            origin = _origin(link)
            if not origin or origin in seen:
                continue
            seen.add(origin)
            if not spec.domain_pattern.search(urlparse(origin).netloc):
                continue
            if await self.fetcher.probe(origin, timeout=self.timeout):
                return origin
        return None


async def first_success(strategies, spec: EndpointSpec, state: EndpointState):
    """Left-to-right: returns (strategy_name, url) of the first hit, else None."""
    for strategy in strategies:
        try:
            url = await strategy.find(spec, state)
        except UpstreamError as e:
            log.debug("[%s] %s strategy errored: %s", spec.key, strategy.name, e)
            continue
        if url:
            return strategy.name, url
    return None


DUCKDUCKGO_URL = "https://html.duckduckgo.com/html/?q={query}"
BING_URL = "https://www.bing.com/search?q={query}"


class EndpointResolver:
    def __init__(
        self,
        fetcher: Fetcher,
        provider_urls: ProviderUrls,
        *,
        probe_timeout: float = 5,
        strategies: list | None = None,
    ):
        self.strategies = strategies if strategies is not None else [
            CurrentUrl(fetcher, timeout=probe_timeout),
            OverrideList(fetcher, provider_urls, timeout=probe_timeout),
            StaticCandidates(fetcher, timeout=probe_timeout),
            SearchEngine("duckduckgo", DUCKDUCKGO_URL, fetcher, timeout=probe_timeout),
            SearchEngine("bing", BING_URL, fetcher, timeout=probe_timeout),
        ]

    async def resolve(self, spec: EndpointSpec, state: EndpointState) -> EndpointState:
        hit = await first_success(self.strategies, spec, state)
        if hit is None:
            log.warning("[%s] no live endpoint found, keeping %s", spec.key, state.current_url)
            return state
        source, url = hit
        if url != state.current_url:
            log.info("[%s] endpoint %s -> %s (via %s)", spec.key, state.current_url, url, source)
        else:
            log.debug("[%s] endpoint %s still live", spec.key, url)
        return replace(
            state,
            current_url=url,
            last_verified_at=datetime.now(timezone.utc),
            discovery_source=source,
        )
