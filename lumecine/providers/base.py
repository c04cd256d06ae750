"""
Core types for the LumeCine provider system.

A provider is any class exposing the StreamProvider capability set (and,
when it owns a bulk catalog, CatalogProvider too). Variants are keyed by
their `tag`; nothing inherits from a common base class.

Season / episode numbers are zero-indexed everywhere in here. A provider
whose site is one-indexed translates at its own boundary.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence, runtime_checkable

from ..core.models import Audio, ContentType, Provider, Quality
from ..exceptions import UpstreamError
from .endpoints import EndpointResolver, EndpointSpec, EndpointState
from .fetcher import Fetcher

log = logging.getLogger("lumecine.providers")


# ──────────────────────────────
#  Provider outputs
# ──────────────────────────────
@dataclass
class Track:
    url: str
    audio: Audio


@dataclass
class EpisodeGroup:
    title: str
    season: int                       # zero-indexed
    episode: int                      # zero-indexed
    tracks: list[Track] = field(default_factory=list)


@dataclass
class CatalogItem:
    """One entry scraped from a provider's bulk catalog."""
    content_type: ContentType
    title: str
    url: str
    audio: Audio = Audio.DUBBED
    year: Optional[int] = None


# ──────────────────────────────
#  Capability sets
# ──────────────────────────────
@runtime_checkable
class StreamProvider(Protocol):
    tag: Provider
    name: str
    endpoint: EndpointState

    async def refresh_endpoint(self) -> EndpointState: ...

    async def resolve_movie_url(self, media, audio: Audio, quality: Quality) -> Optional[str]: ...

    async def resolve_series_url(self, media, season: int, episode: int, audio: Audio) -> Optional[str]: ...

    async def list_episodes(self, media) -> Sequence[EpisodeGroup]: ...


@runtime_checkable
class CatalogProvider(Protocol):
    tag: Provider

    async def fetch_catalog(self) -> Sequence[CatalogItem]: ...

    async def materialize_catalog(self, items: Sequence[CatalogItem]) -> int: ...


# ──────────────────────────────
#  Shared wiring
# ──────────────────────────────
@dataclass
class ProviderContext:
    """Collaborators handed to every provider at construction."""
    fetcher: Fetcher
    resolver: EndpointResolver
    store: object = None              # core.store.Store
    tmdb: object = None               # services.tmdb.TmdbClient
    stream_ttl_seconds: int = 3600


async def refresh_endpoint(provider) -> EndpointState:
    spec: EndpointSpec = provider.endpoint_spec
    provider.endpoint = await provider.ctx.resolver.resolve(spec, provider.endpoint)
    return provider.endpoint


async def get_page(provider, path: str, **kwargs) -> str:
    """GET `path` on the provider's live endpoint.

    The endpoint is sent as Referer. On failure the endpoint is re-resolved
    once; if it moved, the request is retried against the new domain.
    """
    base = provider.endpoint.current_url
    if not base:
        base = (await refresh_endpoint(provider)).current_url
        if not base:
            raise UpstreamError(f"[{provider.tag.value}] no endpoint configured")
    kwargs["headers"] = {"Referer": base + "/", **(kwargs.get("headers") or {})}
    try:
        return await provider.ctx.fetcher.get(path, base_url=base + "/", **kwargs)
    except UpstreamError:
        moved = (await refresh_endpoint(provider)).current_url
        if not moved or moved == base:
            raise
        log.info("[%s] retrying on %s", provider.tag.value, moved)
        return await provider.ctx.fetcher.get(path, base_url=moved + "/", **kwargs)
