"""
Wiring: builds every long-lived collaborator from Settings, shared by the
HTTP app and the sync workflows.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from ..config import Settings
from ..core.database import create_engine, create_session_factory, init_db
from ..core.store import Store
from ..exceptions import ConfigError
from ..providers.base import ProviderContext
from ..providers.endpoints import EndpointResolver, ProviderUrls
from ..providers.fetcher import Fetcher
from ..providers.registry import ProviderRegistry, build_registry
from .catalog import CatalogService
from .omdb import OmdbClient
from .retry import RetryPolicy
from .streams import StreamOrchestrator
from .tmdb import TmdbClient
from .trending import CatalogSynchronizer, TrendingIndex

log = logging.getLogger("lumecine.container")


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    store: Store
    fetcher: Fetcher
    tmdb: TmdbClient
    omdb: OmdbClient
    provider_urls: ProviderUrls
    resolver: EndpointResolver
    registry: ProviderRegistry
    index: TrendingIndex
    synchronizer: CatalogSynchronizer
    streams: StreamOrchestrator
    catalog: CatalogService
    background: list[asyncio.Task] = field(default_factory=list)

    async def resolve_endpoints(self) -> None:
        await self.provider_urls.fetch()
        await asyncio.gather(*(p.refresh_endpoint() for p in self.registry))

    async def sync_trending(self):
        report = await self.synchronizer.sync()
        await self.catalog.refresh()
        return report


async def build_services(
    settings: Settings,
    *,
    fetcher: Optional[Fetcher] = None,
    tmdb: Optional[TmdbClient] = None,
    validate_key: bool = True,
) -> Services:
    engine = create_engine(settings.database_url)
    await init_db(engine)
    store = Store(create_session_factory(engine))

    fetcher = fetcher or Fetcher(timeout=settings.http_timeout)
    tmdb = tmdb or TmdbClient(fetcher, settings.tmdb_key, cache_ttl=settings.cache_ttl_seconds)
    if validate_key and not await tmdb.validate_key():
        await fetcher.close()
        await engine.dispose()
        raise ConfigError("Invalid TMDB api key, check environment settings.")

    provider_urls = ProviderUrls(fetcher, settings.providers_url, timeout=settings.http_timeout)
    resolver = EndpointResolver(fetcher, provider_urls, probe_timeout=settings.probe_timeout)
    registry = build_registry(ProviderContext(
        fetcher=fetcher,
        resolver=resolver,
        store=store,
        tmdb=tmdb,
        stream_ttl_seconds=settings.stream_ttl_seconds,
    ))

    index = TrendingIndex()
    return Services(
        settings=settings,
        engine=engine,
        store=store,
        fetcher=fetcher,
        tmdb=tmdb,
        omdb=OmdbClient(fetcher, settings.omdb_key),
        provider_urls=provider_urls,
        resolver=resolver,
        registry=registry,
        index=index,
        synchronizer=CatalogSynchronizer(
            tmdb, store, index,
            pages=settings.sync_pages, concurrency=settings.sync_concurrency,
        ),
        streams=StreamOrchestrator(store, registry, stream_ttl=settings.stream_ttl_seconds),
        catalog=CatalogService(
            store, tmdb, registry, index,
            retry=RetryPolicy(attempts=settings.index_attempts),
        ),
    )


async def close_services(services: Services) -> None:
    for task in services.background:
        task.cancel()
    if services.background:
        await asyncio.gather(*services.background, return_exceptions=True)
    await services.fetcher.close()
    await services.engine.dispose()
    log.info("Services closed")
