"""
Provider registry.

Provider classes declare themselves with @register_provider when their
module is imported. build_registry() instantiates each declared class once,
hands it the shared ProviderContext and seals the registry. After sealing the
set of providers is fixed for the life of the process.

Usage:
    registry = build_registry(ctx)
    provider = registry.get(Provider.SUPERFLIXAPI)
"""
from __future__ import annotations
import logging
from typing import Iterator, Optional

from ..core.models import Provider
from ..exceptions import RegistryClosedError
from .base import CatalogProvider, ProviderContext, StreamProvider

log = logging.getLogger("lumecine.providers.registry")

# Declaration table, populated when source modules are imported
_DECLARED: dict[Provider, type] = {}


def register_provider(cls):
    """Decorator to declare a provider class under its `tag`."""
    _DECLARED[cls.tag] = cls
    return cls


def declared_providers() -> dict[Provider, type]:
    _load_providers()
    return dict(_DECLARED)


class ProviderRegistry:
    def __init__(self):
        self._providers: dict[Provider, StreamProvider] = {}
        self._sealed = False

    def register(self, provider: StreamProvider) -> None:
        if self._sealed:
            raise RegistryClosedError(f"registry sealed, cannot add {provider.tag.value}")
        self._providers[provider.tag] = provider

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def get(self, tag: Provider | str) -> Optional[StreamProvider]:
        if isinstance(tag, str) and not isinstance(tag, Provider):
            try:
                tag = Provider(tag.upper())
            except ValueError:
                return None
        return self._providers.get(tag)

    def all(self) -> list[StreamProvider]:
        return list(self._providers.values())

    def catalog_providers(self) -> list[CatalogProvider]:
        return [p for p in self._providers.values() if getattr(p, "has_catalog", False)]

    def __iter__(self) -> Iterator[StreamProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, tag) -> bool:
        return self.get(tag) is not None

    def describe(self) -> list[dict]:
        return [
            {
                "tag": p.tag.value,
                "name": p.name,
                "endpoint": p.endpoint.current_url,
                "discovery_source": p.endpoint.discovery_source,
                "last_verified_at": (
                    p.endpoint.last_verified_at.isoformat() if p.endpoint.last_verified_at else None
                ),
                "catalog": getattr(p, "has_catalog", False),
            }
            for p in self._providers.values()
        ]


def build_registry(ctx: ProviderContext, *, only: list[Provider] | None = None) -> ProviderRegistry:
    """Instantiate every declared provider exactly once and seal."""
    registry = ProviderRegistry()
    for tag, cls in declared_providers().items():
        if only is not None and tag not in only:
            continue
        registry.register(cls(ctx))
        log.info("Registered provider %s", tag.value)
    registry.seal()
    return registry


# ──────────────────────────────
#  Import all providers to declare them
# ──────────────────────────────
def _load_providers():
    from .sources import superflixapi   # noqa: F401
    from .sources import redecanais     # noqa: F401
    from .sources import warezcdn       # noqa: F401
