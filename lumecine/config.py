"""
Runtime settings for LumeCine.

Everything comes from the environment (a local .env file is loaded first),
the same way the ingestion scripts always read TMDB_KEY / DATABASE_URL.
"""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from .exceptions import ConfigError

DEFAULT_PROVIDERS_URL = "https://pastebin.com/raw/mAt4pVJz"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/lumecine.db"
DEFAULT_APP_URL = "http://localhost:8000"

APP_ENVS = ("development", "production", "seed")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    tmdb_key: str
    omdb_key: str | None = None
    database_url: str = DEFAULT_DATABASE_URL
    providers_url: str = DEFAULT_PROVIDERS_URL
    app_url: str = DEFAULT_APP_URL
    proxy_url: str | None = None
    app_env: str = "development"
    log_level: str = "INFO"
    stream_ttl_seconds: int = 3600            # playback URLs
    cache_ttl_seconds: int = 6 * 3600         # metadata lookups
    sync_pages: int = 100
    sync_concurrency: int = 25
    http_timeout: int = 10
    probe_timeout: int = 5
    index_attempts: int = 5

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_seed(self) -> bool:
        return self.app_env == "seed"


def _int_env(env: dict, name: str, default: int, *, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settings(env: dict | None = None) -> Settings:
    """Build Settings from a mapping (defaults to os.environ)."""
    if env is None:
        load_dotenv()
        env = dict(os.environ)

    tmdb_key = (env.get("TMDB_KEY") or "").strip()
    if not tmdb_key:
        raise ConfigError("TMDB_KEY is not set, check environment settings.")

    app_env = (env.get("APP_ENV") or "development").lower()
    if app_env not in APP_ENVS:
        raise ConfigError(f"APP_ENV must be one of {', '.join(APP_ENVS)}, got {app_env!r}")

    return Settings(
        tmdb_key=tmdb_key,
        omdb_key=env.get("OMDB_KEY") or None,
        database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
        providers_url=env.get("PROVIDERS_URL") or DEFAULT_PROVIDERS_URL,
        app_url=(env.get("APP_URL") or DEFAULT_APP_URL).rstrip("/"),
        proxy_url=env.get("PROXY_URL") or None,
        app_env=app_env,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        stream_ttl_seconds=_int_env(env, "STREAM_TTL_SECONDS", 3600),
        cache_ttl_seconds=_int_env(env, "CACHE_TTL_SECONDS", 6 * 3600),
        sync_pages=_int_env(env, "SYNC_PAGES", 100),
        sync_concurrency=_int_env(env, "SYNC_CONCURRENCY", 25),
        http_timeout=_int_env(env, "HTTP_TIMEOUT", 10),
        probe_timeout=_int_env(env, "PROBE_TIMEOUT", 5),
        index_attempts=_int_env(env, "INDEX_ATTEMPTS", 5),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # aiohttp access noise
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
