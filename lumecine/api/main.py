"""
LumeCine HTTP surface: Stremio-style stream lookups, catalog listings and
provider endpoint management.
"""
from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from ..config import Settings, configure_logging, get_settings
from ..core.models import ContentType, TrendingType
from ..exceptions import LumeCineError
from ..services.container import Services, build_services, close_services
from ..services.stremio import describe, parse_stream_id, proxied
from ..services.trending import TRENDING_LABELS

log = logging.getLogger("lumecine.api")

CATEGORIES = {"movie": ContentType.MOVIE, "series": ContentType.TV, "tv": ContentType.TV}


class GenreOut(BaseModel):
    id: int
    name: str


class MediaOut(BaseModel):
    id: int
    title: str
    description: str = ""
    thumbnail: str = ""
    poster: str = ""
    rating: float = 0.0
    released_at: Optional[str] = None
    genres: list[GenreOut] = []


class EndpointOut(BaseModel):
    tag: str
    endpoint: Optional[str]
    discovery_source: str
    last_verified_at: Optional[str]


def media_out(item) -> MediaOut:
    return MediaOut(
        id=item.id,
        title=item.title,
        description=item.description or "",
        thumbnail=item.thumbnail or "",
        poster=item.poster or "",
        rating=item.rating or 0.0,
        released_at=item.released_at.date().isoformat() if item.released_at else None,
        genres=[GenreOut(id=g.id, name=g.name) for g in item.genres],
    )


def _services(request: Request) -> Services:
    return request.app.state.services


def create_app(
    settings: Settings | None = None,
    *,
    fetcher=None,
    tmdb=None,
    validate_key: bool = True,
    resolve_endpoints: bool = True,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        services = await build_services(settings, fetcher=fetcher, tmdb=tmdb, validate_key=validate_key)
        app.state.services = services

        if resolve_endpoints:
            await services.resolve_endpoints()
        if settings.is_seed:
            await services.catalog.index_providers()
        await services.catalog.refresh()
        if settings.is_production:
            services.background.append(asyncio.create_task(services.sync_trending()))

        log.info(f"LumeCine ready ({settings.app_env}) with {len(services.registry)} providers")
        try:
            yield
        finally:
            await close_services(services)

    app = FastAPI(title="LumeCine", lifespan=lifespan)

    # ── health / providers ─────────────────

    @app.get("/health")
    async def health(request: Request):
        services = _services(request)
        return {
            "status": "ok",
            "env": settings.app_env,
            "providers": len(services.registry),
            "movies": len(services.catalog.movies),
            "series": len(services.catalog.series),
            "trending": len(services.index),
        }

    @app.get("/providers")
    async def list_providers(request: Request):
        return _services(request).registry.describe()

    @app.post("/providers/{tag}/endpoint", response_model=EndpointOut)
    async def refresh_provider_endpoint(tag: str, request: Request):
        services = _services(request)
        provider = services.registry.get(tag)
        if provider is None:
            raise HTTPException(status_code=404, detail=f"Unknown provider {tag}")
        await services.provider_urls.refresh()
        state = await provider.refresh_endpoint()
        return EndpointOut(
            tag=provider.tag.value,
            endpoint=state.current_url,
            discovery_source=state.discovery_source,
            last_verified_at=state.last_verified_at.isoformat() if state.last_verified_at else None,
        )

    # ── catalog ────────────────────────────

    @app.get("/trending")
    async def trending_lists():
        return [{"id": t.value, "label": label} for t, label in TRENDING_LABELS.items()]

    @app.get("/movies", response_model=list[MediaOut])
    async def list_movies(
        request: Request,
        trending: TrendingType = TrendingType.ALL,
        query: Optional[str] = None,
        genre: Optional[str] = None,
        skip: int = 0,
        take: int = 25,
    ):
        items = _services(request).catalog.list_movies(trending, query, genre, max(skip, 0), max(take, 0))
        return [media_out(m) for m in items]

    @app.get("/series", response_model=list[MediaOut])
    async def list_series(
        request: Request,
        trending: TrendingType = TrendingType.ALL,
        query: Optional[str] = None,
        genre: Optional[str] = None,
        skip: int = 0,
        take: int = 25,
    ):
        items = _services(request).catalog.list_series(trending, query, genre, max(skip, 0), max(take, 0))
        return [media_out(m) for m in items]

    async def _details(request: Request, content_type: ContentType, media_id: int):
        services = _services(request)
        item = await services.catalog.get_media(content_type, media_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"{content_type.value} {media_id} not found")
        body = jsonable_encoder(media_out(item))
        if services.omdb.is_configured():
            imdb_id = await services.tmdb.imdb_id(content_type, media_id)
            if not imdb_id:
                found = await services.omdb.search_by_title(
                    item.title,
                    "movie" if content_type == ContentType.MOVIE else "series",
                    item.released_at.year if item.released_at else None,
                )
                imdb_id = found[0].get("imdbID") if found else None
            if imdb_id:
                extra = await services.omdb.get_by_imdb_id(imdb_id)
                if extra:
                    body["imdb"] = {
                        "id": imdb_id,
                        "rating": extra.get("imdbRating"),
                        "votes": extra.get("imdbVotes"),
                        "rated": extra.get("Rated"),
                    }
        return body

    @app.get("/movies/{movie_id}")
    async def get_movie(movie_id: int, request: Request):
        return await _details(request, ContentType.MOVIE, movie_id)

    @app.get("/series/{series_id}")
    async def get_series(series_id: int, request: Request):
        return await _details(request, ContentType.TV, series_id)

    # ── streams ────────────────────────────

    @app.get("/stream/watch/{stream_id}")
    async def watch_stream(stream_id: str, request: Request):
        services = _services(request)
        if await services.store.get_stream(stream_id) is None:
            raise HTTPException(status_code=404, detail="Unknown stream")
        url = await services.streams.watch_url(stream_id)
        if not url:
            raise HTTPException(status_code=502, detail="Stream currently unavailable")
        return RedirectResponse(proxied(settings.proxy_url, url), status_code=302)

    @app.get("/stream/{category}/{stream_id}.json")
    async def get_streams(category: str, stream_id: str, request: Request):
        services = _services(request)
        content_type = CATEGORIES.get(category)
        req = parse_stream_id(stream_id)
        if content_type is None or req is None:
            return {"streams": []}

        media_id = req.tmdb_id
        if media_id is None:
            try:
                found = await services.tmdb.find_by_imdb_id(req.imdb_id)
            except LumeCineError as e:
                log.warning(f"IMDb lookup failed for {req.imdb_id}: {e}")
                return {"streams": []}
            if found is None or found[0] != content_type:
                return {"streams": []}
            media_id = found[1]

        if content_type == ContentType.MOVIE:
            movie = await services.catalog.get_movie(media_id)
            if movie is None:
                return {"streams": []}
            links = await services.streams.movie_streams(movie)
            title = movie.title
        else:
            series = await services.catalog.get_series(media_id)
            if series is None:
                return {"streams": []}
            season, episode = req.season or 0, req.episode or 0
            links = await services.streams.series_streams(series, season, episode)
            title = f"{series.title} S{season + 1:02d}E{episode + 1:02d}"

        return {"streams": [describe(link, settings.app_url, title) for link in links]}

    return app


def run():
    """Console entry point: serve the app with uvicorn."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="Run the LumeCine addon server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()
    uvicorn.run("lumecine.api.main:create_app", factory=True, host=args.host, port=args.port, reload=args.reload)
