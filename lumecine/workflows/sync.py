"""
Offline catalog jobs, runnable from the command line or as Prefect flows.

    lumecine-sync trending --pages 20 --concurrency 10
    lumecine-sync index
"""
from __future__ import annotations
import argparse
import asyncio
import logging
from dataclasses import replace

from prefect import flow, task
from tqdm import tqdm

from ..config import Settings, configure_logging, load_settings
from ..services.container import build_services, close_services

log = logging.getLogger("lumecine.workflows.sync")


async def run_trending_sync(settings: Settings, *, progress: bool = True) -> dict:
    services = await build_services(settings)
    bar = tqdm(total=settings.sync_pages, desc="Trending pages", disable=not progress)
    try:
        report = await services.synchronizer.sync(on_page=lambda _page: bar.update(1))
    finally:
        bar.close()
        await close_services(services)
    return report.to_dict()


async def run_provider_index(settings: Settings) -> dict:
    services = await build_services(settings)
    try:
        await services.resolve_endpoints()
        return await services.catalog.index_providers()
    finally:
        await close_services(services)


@task(name="Sync Trending Lists")
async def task_sync_trending(settings: Settings) -> dict:
    return await run_trending_sync(settings, progress=False)


@task(name="Index Provider Catalogs")
async def task_index_providers(settings: Settings) -> dict:
    return await run_provider_index(settings)


@flow(name="Daily Catalog Update", log_prints=True)
async def catalog_update_flow(index_providers: bool = False) -> dict:
    """Refresh trending lists from TMDB, optionally re-index provider catalogs."""
    settings = load_settings()
    result = {"trending": await task_sync_trending(settings)}
    if index_providers:
        result["index"] = await task_index_providers(settings)
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lumecine-sync", description="LumeCine catalog jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    trending = sub.add_parser("trending", help="Sync TMDB trending lists into the database")
    trending.add_argument("--pages", type=int, default=None, help="Pages per list (default SYNC_PAGES)")
    trending.add_argument("--concurrency", type=int, default=None, help="Pages in flight (default SYNC_CONCURRENCY)")
    trending.add_argument("--quiet", action="store_true", help="No progress bar")

    sub.add_parser("index", help="Index catalog providers (with retries)")

    flow_cmd = sub.add_parser("flow", help="Run the Prefect catalog update flow")
    flow_cmd.add_argument("--index", action="store_true", help="Also index provider catalogs")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)

    if args.command == "trending":
        overrides = {}
        if args.pages:
            overrides["sync_pages"] = args.pages
        if args.concurrency:
            overrides["sync_concurrency"] = args.concurrency
        settings = replace(settings, **overrides)
        try:
            report = asyncio.run(run_trending_sync(settings, progress=not args.quiet))
        except KeyboardInterrupt:
            print("\nStopped by user.")
            return 130
        print(f"Trending sync complete: {report}")
    elif args.command == "index":
        counts = asyncio.run(run_provider_index(settings))
        print(f"Provider indexing complete: {counts}")
    else:
        result = asyncio.run(catalog_update_flow(index_providers=args.index))
        print(f"Catalog update flow complete: {result}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
