"""
PiRSS HTTP Application
======================

aiohttp.web application serving both feeds, the image proxy and cache
maintenance endpoints.

Routes:
- GET /                   service index
- GET <primary route>     full-text feed
- GET <secondary route>   summary feed
- GET /image-proxy?url=   allow-listed image pass-through
- GET /cache/clear        empty all caches (alias /clear-cache)
- GET /cache/stats        cache and process statistics (alias /stats)
"""

import asyncio
import resource
import sys
import time
from dataclasses import dataclass, field
from typing import Optional

from aiohttp import web

from ..cache.cache_manager import CacheManager, CacheNamespace
from ..config.settings import PiRSSSettings, get_settings
from ..ingestion.fetcher import FetchClient
from ..processing.feed_generator import FeedGenerator
from ..scheduler.refresh_scheduler import RefreshScheduler
from ..utils.exceptions import PiRSSError, ValidationError
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


RSS_CONTENT_TYPE = "application/rss+xml"
IMAGE_CACHE_CONTROL = "public, max-age=86400"


@dataclass
class Services:
    """Long-lived collaborators shared by all handlers."""
    settings: PiRSSSettings
    fetch_client: FetchClient
    cache_manager: CacheManager
    generator: FeedGenerator
    scheduler: RefreshScheduler
    started_at: float = field(default_factory=time.monotonic)
    background_tasks: set = field(default_factory=set)


SERVICES_KEY = web.AppKey("services", Services)

logger = get_logger_for_component("web")


def request_base_url(request: web.Request) -> str:
    return f"{request.scheme}://{request.host}"


def _services(request: web.Request) -> Services:
    return request.app[SERVICES_KEY]


def _rss_response(body: str) -> web.Response:
    return web.Response(text=body, content_type=RSS_CONTENT_TYPE, charset="utf-8")


async def index(request: web.Request) -> web.Response:
    services = _services(request)
    settings = services.settings
    return web.json_response({
        "service": f"{settings.app_name} - Full-Text RSS Feeds",
        "version": settings.version,
        "status": "running",
        "endpoints": {
            "feed": settings.primary.route,
            "ycombinator": settings.secondary.route,
            "imageProxy": f"{settings.extraction.image_proxy_path}?url=<image_url>",
            "clearCache": "/cache/clear",
            "stats": "/cache/stats",
        },
    })


async def primary_feed(request: web.Request) -> web.Response:
    services = _services(request)
    try:
        rss_xml = await services.generator.get_primary_feed(request_base_url(request))
    except Exception as e:
        logger.error(f"Error serving primary feed: {e}", exc_info=True)
        return web.json_response(
            {"error": "Failed to generate RSS feed", "message": str(e)}, status=500
        )
    return _rss_response(rss_xml)


async def secondary_feed(request: web.Request) -> web.Response:
    services = _services(request)
    try:
        rss_xml = await services.generator.get_secondary_feed(request_base_url(request))
    except Exception as e:
        logger.error(f"Error serving secondary feed: {e}", exc_info=True)
        return web.json_response(
            {"error": f"Failed to generate {services.settings.secondary.discussion_label} feed",
             "message": str(e)},
            status=500,
        )
    return _rss_response(rss_xml)


async def image_proxy(request: web.Request) -> web.Response:
    services = _services(request)
    image_url = request.query.get("url")

    if not image_url:
        return web.json_response({"error": "Missing url parameter"}, status=400)

    try:
        image_url = URLValidator.validate_image_url(image_url, services.settings.primary.cdn_domain)
    except ValidationError as e:
        logger.warning(f"Rejected image proxy request: {e}")
        return web.json_response({"error": "Invalid image domain"}, status=403)

    try:
        payload = await services.cache_manager.get_or_generate(
            CacheNamespace.IMAGE,
            image_url,
            lambda: services.fetch_client.fetch_image(
                image_url, headers={"Referer": services.settings.primary.referer}
            ),
        )
    except PiRSSError as e:
        logger.error(f"Error proxying image {image_url}: {e}")
        return web.json_response(
            {"error": "Failed to fetch image", "message": str(e)}, status=500
        )

    return web.Response(
        body=payload.data,
        headers={
            "Content-Type": payload.content_type,
            "Cache-Control": IMAGE_CACHE_CONTROL,
        },
    )


async def clear_cache(request: web.Request) -> web.Response:
    _services(request).cache_manager.clear()
    return web.json_response({"success": True, "message": "All caches cleared"})


def _memory_usage() -> dict:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    scale = 1 if sys.platform == "darwin" else 1024
    return {
        "max_rss_bytes": usage.ru_maxrss * scale,
        "user_cpu_seconds": usage.ru_utime,
        "system_cpu_seconds": usage.ru_stime,
    }


async def cache_stats(request: web.Request) -> web.Response:
    services = _services(request)
    return web.json_response({
        "cache": services.cache_manager.stats(),
        "scheduler": services.scheduler.state.value,
        "uptime": round(time.monotonic() - services.started_at, 3),
        "memory": _memory_usage(),
    })


async def on_startup(app: web.Application) -> None:
    services = app[SERVICES_KEY]
    settings = services.settings
    base_url = settings.server.resolve_base_url()

    services.cache_manager.start()

    if settings.scheduler.prime_on_startup:
        task = asyncio.create_task(services.scheduler.prime(base_url))
        services.background_tasks.add(task)
        task.add_done_callback(services.background_tasks.discard)

    services.scheduler.start(base_url)
    logger.info(f"{settings.app_name} serving with public base URL {base_url}")


async def on_cleanup(app: web.Application) -> None:
    services = app[SERVICES_KEY]
    tasks = list(services.background_tasks)
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    await services.scheduler.stop()
    await services.cache_manager.close()
    await services.fetch_client.close()
    logger.info("Shut down cleanly")


def create_app(
    settings: Optional[PiRSSSettings] = None,
    *,
    fetch_client: Optional[FetchClient] = None,
    cache_manager: Optional[CacheManager] = None,
    generator: Optional[FeedGenerator] = None,
    scheduler: Optional[RefreshScheduler] = None,
) -> web.Application:
    """Wire services and routes into an aiohttp application."""
    settings = settings or get_settings()
    fetch_client = fetch_client or FetchClient(settings)
    cache_manager = cache_manager or CacheManager(settings)
    generator = generator or FeedGenerator(fetch_client, cache_manager, settings)
    scheduler = scheduler or RefreshScheduler(generator, cache_manager, settings)

    app = web.Application()
    app[SERVICES_KEY] = Services(
        settings=settings,
        fetch_client=fetch_client,
        cache_manager=cache_manager,
        generator=generator,
        scheduler=scheduler,
    )

    app.router.add_get("/", index)
    app.router.add_get(settings.primary.route, primary_feed)
    app.router.add_get(settings.secondary.route, secondary_feed)
    app.router.add_get(settings.extraction.image_proxy_path, image_proxy)
    app.router.add_get("/cache/clear", clear_cache)
    app.router.add_get("/clear-cache", clear_cache)
    app.router.add_get("/cache/stats", cache_stats)
    app.router.add_get("/stats", cache_stats)

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app
