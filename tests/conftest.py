"""
PyTest Configuration and Fixtures
=================================

Shared fixtures for PiRSS tests.

Upstream sites are real in-process aiohttp servers; time-dependent cache
behaviour runs on a fake clock and retry backoff is disabled.
"""

import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Keep developer .env files and shells from leaking into tests
for _name in [name for name in os.environ if name.startswith("PIRSS_")]:
    del os.environ[_name]

from pirss.config.settings import (
    CacheSettings,
    ExtractionSettings,
    FetchSettings,
    LoggingSettings,
    PiRSSSettings,
    PrimarySourceSettings,
    SchedulerSettings,
    SecondarySourceSettings,
)


TEST_CDN_DOMAIN = "cdn.example.com"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_settings(**overrides) -> PiRSSSettings:
    """Test settings: no backoff, no background work, no log file.

    Keyword arguments replace whole sections, e.g. ``primary=...``.
    """
    sections = {
        "primary": PrimarySourceSettings(cdn_domain=TEST_CDN_DOMAIN),
        "secondary": SecondarySourceSettings(),
        "fetch": FetchSettings(retry_base_delay=0.0, feed_timeout=5, article_timeout=5, image_timeout=5),
        "cache": CacheSettings(),
        "scheduler": SchedulerSettings(feed_refresh_enabled=False, prime_on_startup=False),
        "extraction": ExtractionSettings(),
        "logging": LoggingSettings(file_path=None, console_logging=False),
    }
    sections.update(overrides)
    return PiRSSSettings(_env_file=None, **sections)


@pytest.fixture
def settings():
    return build_settings()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest_asyncio.fixture
async def upstream():
    """Factory starting an in-process upstream site from ``{path: handler}``."""
    servers = []

    async def start(routes) -> TestServer:
        app = web.Application()
        for path, handler in routes.items():
            app.router.add_get(path, handler)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield start

    for server in servers:
        await server.close()


def hit_counter(handler):
    """Wrap an aiohttp handler and count its invocations in ``.calls``."""

    async def counted(request):
        counted.calls += 1
        return await handler(request)

    counted.calls = 0
    return counted


def rss_document(items, title="Upstream Feed") -> str:
    """Minimal RSS 2.0 document; ``items`` are dicts of child element text."""
    rendered = []
    for item in items:
        children = "".join(f"<{tag}>{value}</{tag}>" for tag, value in item.items())
        rendered.append(f"<item>{children}</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>https://upstream.example.com</link>"
        "<description>Upstream</description>"
        f"{''.join(rendered)}"
        "</channel></rss>"
    )
