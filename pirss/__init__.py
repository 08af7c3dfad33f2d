"""
PiRSS - Full-Text RSS Proxy
===========================

Rewrites upstream RSS feeds with extracted article bodies or synthesized
summaries, proxies allow-listed images and serves the results from an
in-memory cache with background refresh.

Main Components:
- Ingestion: fetch client, feed parser, content extractor, summary synthesizer
- Cache: namespaced TTL caches with single-flight generation
- Processing: feed assembly, RSS serialization, generation workflows
- Scheduler: periodic primary feed refresh
- Web: aiohttp application exposing the feeds and maintenance endpoints
"""

__version__ = "1.0.0"
__author__ = "PiRSS Development Team"
__description__ = "Full-text RSS feed proxy"

from .config.settings import get_settings
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import PiRSSError

__all__ = [
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "PiRSSError",
]
