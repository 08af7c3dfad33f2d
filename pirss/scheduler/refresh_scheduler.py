"""
PiRSS Refresh Scheduler
=======================

Background regeneration of the primary feed, independent of request traffic.

Features:
- One best-effort priming generation at startup
- Periodic refresh written straight into the feed cache
- Failed refreshes keep the previous cache entry
"""

import asyncio
from enum import Enum
from typing import Optional

from ..cache.cache_manager import CacheManager, CacheNamespace, build_feed_cache_key
from ..config.settings import PiRSSSettings, get_settings
from ..processing.feed_generator import FeedGenerator
from ..utils.logging import get_logger_for_component


class SchedulerState(str, Enum):
    """Scheduler lifecycle."""
    IDLE = "idle"
    SCHEDULED = "scheduled"


class RefreshScheduler:
    """
    Keeps the primary feed document warm in the cache.

    Stays idle when refresh is disabled or no public base URL is known;
    serving then relies on on-demand generation.
    """

    def __init__(self, generator: FeedGenerator, cache_manager: CacheManager,
                 settings: Optional[PiRSSSettings] = None):
        self.settings = settings or get_settings()
        self.generator = generator
        self.cache_manager = cache_manager
        self.logger = get_logger_for_component("scheduler", feed_id=self.settings.primary.cache_id)
        self.state = SchedulerState.IDLE
        self.base_url: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self.refresh_count = 0
        self.failure_count = 0

    async def refresh_primary_feed(self, base_url: Optional[str]) -> bool:
        """Regenerate the primary feed and overwrite its cache entry.

        Never raises. Returns True when the cache was updated.
        """
        if not base_url:
            self.logger.warning("Skipping refresh because service base URL is not configured")
            return False

        self.logger.info("Refreshing primary feed cache...")
        try:
            rss_xml = await self.generator.generate_primary_feed(base_url)
        except Exception as e:
            self.failure_count += 1
            self.logger.error(f"Failed to refresh primary feed: {e}")
            return False

        key = build_feed_cache_key(self.settings.primary.cache_id, base_url)
        self.cache_manager.set(CacheNamespace.FEED, key, rss_xml, ttl=self.settings.scheduled_feed_ttl)
        self.refresh_count += 1
        self.logger.info("Primary feed cache updated successfully")
        return True

    async def prime(self, base_url: Optional[str]) -> bool:
        """Startup generation; failure leaves the cache empty."""
        return await self.refresh_primary_feed(base_url)

    def start(self, base_url: Optional[str]) -> SchedulerState:
        """Begin periodic refresh when enabled and a base URL is known."""
        if self._task is not None:
            return self.state

        if not self.settings.scheduler.feed_refresh_enabled:
            self.logger.info("Feed refresh disabled via config")
            return self.state

        if not base_url:
            self.logger.warning("Cannot schedule feed refresh without a service base URL")
            return self.state

        self.base_url = base_url
        self._task = asyncio.create_task(self._run())
        self.state = SchedulerState.SCHEDULED
        self.logger.info(
            f"Scheduling primary feed refresh every "
            f"{self.settings.scheduler.feed_refresh_interval_minutes} minute(s)"
        )
        return self.state

    async def _run(self) -> None:
        interval = self.settings.scheduler_interval_seconds
        while True:
            await asyncio.sleep(interval)
            await self.refresh_primary_feed(self.base_url)

    async def stop(self) -> None:
        """Cancel the timer task and return to idle."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.state = SchedulerState.IDLE
