"""
PiRSS Cache Manager
===================

In-memory, namespaced TTL caches for feed documents, per-article derived
content and proxied images.

Each namespace has its own TTL and an active sweep interval; expired
entries are also dropped lazily on read. ``get_or_generate`` coalesces
concurrent misses for the same key into a single generation.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..config.settings import PiRSSSettings, get_settings
from ..utils.logging import get_logger_for_component
from ..utils.validators import normalize_base_url


_MISSING = object()


class CacheNamespace(str, Enum):
    """Independent key spaces."""
    FEED = "feed"
    ARTICLE = "article"
    IMAGE = "image"


@dataclass
class CacheEntry:
    """Stored value and its absolute expiry on the cache clock."""
    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TTLCache:
    """Single namespace with lazy and periodic expiry."""

    def __init__(self, name: str, default_ttl: float, check_period: float,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.default_ttl = default_ttl
        self.check_period = check_period
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is not None and entry.is_expired(self._clock()):
            del self._entries[key]
            entry = None

        if entry is None:
            self.misses += 1
            return default

        self.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def flush(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def keys(self) -> List[str]:
        return list(self._entries)

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "keys": len(self._entries),
        }


def build_feed_cache_key(feed_id: str, base_url: Optional[str]) -> str:
    """Feed document key: ``<feed id>:<base url without trailing slash>``."""
    return f"{feed_id}:{normalize_base_url(base_url)}"


class CacheManager:
    """Owns every namespace and the single-flight bookkeeping.

    Created once per process; ``start()`` launches the sweep tasks and
    ``close()`` cancels them and flushes all entries.
    """

    def __init__(self, settings: Optional[PiRSSSettings] = None,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize cache manager.

        Args:
            settings: Application settings (default: global settings)
            clock: Monotonic time source in seconds
        """
        cache_settings = (settings or get_settings()).cache
        self.logger = get_logger_for_component("cache")
        self.caches: Dict[CacheNamespace, TTLCache] = {
            CacheNamespace.FEED: TTLCache(
                "feed", cache_settings.feed_ttl, cache_settings.feed_check_period, clock
            ),
            CacheNamespace.ARTICLE: TTLCache(
                "article", cache_settings.article_ttl, cache_settings.article_check_period, clock
            ),
            CacheNamespace.IMAGE: TTLCache(
                "image", cache_settings.image_ttl, cache_settings.image_check_period, clock
            ),
        }
        self._inflight: Dict[Tuple[CacheNamespace, str], asyncio.Future] = {}
        self._sweep_tasks: List[asyncio.Task] = []

    def namespace(self, namespace: CacheNamespace) -> TTLCache:
        return self.caches[CacheNamespace(namespace)]

    def get(self, namespace: CacheNamespace, key: str, default: Any = None) -> Any:
        return self.namespace(namespace).get(key, default)

    def set(self, namespace: CacheNamespace, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self.namespace(namespace).set(key, value, ttl)

    def delete(self, namespace: CacheNamespace, key: str) -> bool:
        return self.namespace(namespace).delete(key)

    async def get_or_generate(self, namespace: CacheNamespace, key: str,
                              generator: Callable[[], Awaitable[Any]],
                              ttl: Optional[float] = None) -> Any:
        """Return the cached value or generate, store and return it.

        Concurrent callers missing on the same key await one generation.
        Failures are not cached and reach every waiting caller.
        """
        cache = self.namespace(namespace)
        value = cache.get(key, _MISSING)
        if value is not _MISSING:
            self.logger.debug(f"Cache hit: {cache.name}/{key}")
            return value

        flight_key = (CacheNamespace(namespace), key)
        pending = self._inflight.get(flight_key)
        if pending is not None:
            self.logger.debug(f"Awaiting in-flight generation: {cache.name}/{key}")
            return await asyncio.shield(pending)

        self.logger.info(f"Cache miss: {cache.name}/{key}, generating...")
        future = asyncio.get_running_loop().create_future()
        self._inflight[flight_key] = future
        try:
            value = await generator()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Retrieve so an unawaited future does not log a warning
            future.exception()
            raise
        else:
            cache.set(key, value, ttl)
            future.set_result(value)
            return value
        finally:
            self._inflight.pop(flight_key, None)

    def clear(self) -> None:
        """Empty every namespace."""
        for cache in self.caches.values():
            cache.flush()
        self.logger.info("All caches cleared")

    def stats(self) -> Dict[str, Dict[str, int]]:
        return {namespace.value: cache.stats() for namespace, cache in self.caches.items()}

    def start(self) -> None:
        """Launch one periodic sweep task per namespace."""
        if self._sweep_tasks:
            return
        for cache in self.caches.values():
            self._sweep_tasks.append(asyncio.create_task(self._sweep_loop(cache)))

    async def _sweep_loop(self, cache: TTLCache) -> None:
        while True:
            await asyncio.sleep(cache.check_period)
            removed = cache.sweep()
            if removed:
                self.logger.debug(f"Expired {removed} entries from {cache.name} cache")

    async def close(self) -> None:
        """Cancel sweep tasks and flush all entries."""
        tasks, self._sweep_tasks = self._sweep_tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.clear()
