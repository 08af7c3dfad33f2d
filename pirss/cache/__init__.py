"""
PiRSS Cache
===========
"""

from .cache_manager import CacheManager, CacheNamespace, TTLCache, build_feed_cache_key

__all__ = ['CacheManager', 'CacheNamespace', 'TTLCache', 'build_feed_cache_key']
