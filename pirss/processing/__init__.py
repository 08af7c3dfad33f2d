"""
PiRSS Processing Module
=======================

Feed generation workflows, entry assembly and RSS serialization.
"""

from .feed_assembler import FeedAssembler, FeedChannel, FeedDocument, FeedEntry
from .feed_generator import FeedGenerator
from .rss_writer import render_rss

__all__ = [
    'FeedAssembler',
    'FeedChannel',
    'FeedDocument',
    'FeedEntry',
    'FeedGenerator',
    'render_rss',
]
