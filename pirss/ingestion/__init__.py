"""
PiRSS Ingestion Module
======================

Upstream access and per-article content processing.

This module handles:
- Retrying HTTP fetches of feeds, article pages and images
- Parsing upstream feeds into article records
- Extracting and sanitizing full article bodies
- Synthesizing summaries with lead images
"""

from .fetcher import FetchClient, ImagePayload
from .feed_parser import ArticleRecord, FeedParser
from .content_extractor import ContentExtractor, ExtractionResult
from .summary_synthesizer import SummarySynthesizer, SummaryData

__all__ = [
    'FetchClient',
    'ImagePayload',
    'ArticleRecord',
    'FeedParser',
    'ContentExtractor',
    'ExtractionResult',
    'SummarySynthesizer',
    'SummaryData',
]
