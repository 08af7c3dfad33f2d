"""
Feed Generator
==============

Generation workflows for both output feeds.

A run fetches the upstream feed, parses it, enriches every article
concurrently (full-text extraction for the primary feed, summaries for the
secondary feed), then assembles and serializes the document. Article
failures only degrade their own entry; an unreachable upstream feed fails
the whole run with ``GenerationError``.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from ..cache.cache_manager import CacheManager, CacheNamespace, build_feed_cache_key
from ..config.settings import PiRSSSettings, get_settings
from ..ingestion.content_extractor import ContentExtractor
from ..ingestion.feed_parser import ArticleRecord, FeedParser
from ..ingestion.fetcher import FetchClient
from ..ingestion.summary_synthesizer import SummarySynthesizer
from ..utils.exceptions import GenerationError, PiRSSError
from ..utils.logging import OperationTimer, get_logger_for_component
from ..utils.validators import normalize_base_url
from .feed_assembler import FeedAssembler, FeedChannel, FeedDocument, FeedEntry
from .rss_writer import render_rss


class FeedGenerator:
    """Builds primary and secondary feed documents."""

    def __init__(
        self,
        fetch_client: FetchClient,
        cache_manager: CacheManager,
        settings: Optional[PiRSSSettings] = None,
        extractor: Optional[ContentExtractor] = None,
        synthesizer: Optional[SummarySynthesizer] = None,
        parser: Optional[FeedParser] = None,
        assembler: Optional[FeedAssembler] = None,
    ):
        """Initialize feed generator.

        Args:
            fetch_client: Shared HTTP client
            cache_manager: Shared cache service
            settings: Application settings (default: global settings)
            extractor: Primary feed content extractor
            synthesizer: Secondary feed summary builder
            parser: Upstream feed parser
            assembler: Output entry builder
        """
        self.settings = settings or get_settings()
        self.fetch_client = fetch_client
        self.cache_manager = cache_manager
        self.extractor = extractor or ContentExtractor(self.settings)
        self.synthesizer = synthesizer or SummarySynthesizer(fetch_client, cache_manager, self.settings)
        self.parser = parser or FeedParser()
        self.assembler = assembler or FeedAssembler()
        self.logger = get_logger_for_component("feed_generator")

    # Cache-backed entry points

    async def get_primary_feed(self, base_url: str) -> str:
        key = build_feed_cache_key(self.settings.primary.cache_id, base_url)
        return await self.cache_manager.get_or_generate(
            CacheNamespace.FEED, key, lambda: self.generate_primary_feed(base_url)
        )

    async def get_secondary_feed(self, base_url: str) -> str:
        key = build_feed_cache_key(self.settings.secondary.cache_id, base_url)
        return await self.cache_manager.get_or_generate(
            CacheNamespace.FEED, key, lambda: self.generate_secondary_feed(base_url)
        )

    # Uncached generation

    async def generate_primary_feed(self, base_url: str) -> str:
        return render_rss(await self.build_primary_document(base_url))

    async def generate_secondary_feed(self, base_url: str) -> str:
        return render_rss(await self.build_secondary_document(base_url))

    async def build_primary_document(self, base_url: str) -> FeedDocument:
        """Full-text document for the primary source."""
        source = self.settings.primary
        base = normalize_base_url(base_url)

        with OperationTimer(self.logger, "primary feed generation", feed_id=source.cache_id) as timer:
            records = await self._load_records(source.feed_url, source.cache_id, {"Referer": source.referer})
            now = datetime.now(timezone.utc)
            entries = await self._fan_out(records, lambda record: self._primary_entry(record, base, now))
            timer.note(entries=len(entries))

        channel = FeedChannel(
            title=source.title,
            description=source.description,
            feed_url=f"{base}{source.route}",
            site_url=source.site_url,
            language=source.language,
            ttl_minutes=source.ttl_minutes,
        )
        return self.assembler.assemble(channel, entries, now)

    async def build_secondary_document(self, base_url: str) -> FeedDocument:
        """Summary document for the secondary source."""
        source = self.settings.secondary
        base = normalize_base_url(base_url)

        with OperationTimer(self.logger, "secondary feed generation", feed_id=source.cache_id) as timer:
            records = await self._load_records(source.feed_url, source.cache_id)
            now = datetime.now(timezone.utc)
            entries = await self._fan_out(records, lambda record: self._secondary_entry(record, now))
            timer.note(entries=len(entries))

        channel = FeedChannel(
            title=source.title,
            description=source.description,
            feed_url=f"{base}{source.route}",
            site_url=source.site_url,
            language=source.language,
            ttl_minutes=source.ttl_minutes,
        )
        return self.assembler.assemble(channel, entries, now)

    async def _load_records(self, feed_url: str, feed_id: str, headers=None) -> List[ArticleRecord]:
        try:
            feed_xml = await self.fetch_client.fetch_feed(feed_url, headers=headers)
        except PiRSSError as e:
            raise GenerationError(
                f"Failed to fetch upstream feed {feed_url}: {e}",
                feed_id=feed_id,
                context={"feed_url": feed_url, "cause": e.to_dict()["error_code"]},
            ) from e

        records = self.parser.parse(feed_xml)
        self.logger.info(f"Found {len(records)} articles in {feed_url}")
        return records

    async def _fan_out(self, records: List[ArticleRecord],
                       build: Callable[[ArticleRecord], Awaitable[FeedEntry]]) -> List[FeedEntry]:
        # gather keeps upstream order regardless of completion order
        semaphore = asyncio.Semaphore(self.settings.fetch.max_concurrent_articles)

        async def bounded(record: ArticleRecord) -> FeedEntry:
            async with semaphore:
                return await build(record)

        return list(await asyncio.gather(*(bounded(record) for record in records)))

    async def _primary_entry(self, record: ArticleRecord, base_url: str, now: datetime) -> FeedEntry:
        log = self.logger.bind(article_url=record.link)
        try:
            page = await self.fetch_client.fetch_article(
                record.link, headers={"Referer": self.settings.primary.referer}
            )
            result = self.extractor.extract(page, record.link)
        except PiRSSError as e:
            log.warning(f"Failed to fetch article: {e}")
            result = self.extractor.placeholder(record.link)
        except Exception as e:
            log.error(f"Unexpected error processing article: {e}", exc_info=True)
            result = self.extractor.placeholder(record.link)

        if not result.is_placeholder:
            log.debug(f"Extracted using {result.rule}")

        return self.assembler.build_entry(
            record,
            self.absolutize_proxy_links(result.html, base_url),
            now,
            fallback_author=result.metadata.author,
        )

    async def _secondary_entry(self, record: ArticleRecord, now: datetime) -> FeedEntry:
        try:
            description = await self.synthesizer.synthesize(record)
        except Exception as e:
            self.logger.error(f"Failed to process article {record.link}: {e}")
            description = self.synthesizer.build_fallback(record)
        return self.assembler.build_entry(record, description, now)

    def absolutize_proxy_links(self, body: str, base_url: str) -> str:
        """Point relative image-proxy links at the public base URL."""
        if not base_url:
            return body
        proxy_path = self.settings.extraction.image_proxy_path
        return body.replace(f'src="{proxy_path}', f'src="{base_url}{proxy_path}')
