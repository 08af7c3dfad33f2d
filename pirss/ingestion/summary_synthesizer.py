"""
Summary Synthesizer
===================

Builds short HTML summaries for the secondary feed: a lead image, up to a
few representative paragraphs and links back to the source and the
discussion thread. Falls back to the upstream description on any failure.
"""

import html
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup

from ..cache.cache_manager import CacheManager, CacheNamespace
from ..config.settings import PiRSSSettings, get_settings
from ..utils.logging import get_logger_for_component
from ..utils.validators import resolve_url, safe_hostname
from .feed_parser import ArticleRecord, strip_cdata
from .fetcher import FetchClient


META_IMAGE_SELECTORS = [
    'meta[property="og:image"]',
    'meta[property="og:image:secure_url"]',
    'meta[name="twitter:image"]',
    'meta[name="twitter:image:src"]',
    'meta[name="image"]',
]

IMAGE_ELEMENT_SELECTOR = "picture source, article img, main img, img"

# Lazy-load attributes checked after src, srcset variants last
IMAGE_ATTRIBUTES = ["src", "data-src", "data-original", "data-url", "data-srcset", "srcset"]

PARAGRAPH_SELECTORS = [
    "article p",
    "main p",
    '[class*="content"] p',
    '[class*="Article"] p',
    '[class*="body"] p',
    "p",
]

META_DESCRIPTION_SELECTORS = [
    'meta[property="og:description"]',
    'meta[name="twitter:description"]',
    'meta[name="description"]',
]

NO_SUMMARY_NOTICE = "<p>We could not extract a summary, please visit the original article.</p>"

_LINK_ATTRS = 'target="_blank" rel="noopener noreferrer"'


@dataclass
class SummaryData:
    """Representative paragraphs and an optional lead image."""
    paragraphs: List[str] = field(default_factory=list)
    lead_image_url: Optional[str] = None


def _escape(value: str) -> str:
    return html.escape(value or "", quote=True)


def _normalize_text(text: str) -> str:
    return " ".join(text.split())


def pick_from_srcset(value: Optional[str], page_url: str) -> Optional[str]:
    """First URL of the first srcset candidate, resolved against the page."""
    if not value:
        return None
    first_part = value.split(",")[0].strip()
    if not first_part:
        return None
    return resolve_url(first_part.split()[0], page_url)


def extract_lead_image(soup: BeautifulSoup, page_url: str) -> Optional[str]:
    """Meta preview images first, then the first usable image element."""
    for selector in META_IMAGE_SELECTORS:
        meta = soup.select_one(selector)
        resolved = resolve_url(meta.get("content") if meta else None, page_url)
        if resolved:
            return resolved

    for element in soup.select(IMAGE_ELEMENT_SELECTOR):
        for attr in IMAGE_ATTRIBUTES:
            candidate = element.get(attr)
            if attr.endswith("srcset"):
                resolved = pick_from_srcset(candidate, page_url)
            else:
                resolved = resolve_url(candidate, page_url)
            if resolved:
                return resolved

    return None


class SummarySynthesizer:
    """Cache-backed summary builder for secondary feed entries."""

    def __init__(self, fetch_client: FetchClient, cache_manager: CacheManager,
                 settings: Optional[PiRSSSettings] = None):
        self.settings = settings or get_settings()
        self.fetch_client = fetch_client
        self.cache_manager = cache_manager
        self.extraction = self.settings.extraction
        self.source = self.settings.secondary
        self.logger = get_logger_for_component("summary_synthesizer", feed_id=self.source.cache_id)

    async def synthesize(self, record: ArticleRecord) -> str:
        """HTML description for ``record``, cached per article link."""
        return await self.cache_manager.get_or_generate(
            CacheNamespace.ARTICLE,
            f"hn-description:{record.link}",
            lambda: self._describe(record),
        )

    async def _describe(self, record: ArticleRecord) -> str:
        try:
            page = await self.fetch_client.fetch_article(
                record.link,
                headers={"Referer": self.source.site_url},
                timeout=self.source.article_timeout,
            )
            return self.build_description(record, self.extract_summary(page, record.link))
        except Exception as e:
            self.logger.warning(f"Failed to enrich article {record.link}: {e}")
            return self.build_fallback(record)

    def extract_summary(self, page_html: str, page_url: str) -> SummaryData:
        soup = BeautifulSoup(page_html or "", "html.parser")

        paragraphs = self.collect_paragraphs(soup)
        if not paragraphs:
            description = self._meta_description(soup)
            if description:
                paragraphs = [description]

        limit = self.extraction.summary_max_paragraph_length
        truncated = [p if len(p) <= limit else f"{p[:limit - 3]}..." for p in paragraphs]

        return SummaryData(paragraphs=truncated, lead_image_url=extract_lead_image(soup, page_url))

    def collect_paragraphs(self, soup: BeautifulSoup) -> List[str]:
        """Unique paragraph texts from the most specific container that has any.

        Short paragraphs are skipped only until the first one qualifies.
        """
        maximum = self.extraction.summary_max_paragraphs
        minimum = self.extraction.summary_min_first_paragraph
        paragraphs: List[str] = []
        seen = set()

        for selector in PARAGRAPH_SELECTORS:
            for element in soup.select(selector):
                if len(paragraphs) >= maximum:
                    break

                text = _normalize_text(element.get_text())
                if not text or text in seen:
                    continue
                if len(text) < minimum and not paragraphs:
                    continue

                seen.add(text)
                paragraphs.append(text)

            if len(paragraphs) >= maximum:
                break

        return paragraphs

    def _meta_description(self, soup: BeautifulSoup) -> str:
        for selector in META_DESCRIPTION_SELECTORS:
            meta = soup.select_one(selector)
            content = (meta.get("content") or "").strip() if meta else ""
            if content:
                return content
        return ""

    def build_description(self, record: ArticleRecord, summary: SummaryData) -> str:
        parts = []

        if summary.lead_image_url:
            parts.append(f'<p><img src="{_escape(summary.lead_image_url)}" alt="Preview image" /></p>')

        if summary.paragraphs:
            parts.extend(f"<p>{_escape(paragraph)}</p>" for paragraph in summary.paragraphs)
        else:
            parts.append(NO_SUMMARY_NOTICE)

        hostname = safe_hostname(record.link)
        parts.append(
            f'<p><a href="{_escape(record.link)}" {_LINK_ATTRS}>Read the original on {_escape(hostname)}</a></p>'
        )
        parts.extend(self._discussion_link(record))
        return "\n".join(parts)

    def build_fallback(self, record: ArticleRecord) -> str:
        """Upstream description plus the trailing links."""
        parts = []
        description = strip_cdata(record.description)
        if description:
            parts.append(description)

        parts.append(f'<p><a href="{_escape(record.link)}" {_LINK_ATTRS}>Read the original article</a></p>')
        parts.extend(self._discussion_link(record))
        return "\n".join(parts)

    def _discussion_link(self, record: ArticleRecord) -> List[str]:
        if not record.comments:
            return []
        return [
            f'<p><a href="{_escape(record.comments)}" {_LINK_ATTRS}>'
            f"Join the discussion on {_escape(self.source.discussion_label)}</a></p>"
        ]
