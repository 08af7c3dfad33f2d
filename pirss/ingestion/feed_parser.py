"""
Feed Parser
===========

Best-effort parsing of upstream RSS/Atom documents into article records.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser

from ..utils.logging import get_logger_for_component


@dataclass
class ArticleRecord:
    """One upstream entry, in document order."""

    title: str
    link: str
    pub_date: str = ""
    published: Optional[datetime] = None
    author: str = ""
    guid: str = ""
    description: str = ""
    comments: str = ""

    @property
    def identifier(self) -> str:
        """Stable identity: the guid when present, else the link."""
        return self.guid.strip() or self.link


def strip_cdata(text: Optional[str]) -> str:
    """Remove a single surrounding CDATA wrapper and outer whitespace."""
    cleaned = (text or "").strip()
    if cleaned.startswith("<![CDATA["):
        cleaned = cleaned[len("<![CDATA["):]
    if cleaned.endswith("]]>"):
        cleaned = cleaned[: -len("]]>")]
    return cleaned.strip()


class FeedParser:
    """Turns a feed document into ``ArticleRecord`` objects."""

    def __init__(self):
        self.logger = get_logger_for_component("feed_parser")

    def parse(self, feed_xml: str) -> List[ArticleRecord]:
        """Parse ``feed_xml`` into records, preserving entry order.

        Malformed documents yield an empty list instead of raising.
        """
        if not feed_xml or not feed_xml.strip():
            return []

        try:
            feed_data = feedparser.parse(feed_xml)
        except Exception as e:
            self.logger.error(f"Feed parse failed: {e}")
            return []

        entries = getattr(feed_data, "entries", None) or []

        if getattr(feed_data, "bozo", False):
            error = getattr(feed_data, "bozo_exception", "Invalid XML structure")
            if not entries:
                self.logger.warning(f"Feed parse error, no entries recovered: {error}")
                return []
            self.logger.info(f"Feed has parse warnings but contains entries: {error}")

        records = []
        for entry in entries:
            record = self._parse_entry(entry)
            if record is not None:
                records.append(record)

        self.logger.debug(f"Parsed {len(records)} entries")
        return records

    def _parse_entry(self, entry: Any) -> Optional[ArticleRecord]:
        link = (entry.get("link") or "").strip()
        if not link:
            self.logger.warning(
                "Entry missing URL, skipping",
                extra={"entry_title": entry.get("title", "Unknown")},
            )
            return None

        return ArticleRecord(
            title=(entry.get("title") or "").strip(),
            link=link,
            pub_date=entry.get("published") or entry.get("updated") or "",
            published=self._parse_date(entry),
            author=(entry.get("author") or "").strip(),
            guid=(entry.get("id") or "").strip(),
            description=entry.get("description") or entry.get("summary") or "",
            comments=(entry.get("comments") or "").strip(),
        )

    def _parse_date(self, entry: Any) -> Optional[datetime]:
        for field in ("published_parsed", "updated_parsed"):
            date_tuple = entry.get(field)
            if date_tuple:
                try:
                    # feedparser normalizes to UTC
                    return datetime.fromtimestamp(calendar.timegm(date_tuple), tz=timezone.utc)
                except (ValueError, OverflowError):
                    continue
        return None
