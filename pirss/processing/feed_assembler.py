"""
Feed Assembler
==============

Maps enriched article records into immutable output documents.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Sequence, Tuple

from ..ingestion.feed_parser import ArticleRecord


@dataclass(frozen=True)
class FeedEntry:
    """One output item."""
    title: str
    description: str
    url: str
    guid: str
    date: datetime
    author: str = ""


@dataclass(frozen=True)
class FeedChannel:
    """Channel-level metadata of an output feed."""
    title: str
    description: str
    feed_url: str
    site_url: str
    language: str
    ttl_minutes: int


@dataclass(frozen=True)
class FeedDocument:
    """Finished feed: channel plus entries in upstream order."""
    channel: FeedChannel
    entries: Tuple[FeedEntry, ...]
    generated_at: datetime


def parse_entry_date(record: ArticleRecord, default: datetime) -> datetime:
    """Publication date of ``record`` or ``default`` when unknown."""
    if record.published is not None:
        return record.published

    if record.pub_date:
        try:
            parsed = parsedate_to_datetime(record.pub_date)
        except (TypeError, ValueError, IndexError):
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return default


class FeedAssembler:
    """Builds ``FeedEntry`` and ``FeedDocument`` values."""

    def build_entry(self, record: ArticleRecord, body: str, now: datetime,
                    fallback_author: Optional[str] = None) -> FeedEntry:
        return FeedEntry(
            title=record.title,
            description=body,
            url=record.link,
            guid=record.identifier,
            date=parse_entry_date(record, now),
            author=record.author or fallback_author or "",
        )

    def assemble(self, channel: FeedChannel, entries: Sequence[FeedEntry],
                 generated_at: Optional[datetime] = None) -> FeedDocument:
        return FeedDocument(
            channel=channel,
            entries=tuple(entries),
            generated_at=generated_at or datetime.now(timezone.utc),
        )
