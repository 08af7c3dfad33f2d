"""
RSS 2.0 serialization of assembled feed documents.
"""

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import format_datetime

from .feed_assembler import FeedDocument, FeedEntry


DC_NAMESPACE = "http://purl.org/dc/elements/1.1/"
ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"
GENERATOR = "PiRSS"

ET.register_namespace("dc", DC_NAMESPACE)
ET.register_namespace("atom", ATOM_NAMESPACE)


def _rfc822(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def _text(parent: ET.Element, tag: str, value: str) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = value
    return element


def _write_item(channel: ET.Element, entry: FeedEntry) -> None:
    item = ET.SubElement(channel, "item")
    _text(item, "title", entry.title)
    _text(item, "description", entry.description)
    _text(item, "link", entry.url)
    guid = _text(item, "guid", entry.guid)
    guid.set("isPermaLink", "true" if entry.guid == entry.url else "false")
    if entry.author:
        _text(item, f"{{{DC_NAMESPACE}}}creator", entry.author)
    _text(item, "pubDate", _rfc822(entry.date))


def render_rss(document: FeedDocument) -> str:
    """Serialize ``document`` as an indented RSS 2.0 string."""
    info = document.channel
    root = ET.Element("rss", version="2.0")
    channel = ET.SubElement(root, "channel")

    _text(channel, "title", info.title)
    _text(channel, "description", info.description)
    _text(channel, "link", info.site_url)
    ET.SubElement(
        channel,
        f"{{{ATOM_NAMESPACE}}}link",
        href=info.feed_url,
        rel="self",
        type="application/rss+xml",
    )
    _text(channel, "generator", GENERATOR)
    _text(channel, "lastBuildDate", _rfc822(document.generated_at))
    _text(channel, "language", info.language)
    _text(channel, "ttl", str(info.ttl_minutes))

    for entry in document.entries:
        _write_item(channel, entry)

    ET.indent(root, space="  ", level=0)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True).decode("utf-8")
