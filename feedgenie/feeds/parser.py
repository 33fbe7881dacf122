"""RSS/Atom parsing into ResolvedFeed.

feedparser is only ever handed bytes. Given a string that looks like a URL it
would fetch it itself, bypassing the URL gate.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urljoin

import feedparser
from bs4 import BeautifulSoup

from feedgenie.errors import ParseError
from feedgenie.feeds.models import FeedItem, ResolvedFeed

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTENT = 4000
SNIPPET_LENGTH = 200


def parse_feed_document(content: bytes, source: Optional[str] = None) -> feedparser.FeedParserDict:
    if isinstance(content, str):
        content = content.encode("utf-8")
    parsed = feedparser.parse(content)
    if not parsed.get("version") and not parsed.entries:
        exc = parsed.get("bozo_exception")
        detail = f"not a feed document: {exc}" if exc else "not a feed document"
        raise ParseError(detail, source)
    if parsed.get("bozo"):
        logger.debug("bozo feed %s: %s", source, parsed.get("bozo_exception"))
    return parsed


def struct_to_datetime(st: Any) -> Optional[datetime]:
    if not st:
        return None
    try:
        return datetime(*st[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def html_to_text(html: str) -> str:
    if not html:
        return ""
    if "<" not in html:
        return " ".join(html.split())
    return BeautifulSoup(html, "html.parser").get_text(" ", strip=True)


def entry_content(entry: Any) -> str:
    """Richest body available: content:encoded / atom content, then summary."""
    for block in entry.get("content") or []:
        value = block.get("value")
        if value:
            return value
    return entry.get("summary") or entry.get("description") or ""


def entry_thumbnail(entry: Any) -> Optional[str]:
    for key in ("media_content", "media_thumbnail"):
        for media in entry.get(key) or []:
            url = media.get("url")
            if url:
                return url
    for enclosure in entry.get("enclosures") or []:
        href = enclosure.get("href") or enclosure.get("url")
        if href:
            return href
    return None


def entry_to_item(entry: Any, *, base_url: str, max_content: int = DEFAULT_MAX_CONTENT) -> FeedItem:
    link = entry.get("link") or ""
    if link:
        link = urljoin(base_url, link)
    body = entry_content(entry)
    summary = entry.get("summary") or body
    return FeedItem(
        title=(entry.get("title") or "").strip() or "Untitled",
        link=link,
        content=body[:max_content],
        content_snippet=html_to_text(summary)[:SNIPPET_LENGTH],
        published_at=struct_to_datetime(entry.get("published_parsed") or entry.get("updated_parsed")),
        author=entry.get("author") or None,
        thumbnail=entry_thumbnail(entry),
        categories=tuple(t.get("term") for t in entry.get("tags") or [] if t.get("term")),
        guid=entry.get("id") or link or None,
    )


def parse_feed(content: bytes, feed_url: str, *, max_content: int = DEFAULT_MAX_CONTENT) -> ResolvedFeed:
    parsed = parse_feed_document(content, feed_url)
    feed = parsed.feed
    items = tuple(entry_to_item(e, base_url=feed_url, max_content=max_content) for e in parsed.entries)
    return ResolvedFeed(
        title=(feed.get("title") or "").strip() or "Untitled Feed",
        description=feed.get("subtitle") or feed.get("description") or "",
        link=feed.get("link") or feed_url,
        language=feed.get("language") or "en",
        items=items,
        last_build_date=struct_to_datetime(feed.get("updated_parsed") or feed.get("published_parsed")),
    )
