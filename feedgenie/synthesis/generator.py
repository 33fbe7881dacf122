"""Build a feed from scraped page data.

Output is RSS 2.0 (the wire form) plus the JSON projection the frontend renders
without re-parsing XML. No I/O.
"""

from __future__ import annotations

import logging
import mimetypes
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlsplit
from xml.etree import ElementTree as ET

from feedgenie.contracts.feed_contract import validate_scraped_page
from feedgenie.errors import ParseError
from feedgenie.feeds.models import FeedItem, ResolvedFeed, utcnow
from feedgenie.scraping.scraper import ScrapedPage

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
ET.register_namespace("atom", ATOM_NS)
ET.register_namespace("content", CONTENT_NS)

GENERATOR = "FeedGenie Feed Generator"
RSS_DOCS = "https://validator.w3.org/feed/docs/rss2.html"
SNIPPET_LENGTH = 200
# characters outside the XML 1.0 Char production
_XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


@dataclass(frozen=True)
class SynthesizedFeed:
    feed: ResolvedFeed
    rss_xml: str
    json_feed: Dict[str, Any]


def rfc2822(dt: datetime) -> str:
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def xml_safe(text: str) -> str:
    return _XML_ILLEGAL.sub("", text)


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None, **attrib: str) -> ET.Element:
    el = ET.SubElement(parent, tag, {k: xml_safe(v) for k, v in attrib.items()})
    if text is not None:
        el.text = xml_safe(text)
    return el


def _coerce_page(scraped: Union[ScrapedPage, Mapping[str, Any]]) -> ScrapedPage:
    if isinstance(scraped, ScrapedPage):
        return scraped
    if isinstance(scraped, Mapping):
        errors = validate_scraped_page(dict(scraped))
        if errors:
            raise ParseError("malformed scraped data: " + "; ".join(errors), scraped.get("url"))
        return ScrapedPage.from_dict(scraped)
    raise TypeError(f"expected ScrapedPage or mapping, got {type(scraped).__name__}")


def _finalize_item(item: FeedItem, now: datetime) -> FeedItem:
    """Fill synthesized-feed defaults: publish date now, guid = link."""
    content = item.content or ""
    return FeedItem(
        title=item.title,
        link=item.link,
        content=content,
        content_snippet=content[:SNIPPET_LENGTH],
        published_at=item.published_at or now,
        thumbnail=item.thumbnail,
        guid=item.link,
    )


def render_rss(feed: ResolvedFeed, *, self_link: str, site_name: str, favicon: Optional[str] = None) -> str:
    rss = ET.Element("rss", {"version": "2.0"})
    channel = _sub(rss, "channel")
    _sub(channel, "title", feed.title)
    _sub(channel, "link", feed.link)
    _sub(channel, "description", feed.description)
    _sub(channel, "lastBuildDate", rfc2822(feed.last_build_date or feed.generated_at))
    _sub(channel, "docs", RSS_DOCS)
    _sub(channel, "generator", GENERATOR)
    _sub(channel, "language", feed.language)
    _sub(channel, "copyright", f"Content from {site_name}")
    if favicon:
        image = _sub(channel, "image")
        _sub(image, "title", feed.title)
        _sub(image, "url", favicon)
        _sub(image, "link", feed.link)
    _sub(channel, f"{{{ATOM_NS}}}link", href=self_link, rel="self", type="application/rss+xml")

    for item in feed.items:
        el = _sub(channel, "item")
        _sub(el, "title", item.title)
        _sub(el, "link", item.link)
        _sub(el, "guid", item.guid or item.link)
        if item.published_at is not None:
            _sub(el, "pubDate", rfc2822(item.published_at))
        _sub(el, "description", item.content or item.title)
        if item.content:
            _sub(el, f"{{{CONTENT_NS}}}encoded", item.content)
        if item.thumbnail:
            mime = mimetypes.guess_type(urlsplit(item.thumbnail).path)[0] or "image/jpeg"
            _sub(el, "enclosure", url=item.thumbnail, length="0", type=mime)

    body = ET.tostring(rss, encoding="unicode")
    return '<?xml version="1.0" encoding="utf-8"?>\n' + body


def synthesize(page_url: str, scraped: Union[ScrapedPage, Mapping[str, Any]]) -> SynthesizedFeed:
    """Turn scraped data into a ResolvedFeed plus its RSS and JSON forms.

    A mapping is checked against the scraped-page contract first and rejected
    with ParseError when malformed.
    """
    page = _coerce_page(scraped)
    now = utcnow()
    site_name = page.site_name or urlsplit(page_url).hostname or page_url

    feed = ResolvedFeed(
        title=page.title or "Generated Feed",
        description=page.description or f"Auto-generated RSS feed for {page_url}",
        link=page_url,
        language="en",
        items=tuple(_finalize_item(it, now) for it in page.items),
        last_build_date=now,
        generated_at=now,
    )
    rss_xml = render_rss(
        feed,
        self_link=page_url.rstrip("/") + "/feed",
        site_name=site_name,
        favicon=page.favicon,
    )
    logger.debug("synthesized feed for %s (%d items)", page_url, len(feed.items))
    return SynthesizedFeed(feed=feed, rss_xml=rss_xml, json_feed=feed.to_dict())
