"""Locate an existing RSS/Atom feed for a web page.

1. `<link>` tags typed as RSS/Atom in the page HTML (non-alternate first,
   then rel=alternate, document order)
2. conventional feed paths on the page origin, probed with HEAD and, when
   HEAD fails, a ranged GET of the first few hundred bytes

A page that cannot be fetched or has no feed is not an error: the result says
which of the two happened so the caller can fall through to scraping.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from feedgenie.config import Settings, get_settings
from feedgenie.errors import FeedGenieError, FetchError
from feedgenie.fetching import client
from feedgenie.security.url_safety import is_valid_url, require_safe_url

logger = logging.getLogger(__name__)

FEED_TYPES = ("application/rss+xml", "application/atom+xml")

COMMON_FEED_PATHS = (
    "/feed",
    "/feed/",
    "/rss",
    "/rss/",
    "/rss.xml",
    "/atom.xml",
    "/feed.xml",
    "/index.xml",
    "/feeds/posts/default",  # Blogger
    "/?feed=rss2",  # WordPress
)

_FEED_CONTENT_TYPES = ("xml", "rss", "atom")
_FEED_PREFIXES = ("<rss", "<feed", "<?xml")
PROBE_BYTES = 500

FOUND = "found"
NOT_FOUND = "not_found"
FAILED = "failed"


@dataclass(frozen=True)
class DiscoveryResult:
    status: str
    feed_url: Optional[str] = None
    method: Optional[str] = None  # link_tag | common_path
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status == FOUND and self.feed_url is not None


def find_feed_links(html: str, origin: str) -> List[str]:
    """Feed URLs advertised by `<link>` tags, resolved against `origin`."""
    soup = BeautifulSoup(html or "", "html.parser")
    direct: List[str] = []
    alternate: List[str] = []
    for tag in soup.find_all("link"):
        link_type = (tag.get("type") or "").strip().lower()
        href = (tag.get("href") or "").strip()
        if link_type not in FEED_TYPES or not href:
            continue
        rel = tag.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        target = alternate if "alternate" in [r.lower() for r in rel] else direct
        target.append(urljoin(origin + "/", href))

    out: List[str] = []
    for url in direct + alternate:
        if url not in out:
            out.append(url)
    return out


def looks_like_feed_prefix(prefix: bytes) -> bool:
    text = prefix.decode("utf-8", errors="ignore").lower()
    return any(marker in text for marker in _FEED_PREFIXES)


def probe_feed(url: str, *, settings: Optional[Settings] = None) -> bool:
    """Cheap existence check for a candidate feed URL. Never raises."""
    settings = settings or get_settings()
    timeout = settings.discovery_probe_timeout
    try:
        headers = client.head(url, timeout=timeout)
    except FeedGenieError as e:
        logger.debug("HEAD probe failed for %s: %s", url, e)
    else:
        content_type = (headers.get("content-type") or "").lower()
        return any(marker in content_type for marker in _FEED_CONTENT_TYPES)

    try:
        prefix = client.fetch_prefix(url, nbytes=PROBE_BYTES, timeout=timeout)
    except FeedGenieError as e:
        logger.debug("ranged GET probe failed for %s: %s", url, e)
        return False
    return looks_like_feed_prefix(prefix)


def discover(page_url: str, *, settings: Optional[Settings] = None) -> DiscoveryResult:
    """Find a feed for `page_url`.

    Raises UrlValidationError for an unsafe input URL; every other failure is
    folded into the returned DiscoveryResult.
    """
    settings = settings or get_settings()
    origin = require_safe_url(page_url).origin

    try:
        body = client.fetch_html(page_url, timeout=settings.discovery_timeout, settings=settings)
    except FetchError as e:
        logger.info("discovery could not fetch %s: %s", page_url, e)
        return DiscoveryResult(status=FAILED, error=str(e))

    html = body.decode("utf-8", errors="replace")
    for candidate in find_feed_links(html, origin):
        if is_valid_url(candidate):
            logger.debug("feed link tag on %s -> %s", page_url, candidate)
            return DiscoveryResult(status=FOUND, feed_url=candidate, method="link_tag")
        logger.debug("skipping unsafe feed link %s", candidate)

    for path in COMMON_FEED_PATHS:
        candidate = urljoin(origin + "/", path)
        if probe_feed(candidate, settings=settings):
            logger.debug("conventional feed path hit %s", candidate)
            return DiscoveryResult(status=FOUND, feed_url=candidate, method="common_path")

    return DiscoveryResult(status=NOT_FOUND)
