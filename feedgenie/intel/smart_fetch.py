"""Four-tier feed fetch used for bulk intel collection.

Tiers, in order, each tried only while nothing has been collected:
- direct: treat the input URL as a feed
- html_discovery: fetch the page, try each advertised feed link directly
- proxy_discovery: same, with the page fetched through the rendering proxy
- proxy: fetch the input URL through the proxy and parse it as a feed

Every attempt is recorded, so a tier that parsed fine but had no items
("empty") is distinguishable from one that errored ("failed").
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, List, Optional, Tuple

from feedgenie.config import Settings, get_settings
from feedgenie.discovery.feed_discovery import find_feed_links
from feedgenie.errors import FeedGenieError
from feedgenie.feeds.models import FeedItem, hash_id
from feedgenie.feeds.parser import (
    entry_content,
    entry_thumbnail,
    parse_feed_document,
    struct_to_datetime,
)
from feedgenie.fetching import client
from feedgenie.security.url_safety import is_valid_url, require_safe_url

logger = logging.getLogger(__name__)

MAX_ITEMS_PER_FEED = 25
MAX_TITLE = 200
MAX_CONTENT = 4000

TIER_DIRECT = "direct"
TIER_HTML_DISCOVERY = "html_discovery"
TIER_PROXY_DISCOVERY = "proxy_discovery"
TIER_PROXY = "proxy"

OK = "ok"
EMPTY = "empty"
FAILED = "failed"


@dataclass(frozen=True)
class TierAttempt:
    tier: str
    url: str
    status: str
    items: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class SmartFetchResult:
    url: str
    items: Tuple[FeedItem, ...]
    tier: Optional[str]
    attempts: Tuple[TierAttempt, ...]

    @property
    def succeeded(self) -> bool:
        return bool(self.items)


def parse_intel_items(content: bytes, source: str, tier: str) -> List[FeedItem]:
    """First 25 entries that carry both a title and a link.

    Raises ParseError when `content` is not a feed at all.
    """
    parsed = parse_feed_document(content, source)
    items: List[FeedItem] = []
    for entry in parsed.entries[:MAX_ITEMS_PER_FEED]:
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()
        if not title or not link:
            continue
        published = entry.get("published") or entry.get("updated") or ""
        items.append(
            FeedItem(
                id=hash_id(link, published),
                title=title[:MAX_TITLE],
                link=link,
                content=entry_content(entry)[:MAX_CONTENT],
                published_at=struct_to_datetime(entry.get("published_parsed") or entry.get("updated_parsed")),
                author=entry.get("author") or None,
                thumbnail=entry_thumbnail(entry),
                source=source,
                tier=tier,
            )
        )
    return items


class SmartFetcher:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def _attempt(
        self,
        attempts: List[TierAttempt],
        tier: str,
        url: str,
        load: Callable[[], List[FeedItem]],
    ) -> List[FeedItem]:
        try:
            items = load()
        except FeedGenieError as e:
            logger.debug("tier %s failed for %s: %s", tier, url, e)
            attempts.append(TierAttempt(tier=tier, url=url, status=FAILED, error=str(e)))
            return []
        status = OK if items else EMPTY
        attempts.append(TierAttempt(tier=tier, url=url, status=status, items=len(items)))
        return items

    def _direct_feed(self, url: str, tier: str) -> List[FeedItem]:
        body = client.fetch_direct(url, timeout=self.settings.feed_process_timeout, settings=self.settings)
        return parse_intel_items(body, url, tier)

    def _discovered_feeds(
        self,
        attempts: List[TierAttempt],
        tier: str,
        url: str,
        fetch_page: Callable[[], bytes],
    ) -> List[FeedItem]:
        try:
            html = fetch_page().decode("utf-8", errors="replace")
        except FeedGenieError as e:
            logger.debug("tier %s page fetch failed for %s: %s", tier, url, e)
            attempts.append(TierAttempt(tier=tier, url=url, status=FAILED, error=str(e)))
            return []

        origin = require_safe_url(url).origin
        links = [link for link in find_feed_links(html, origin) if is_valid_url(link)]
        if not links:
            attempts.append(TierAttempt(tier=tier, url=url, status=EMPTY))
            return []

        for feed_url in links:
            items = self._attempt(attempts, tier, feed_url, partial(self._direct_feed, feed_url, tier))
            if items:
                return items
        return []

    def _tier_direct(self, url: str, attempts: List[TierAttempt]) -> List[FeedItem]:
        return self._attempt(attempts, TIER_DIRECT, url, partial(self._direct_feed, url, TIER_DIRECT))

    def _tier_html_discovery(self, url: str, attempts: List[TierAttempt]) -> List[FeedItem]:
        fetch_page = partial(
            client.fetch_html, url, timeout=self.settings.feed_process_timeout, settings=self.settings
        )
        return self._discovered_feeds(attempts, TIER_HTML_DISCOVERY, url, fetch_page)

    def _tier_proxy_discovery(self, url: str, attempts: List[TierAttempt]) -> List[FeedItem]:
        fetch_page = partial(client.fetch_via_proxy, url, settings=self.settings)
        return self._discovered_feeds(attempts, TIER_PROXY_DISCOVERY, url, fetch_page)

    def _tier_proxy(self, url: str, attempts: List[TierAttempt]) -> List[FeedItem]:
        def load() -> List[FeedItem]:
            body = client.fetch_via_proxy(url, settings=self.settings)
            return parse_intel_items(body, url, TIER_PROXY)

        return self._attempt(attempts, TIER_PROXY, url, load)

    def fetch(self, url: str) -> SmartFetchResult:
        """Run the tiers for `url`. Raises UrlValidationError for an unsafe URL."""
        require_safe_url(url)
        attempts: List[TierAttempt] = []
        tiers = (
            (TIER_DIRECT, self._tier_direct),
            (TIER_HTML_DISCOVERY, self._tier_html_discovery),
            (TIER_PROXY_DISCOVERY, self._tier_proxy_discovery),
            (TIER_PROXY, self._tier_proxy),
        )
        for tier, run in tiers:
            items = run(url, attempts)
            if items:
                logger.info("smart fetch %s: %d items via %s", url, len(items), tier)
                return SmartFetchResult(url=url, items=tuple(items), tier=tier, attempts=tuple(attempts))

        logger.warning("smart fetch %s: no items from any tier", url)
        return SmartFetchResult(url=url, items=(), tier=None, attempts=tuple(attempts))


def smart_fetch(url: str, *, settings: Optional[Settings] = None) -> SmartFetchResult:
    return SmartFetcher(settings).fetch(url)
