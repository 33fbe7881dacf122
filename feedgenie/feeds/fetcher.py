"""Fetch + parse a feed URL, served from the feed cache when fresh."""

from __future__ import annotations

import logging
from typing import Optional

from feedgenie.config import Settings, get_settings
from feedgenie.feeds.cache import FeedCache, get_default_cache
from feedgenie.feeds.models import ResolvedFeed
from feedgenie.feeds.parser import parse_feed
from feedgenie.fetching import client
from feedgenie.security.url_safety import require_safe_url

logger = logging.getLogger(__name__)


def fetch_and_parse(
    feed_url: str,
    *,
    bypass_cache: bool = False,
    cache: Optional[FeedCache] = None,
    settings: Optional[Settings] = None,
) -> ResolvedFeed:
    """Return the parsed feed at `feed_url`.

    A cache hit comes back with `from_cache=True`. Failed fetches and parses are
    never cached; FetchError/ParseError propagate to the caller.
    """
    settings = settings or get_settings()
    require_safe_url(feed_url)
    cache = cache if cache is not None else get_default_cache()

    if not bypass_cache:
        hit = cache.get(feed_url)
        if hit is not None:
            logger.debug("feed cache hit %s", feed_url)
            return hit

    body = client.fetch_direct(feed_url, timeout=settings.rss_fetch_timeout, settings=settings)
    feed = parse_feed(body, feed_url)
    cache.set(feed_url, feed)
    logger.info("fetched feed %s (%d items)", feed_url, len(feed.items))
    return feed
