"""Page URL -> feed resolution.

Validate -> Discover -> FetchFeed, falling back to Scrape -> Synthesize.
Terminal states are `discovered` (an existing feed was fetched) and
`generated` (a feed was synthesized from the page itself).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from feedgenie.config import Settings, get_settings
from feedgenie.discovery.feed_discovery import FAILED, DiscoveryResult, discover
from feedgenie.errors import FetchError, ParseError, ResolutionError
from feedgenie.feeds.cache import FeedCache, get_default_cache
from feedgenie.feeds.fetcher import fetch_and_parse
from feedgenie.feeds.models import ResolvedFeed
from feedgenie.scraping.scraper import scrape
from feedgenie.security.url_safety import require_safe_url
from feedgenie.synthesis.generator import synthesize

logger = logging.getLogger(__name__)

DISCOVERED = "discovered"
GENERATED = "generated"


@dataclass(frozen=True)
class ResolutionResult:
    state: str
    feed: ResolvedFeed
    feed_url: Optional[str] = None
    rss_xml: Optional[str] = None
    discovery: Optional[DiscoveryResult] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "source": self.state,
            "feedUrl": self.feed_url,
            "feed": self.feed.to_dict(),
        }
        if self.rss_xml is not None:
            out["rssXml"] = self.rss_xml
        return out


class FeedResolver:
    def __init__(self, cache: Optional[FeedCache] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else get_default_cache()

    def resolve(self, url: str, *, bypass_cache: bool = False) -> ResolutionResult:
        """Resolve `url` to a feed.

        Raises UrlValidationError before any network call when the URL is unsafe,
        and ResolutionError when scraping (the last resort) fails.
        """
        require_safe_url(url)

        discovery = discover(url, settings=self.settings)
        if discovery.found:
            try:
                feed = fetch_and_parse(
                    discovery.feed_url,
                    bypass_cache=bypass_cache,
                    cache=self.cache,
                    settings=self.settings,
                )
            except (FetchError, ParseError) as e:
                # A discovered feed URL is not guaranteed to be fetchable; scraping
                # the page is preferred over failing the whole request.
                logger.warning(
                    "discovered feed %s for %s unusable (%s); falling back to scrape",
                    discovery.feed_url,
                    url,
                    e,
                )
            else:
                return ResolutionResult(
                    state=DISCOVERED,
                    feed=feed,
                    feed_url=discovery.feed_url,
                    discovery=discovery,
                )
        elif discovery.status == FAILED:
            logger.debug("discovery failed for %s: %s", url, discovery.error)

        try:
            page = scrape(url, settings=self.settings)
        except FetchError as e:
            logger.error("could not resolve %s: %s", url, e)
            raise ResolutionError("Failed to scrape website", e) from e

        synthesized = synthesize(url, page)
        return ResolutionResult(
            state=GENERATED,
            feed=synthesized.feed,
            rss_xml=synthesized.rss_xml,
            discovery=discovery,
        )


def resolve_feed(url: str, *, bypass_cache: bool = False) -> ResolutionResult:
    """Resolve with the process-wide cache and settings."""
    return FeedResolver().resolve(url, bypass_cache=bypass_cache)
