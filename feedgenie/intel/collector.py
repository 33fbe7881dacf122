"""Bulk intel collection over many feed/page URLs."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from feedgenie.config import Settings, get_settings
from feedgenie.feeds.models import FeedItem, utcnow
from feedgenie.intel.smart_fetch import SmartFetchResult, SmartFetcher
from feedgenie.security.url_safety import require_safe_url

logger = logging.getLogger(__name__)

ENGINE = "FeedGenie Intel v2.2"
DEFAULT_WORKERS = 8


@dataclass(frozen=True)
class IntelReport:
    engine: str
    timestamp: str
    total_items: int
    items: Tuple[FeedItem, ...]
    results: Tuple[SmartFetchResult, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine": self.engine,
            "timestamp": self.timestamp,
            "total_items": self.total_items,
            "data": [it.to_intel_dict() for it in self.items],
        }


def collect_intel(
    feeds: Iterable[Any],
    *,
    settings: Optional[Settings] = None,
    max_workers: int = DEFAULT_WORKERS,
) -> IntelReport:
    """Smart-fetch every string in `feeds` concurrently; items keep input order.

    All URLs are validated before any network call, so one unsafe URL rejects
    the whole batch with UrlValidationError. Non-string entries are skipped.
    """
    settings = settings or get_settings()
    urls: List[str] = [f for f in feeds if isinstance(f, str)]
    for url in urls:
        require_safe_url(url)

    results: List[SmartFetchResult] = []
    if urls:
        fetcher = SmartFetcher(settings)
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(urls)))) as pool:
            results = list(pool.map(fetcher.fetch, urls))

    items = tuple(item for result in results for item in result.items)
    logger.info("collected %d items from %d feeds", len(items), len(urls))
    return IntelReport(
        engine=ENGINE,
        timestamp=utcnow().isoformat(),
        total_items=len(items),
        items=items,
        results=tuple(results),
    )


def process_feeds(payload: Mapping[str, Any], *, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Handle a `{feeds: [...]}` or `{url: ...}` request body.

    Raises ValueError for a malformed or oversized request.
    """
    settings = settings or get_settings()
    feeds = payload.get("feeds")
    if isinstance(feeds, list) and feeds:
        urls = feeds
    elif payload.get("url"):
        urls = [payload["url"]]
    else:
        raise ValueError("feeds must be a non-empty array or url must be provided")

    if len(urls) > settings.max_feeds_per_request:
        raise ValueError(f"Too many feeds: at most {settings.max_feeds_per_request} per request")

    report = collect_intel(urls, settings=settings)
    return {
        "feed": {"items": [it.to_intel_dict() for it in report.items]},
        "total_items": report.total_items,
        "engine": report.engine,
        "timestamp": report.timestamp,
    }
