"""Best-effort content scraping for pages that publish no feed.

Item extraction is an ordered tuple of strategies; the first one that returns
anything wins and nothing is merged across strategies:

- `extract_structured_items`: article-like containers, most specific selector
  first; the first selector that yields items is used on its own
- `extract_heading_links`: anchors that contain, or sit inside, a heading
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag
from dateutil import parser as date_parser

from feedgenie.config import Settings, get_settings
from feedgenie.feeds.models import FeedItem, utcnow
from feedgenie.fetching import client
from feedgenie.security.url_safety import require_safe_url

logger = logging.getLogger(__name__)

ARTICLE_SELECTORS = (
    "article",
    '[role="article"]',
    ".post",
    ".entry",
    ".article",
    ".blog-post",
    ".news-item",
    ".card",
    ".item",
    "main section",
    ".content-item",
)

HEADINGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
CONTENT_SELECTOR = "p, .excerpt, .summary, .description"
DATE_SELECTOR = "time, .date, .published, .post-date"
TITLE_SELECTOR = ".title, .headline"

MIN_ITEM_TITLE = 3
# heading-link fallback accepts 6..199 characters
MIN_LINK_TITLE = 6
MAX_LINK_TITLE = 199
DEFAULT_FAVICON = "/favicon.ico"


@dataclass(frozen=True)
class ScrapedPage:
    url: str
    title: str
    description: str = ""
    site_name: str = ""
    favicon: Optional[str] = None
    items: Tuple[FeedItem, ...] = ()
    scraped_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "siteName": self.site_name,
            "favicon": self.favicon,
            "scrapedAt": self.scraped_at.isoformat(),
            "items": [
                {
                    "title": it.title,
                    "link": it.link,
                    "content": it.content,
                    "pubDate": it.published_at.isoformat() if it.published_at else None,
                    "thumbnail": it.thumbnail,
                }
                for it in self.items
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScrapedPage":
        items = tuple(
            FeedItem(
                title=raw["title"],
                link=raw["link"],
                content=raw.get("content") or "",
                published_at=parse_date(raw.get("pubDate")),
                thumbnail=raw.get("thumbnail") or None,
            )
            for raw in data.get("items") or []
        )
        return cls(
            url=data["url"],
            title=data.get("title") or "Untitled",
            description=data.get("description") or "",
            site_name=data.get("siteName") or "",
            favicon=data.get("favicon") or None,
            items=items,
            scraped_at=parse_date(data.get("scrapedAt")) or utcnow(),
        )


def _text(tag: Optional[Tag]) -> str:
    if tag is None:
        return ""
    return " ".join(tag.get_text(" ").split())


def _meta(soup: BeautifulSoup, **attrs: str) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    return (tag.get("content") or "").strip() or None


def _usable_href(href: Optional[str]) -> bool:
    return bool(href) and not href.startswith("#") and not href.lower().startswith("javascript:")


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a loose date string to an aware UTC datetime, None if unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.parse(str(value).strip())
        except (ValueError, OverflowError, TypeError):
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def extract_item(element: Tag, page_url: str, max_content: int) -> Optional[FeedItem]:
    anchor = element.find("a")
    href = anchor.get("href") if anchor is not None else None
    if not href:
        anchor = element.find("a", href=True)
        href = anchor.get("href") if anchor is not None else None
    if not _usable_href(href):
        return None
    link = urljoin(page_url, href.strip())

    title = (
        _text(element.find(HEADINGS))
        or _text(anchor)
        or _text(element.select_one(TITLE_SELECTOR))
    )
    if len(title) < MIN_ITEM_TITLE:
        return None

    content = _text(element.select_one(CONTENT_SELECTOR))[:max_content]

    date_tag = element.select_one(DATE_SELECTOR)
    published = None
    if date_tag is not None:
        published = parse_date(date_tag.get("datetime") or _text(date_tag))

    thumbnail = None
    img = element.find("img")
    if img is not None:
        src = img.get("src") or img.get("data-src")
        if src:
            thumbnail = urljoin(page_url, src.strip())

    return FeedItem(
        title=title,
        link=link,
        content=content,
        content_snippet=content[:200],
        published_at=published,
        thumbnail=thumbnail,
    )


def extract_structured_items(soup: BeautifulSoup, page_url: str, settings: Settings) -> List[FeedItem]:
    for selector in ARTICLE_SELECTORS:
        items: List[FeedItem] = []
        seen: Set[str] = set()
        for element in soup.select(selector):
            item = extract_item(element, page_url, settings.max_content_length)
            if item is None or item.link in seen:
                continue
            seen.add(item.link)
            items.append(item)
        if items:
            logger.debug("selector %r matched %d items on %s", selector, len(items), page_url)
            return items
    return []


def extract_heading_links(soup: BeautifulSoup, page_url: str, settings: Settings) -> List[FeedItem]:
    items: List[FeedItem] = []
    seen: Set[str] = set()
    for anchor in soup.find_all("a"):
        heading = anchor.find(HEADINGS)
        if heading is None and anchor.find_parent(HEADINGS) is None:
            continue
        href = anchor.get("href")
        if not _usable_href(href):
            continue
        link = urljoin(page_url, href.strip())
        if link in seen:
            continue
        seen.add(link)
        title = _text(heading) or _text(anchor)
        if MIN_LINK_TITLE <= len(title) <= MAX_LINK_TITLE:
            items.append(FeedItem(title=title, link=link))
    return items


ItemStrategy = Callable[[BeautifulSoup, str, Settings], List[FeedItem]]

ITEM_STRATEGIES: Sequence[ItemStrategy] = (
    extract_structured_items,
    extract_heading_links,
)


def extract_items(soup: BeautifulSoup, page_url: str, settings: Settings) -> List[FeedItem]:
    for strategy in ITEM_STRATEGIES:
        items = strategy(soup, page_url, settings)
        if items:
            return items[: settings.max_scraped_items]
    return []


def parse_page(html: Any, page_url: str, *, settings: Optional[Settings] = None) -> ScrapedPage:
    """Extract page metadata and items from already-fetched HTML."""
    settings = settings or get_settings()
    page = require_safe_url(page_url)
    soup = BeautifulSoup(html or "", "html.parser")

    title = _meta(soup, property="og:title") or _text(soup.find("title")) or "Untitled"
    description = _meta(soup, property="og:description") or _meta(soup, name="description") or ""
    site_name = _meta(soup, property="og:site_name") or page.host

    # rel is multi-valued, so this also matches rel="shortcut icon"
    icon = soup.find("link", rel="icon")
    favicon_href = (icon.get("href") or "").strip() if icon is not None else ""
    favicon = urljoin(page.origin + "/", favicon_href or DEFAULT_FAVICON)

    return ScrapedPage(
        url=page_url,
        title=title,
        description=description,
        site_name=site_name,
        favicon=favicon,
        items=tuple(extract_items(soup, page_url, settings)),
    )


def scrape(page_url: str, *, settings: Optional[Settings] = None) -> ScrapedPage:
    """Fetch `page_url` directly and scrape it. FetchError propagates."""
    settings = settings or get_settings()
    require_safe_url(page_url)
    body = client.fetch_html(page_url, timeout=settings.scraper_timeout, settings=settings)
    page = parse_page(body, page_url, settings=settings)
    logger.info("scraped %s (%d items)", page_url, len(page.items))
    return page
