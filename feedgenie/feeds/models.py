"""Normalized feed records shared by parsing, scraping and synthesis."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_id(*parts: Any) -> str:
    """Stable item identifier (md5 over the concatenated parts)."""
    joined = "".join(str(p) for p in parts if p is not None)
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


@dataclass(frozen=True)
class FeedItem:
    """One content unit. Immutable once built.

    `id` defaults to hash_id(link, published ISO timestamp); the intel pipeline
    passes its own id built from the raw published string.
    """

    title: str
    link: str
    content: str = ""
    content_snippet: str = ""
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    thumbnail: Optional[str] = None
    categories: Tuple[str, ...] = ()
    guid: Optional[str] = None
    source: Optional[str] = None
    tier: Optional[str] = None
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            object.__setattr__(self, "id", hash_id(self.link, _iso(self.published_at) or ""))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "link": self.link,
            "pubDate": _iso(self.published_at),
            "creator": self.author or "",
            "content": self.content,
            "contentSnippet": self.content_snippet,
            "categories": list(self.categories),
            "guid": self.guid or self.link,
            "thumbnail": self.thumbnail,
        }
        if self.source is not None:
            out["source"] = self.source
        if self.tier is not None:
            out["tier"] = self.tier
        return out

    def to_intel_dict(self) -> Dict[str, Any]:
        """Shape handed to the summarization collaborator."""
        return {
            "id": self.id,
            "title": self.title,
            "url": self.link,
            "content": self.content,
            "published": _iso(self.published_at) or "",
            "source": self.source or "",
            "tier": self.tier or "",
        }


@dataclass(frozen=True)
class ResolvedFeed:
    title: str
    description: str
    link: str
    language: str = "en"
    items: Tuple[FeedItem, ...] = ()
    last_build_date: Optional[datetime] = None
    generated_at: datetime = field(default_factory=utcnow)
    # cache-hit metadata, not part of the feed's identity
    from_cache: bool = field(default=False, compare=False)
    cached_at: Optional[datetime] = field(default=None, compare=False)

    def as_cache_hit(self, cached_at: datetime) -> "ResolvedFeed":
        return replace(self, from_cache=True, cached_at=cached_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "link": self.link,
            "language": self.language,
            "lastBuildDate": _iso(self.last_build_date or self.generated_at),
            "generatedAt": _iso(self.generated_at),
            "fromCache": self.from_cache,
            "items": [item.to_dict() for item in self.items],
        }
