"""Runtime settings read from the environment.

Entry scripts call `load_dotenv()` first; library code only reads `os.environ`.
Timeouts are in seconds.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env.get(name, default))
    except (TypeError, ValueError):
        return default


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(env.get(name, default))
    except (TypeError, ValueError):
        return default


def _str(env: Mapping[str, str], name: str) -> Optional[str]:
    value = (env.get(name) or "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    # timeouts
    rss_fetch_timeout: float = 10.0
    discovery_timeout: float = 10.0
    discovery_probe_timeout: float = 5.0
    scraper_timeout: float = 15.0
    feed_process_timeout: float = 15.0
    proxy_timeout: float = 30.0
    webhook_timeout: float = 20.0

    # feed cache
    cache_ttl: int = 3600
    cache_check_period: int = 600
    cache_max_entries: int = 1024

    # content limits
    max_scraped_items: int = 20
    max_content_length: int = 500
    max_feeds_per_request: int = 50
    max_response_bytes: int = 5_000_000

    # credentials
    scrapingbee_api_key: Optional[str] = None
    scrapingbee_endpoint: str = "https://app.scrapingbee.com/api/v1/"
    webhook_url: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            rss_fetch_timeout=_float(env, "RSS_FETCH_TIMEOUT", 10.0),
            discovery_timeout=_float(env, "RSS_DISCOVERY_TIMEOUT", 10.0),
            discovery_probe_timeout=_float(env, "RSS_DISCOVERY_FAST_TIMEOUT", 5.0),
            scraper_timeout=_float(env, "SCRAPER_TIMEOUT", 15.0),
            feed_process_timeout=_float(env, "FEED_PROCESS_TIMEOUT", 15.0),
            proxy_timeout=_float(env, "SCRAPINGBEE_TIMEOUT", 30.0),
            webhook_timeout=_float(env, "WEBHOOK_TIMEOUT", 20.0),
            cache_ttl=_int(env, "RSS_CACHE_TTL", 3600),
            cache_check_period=_int(env, "RSS_CACHE_CHECK_PERIOD", 600),
            cache_max_entries=_int(env, "RSS_CACHE_MAX_ENTRIES", 1024),
            max_scraped_items=_int(env, "MAX_SCRAPED_ITEMS", 20),
            max_content_length=_int(env, "MAX_CONTENT_LENGTH", 500),
            max_feeds_per_request=_int(env, "MAX_FEEDS_PER_REQUEST", 50),
            max_response_bytes=_int(env, "MAX_RESPONSE_BYTES", 5_000_000),
            scrapingbee_api_key=_str(env, "SCRAPINGBEE_API_KEY"),
            scrapingbee_endpoint=_str(env, "SCRAPINGBEE_ENDPOINT") or "https://app.scrapingbee.com/api/v1/",
            webhook_url=_str(env, "WEBHOOK_URL"),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
