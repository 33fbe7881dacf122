"""Raw content fetch tiers.

- direct: plain GET with a browser-like user agent
- proxy: ScrapingBee rendering proxy for sites that block bots or need JS

Both are stateless; retries and fallback belong to the caller. Redirects are
followed by hand so every hop goes back through the URL gate. Failures raise
FetchError.
"""

from __future__ import annotations

import logging
import zlib
from typing import Dict, Mapping, Optional

import requests
from requests.structures import CaseInsensitiveDict

from feedgenie.config import Settings, get_settings
from feedgenie.errors import ConfigurationError, FetchError, UrlValidationError
from feedgenie.security.url_safety import require_safe_url

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0 Safari/537.36"
)
HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
FEED_ACCEPT = "application/rss+xml,application/atom+xml,application/xml;q=0.9,text/xml;q=0.8,*/*;q=0.5"

MAX_REDIRECTS = 5
_REDIRECT_CODES = {301, 302, 303, 307, 308}
_GZIP_MAGIC = b"\x1f\x8b"


def build_headers(accept: str = HTML_ACCEPT, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    headers = {
        "User-Agent": USER_AGENT,
        "Accept": accept,
        "Accept-Language": "en-US,en;q=0.9",
    }
    if extra:
        headers.update(extra)
    return headers


def _open(
    method: str,
    url: str,
    *,
    timeout: float,
    headers: Mapping[str, str],
    params: Optional[Mapping[str, str]] = None,
    label: Optional[str] = None,
) -> requests.Response:
    """Send a request, following redirects through the URL gate.

    `label` replaces the URL in error messages (keeps proxy API keys out of logs).
    """
    current = url
    for hop in range(MAX_REDIRECTS + 1):
        if hop:
            try:
                require_safe_url(current)
            except UrlValidationError as e:
                raise FetchError(label or url, f"redirect blocked: {e.message}") from e
        try:
            resp = requests.request(
                method,
                current,
                headers=dict(headers),
                params=params,
                timeout=timeout,
                allow_redirects=False,
                stream=True,
            )
        except requests.Timeout as e:
            raise FetchError(label or current, "timeout") from e
        except requests.RequestException as e:
            detail = type(e).__name__ if label else str(e)
            raise FetchError(label or current, f"request failed: {detail}") from e

        status = resp.status_code
        location = resp.headers.get("location")
        if status in _REDIRECT_CODES and location:
            resp.close()
            current = requests.compat.urljoin(current, location)
            params = None
            continue
        if not 200 <= status < 300:
            resp.close()
            raise FetchError(label or current, f"http_{status}", status_code=status)
        return resp
    raise FetchError(label or url, "too many redirects")


def _read_body(resp: requests.Response, url: str, max_bytes: int) -> bytes:
    content = b""
    try:
        for chunk in resp.iter_content(chunk_size=64 * 1024):
            if not chunk:
                continue
            content += chunk
            if len(content) > max_bytes:
                raise FetchError(url, "too_large")
    except requests.RequestException as e:
        raise FetchError(url, f"read failed: {type(e).__name__}") from e
    finally:
        resp.close()
    # requests undoes Content-Encoding; this catches gzip payloads served as-is
    if content[:2] == _GZIP_MAGIC:
        content = _gunzip(content, url, max_bytes)
    return content


def _gunzip(content: bytes, url: str, max_bytes: int) -> bytes:
    """Inflate a gzip body, stopping as soon as it passes `max_bytes`."""
    inflater = zlib.decompressobj(16 + zlib.MAX_WBITS)
    try:
        out = inflater.decompress(content, max_bytes + 1)
    except zlib.error as e:
        raise FetchError(url, "gzip decode failed") from e
    if len(out) > max_bytes:
        raise FetchError(url, "too_large")
    if not inflater.eof:
        raise FetchError(url, "gzip decode failed")
    return out


def fetch_direct(
    url: str,
    *,
    timeout: Optional[float] = None,
    accept: str = FEED_ACCEPT,
    settings: Optional[Settings] = None,
) -> bytes:
    """GET `url` and return the (decompressed) body."""
    settings = settings or get_settings()
    require_safe_url(url)
    timeout = settings.feed_process_timeout if timeout is None else timeout
    logger.debug("direct GET %s", url)
    resp = _open("GET", url, timeout=timeout, headers=build_headers(accept))
    return _read_body(resp, url, settings.max_response_bytes)


def fetch_html(url: str, *, timeout: Optional[float] = None, settings: Optional[Settings] = None) -> bytes:
    return fetch_direct(url, timeout=timeout, accept=HTML_ACCEPT, settings=settings)


def fetch_via_proxy(url: str, *, timeout: Optional[float] = None, settings: Optional[Settings] = None) -> bytes:
    """Fetch `url` through the rendering proxy (JS rendering + premium proxy)."""
    settings = settings or get_settings()
    require_safe_url(url)
    api_key = settings.scrapingbee_api_key
    if not api_key:
        raise ConfigurationError("SCRAPINGBEE_API_KEY")
    timeout = settings.proxy_timeout if timeout is None else timeout
    params = {
        "api_key": api_key,
        "url": url,
        "render_js": "true",
        "premium_proxy": "true",
    }
    logger.debug("proxy GET %s", url)
    resp = _open(
        "GET",
        settings.scrapingbee_endpoint,
        timeout=timeout,
        headers=build_headers(HTML_ACCEPT),
        params=params,
        label=url,
    )
    return _read_body(resp, url, settings.max_response_bytes)


def head(url: str, *, timeout: float) -> CaseInsensitiveDict:
    """HEAD request; returns the response headers."""
    require_safe_url(url)
    resp = _open("HEAD", url, timeout=timeout, headers=build_headers(FEED_ACCEPT))
    try:
        return CaseInsensitiveDict(resp.headers)
    finally:
        resp.close()


def fetch_prefix(url: str, *, nbytes: int = 500, timeout: float) -> bytes:
    """Return at most the first `nbytes` of the body (Range request)."""
    require_safe_url(url)
    headers = build_headers(FEED_ACCEPT, {"Range": f"bytes=0-{nbytes}"})
    resp = _open("GET", url, timeout=timeout, headers=headers)
    content = b""
    try:
        for chunk in resp.iter_content(chunk_size=1024):
            content += chunk or b""
            if len(content) >= nbytes:
                break
    except requests.RequestException as e:
        raise FetchError(url, f"read failed: {type(e).__name__}") from e
    finally:
        resp.close()
    return content[:nbytes]
