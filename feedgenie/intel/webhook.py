"""Client for the intel automation webhook.

Batch add/delete requests are dispatched concurrently and every URL gets its
own outcome, aligned with the input order; one failing call never aborts the
batch. The webhook host is operator configuration (often an internal
automation box) so it is not passed through the outbound URL gate. URLs in
the payload are only forwarded, never fetched here.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from feedgenie.config import Settings, get_settings
from feedgenie.errors import ConfigurationError

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class ForwardResult:
    url: str
    success: bool
    data: Any = None
    error: Any = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"url": self.url, "success": self.success}
        if self.success:
            out["data"] = self.data
        else:
            out["error"] = self.error
        return out


def _response_body(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class IntelWebhookClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.base_url = (base_url or settings.webhook_url or "").rstrip("/")
        self.timeout = settings.webhook_timeout if timeout is None else timeout
        # one worker per URL, capped by the per-request batch limit
        self.max_workers = settings.max_feeds_per_request if max_workers is None else max_workers

    def _endpoint(self, path: str) -> str:
        if not self.base_url:
            raise ConfigurationError("WEBHOOK_URL")
        return f"{self.base_url}/{path}"

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        response = requests.post(self._endpoint(path), json=payload, timeout=self.timeout)
        response.raise_for_status()
        return _response_body(response)

    def _forward(self, path: str, url: str) -> ForwardResult:
        try:
            data = self._post(path, {"url": url})
        except requests.exceptions.HTTPError as e:
            error = _response_body(e.response) if e.response is not None else str(e)
            logger.warning("webhook %s rejected %s: %s", path, url, error)
            return ForwardResult(url=url, success=False, error=error)
        except requests.exceptions.RequestException as e:
            logger.warning("webhook %s failed for %s: %s", path, url, e)
            return ForwardResult(url=url, success=False, error=str(e))
        return ForwardResult(url=url, success=True, data=data)

    def _forward_all(self, path: str, urls: Sequence[str]) -> List[ForwardResult]:
        if not urls:
            raise ValueError("URLs array is required")
        self._endpoint(path)
        workers = max(1, min(self.max_workers, len(urls)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda u: self._forward(path, u), urls))
        failed = sum(1 for r in results if not r.success)
        logger.info("webhook %s: %d sent, %d failed", path, len(results), failed)
        return results

    def add_urls(self, urls: Sequence[str]) -> List[ForwardResult]:
        return self._forward_all("addintelurl", urls)

    def delete_urls(self, urls: Sequence[str]) -> List[ForwardResult]:
        return self._forward_all("deleteintelurl", urls)

    def get_daily_intel(self, date: str) -> Any:
        """Fetch the stored intel digest for `date` (YYYY-MM-DD)."""
        if not date or not isinstance(date, str) or not DATE_RE.match(date):
            raise ValueError("Date is required in format YYYY-MM-DD")
        return self._post("getdailyintel", {"params": {"date": date}})

    def send_report(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Deliver a collected intel report to the webhook root. Never raises."""
        if not self.base_url:
            return {"status": "disabled"}
        try:
            response = requests.post(self.base_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error("intel report delivery failed: %s", e)
            return {"status": "failed", "error": str(e)}
        return {"status": "delivered", "code": response.status_code}
