#!/usr/bin/env python3
"""Intel collection worker.

Runs one collection cycle over INTEL_FEEDS (comma separated), or repeats it
every INTEL_INTERVAL_MINUTES when INGEST_MODE=scheduled. When WEBHOOK_URL is
set the report is delivered to it.
"""

from __future__ import annotations

import logging
import os
import time
from typing import List

import schedule
from dotenv import load_dotenv

from feedgenie.config import get_settings
from feedgenie.errors import UrlValidationError
from feedgenie.intel.collector import collect_intel
from feedgenie.intel.webhook import IntelWebhookClient
from feedgenie.security.url_safety import validate_urls

logger = logging.getLogger("intel_worker")


def configured_feeds() -> List[str]:
    raw = os.environ.get("INTEL_FEEDS", "")
    return [f.strip() for f in raw.split(",") if f.strip()]


def run_once() -> int:
    feeds = configured_feeds()
    if not feeds:
        logger.warning("INTEL_FEEDS is empty; nothing to collect")
        return 0

    batch = validate_urls(feeds)
    for bad in batch.invalid:
        logger.warning("skipping %s: %s (%s)", bad.url, bad.message, bad.reason.value)

    try:
        report = collect_intel(batch.valid)
    except UrlValidationError as e:
        logger.error("collection rejected: %s", e)
        return 2

    empty = [r.url for r in report.results if not r.succeeded]
    logger.info("[intel] feeds=%d items=%d empty=%d", len(batch.valid), report.total_items, len(empty))
    for url in empty:
        logger.info("[intel] no items from %s", url)

    settings = get_settings()
    if settings.webhook_url:
        outcome = IntelWebhookClient(settings=settings).send_report(report.to_dict())
        logger.info("[intel] report delivery: %s", outcome.get("status"))
    return 0


def run_scheduled() -> None:
    interval = int(os.environ.get("INTEL_INTERVAL_MINUTES", "30"))
    run_once()
    schedule.every(interval).minutes.do(run_once)
    while True:
        schedule.run_pending()
        time.sleep(5)


def main() -> int:
    load_dotenv()
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    mode = (os.environ.get("INGEST_MODE") or "once").lower().strip()
    if mode in ("scheduled", "daemon"):
        run_scheduled()
        return 0
    return run_once()


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.")
        raise SystemExit(130)
