#!/usr/bin/env python3
"""Resolve a web page URL to a feed from the command line.

Prints the resolution as JSON (or, with --xml, the generated RSS document).

Exit codes:
- 0: resolved
- 2: the URL was rejected by the safety check
- 1: resolution failed
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

from feedgenie.config import get_settings
from feedgenie.errors import FeedGenieError, UrlValidationError
from feedgenie.resolution.orchestrator import resolve_feed

logger = logging.getLogger("resolve_feed")


def main(argv=None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Discover or generate a feed for a web page")
    parser.add_argument("url", help="Page (or feed) URL to resolve")
    parser.add_argument("--xml", action="store_true", help="Print RSS XML instead of JSON (generated feeds only)")
    parser.add_argument("--bypass-cache", action="store_true", help="Ignore cached feeds")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, get_settings().log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        result = resolve_feed(args.url, bypass_cache=args.bypass_cache)
    except UrlValidationError as e:
        print(json.dumps({"error": e.message, "code": e.code}), file=sys.stderr)
        return 2
    except FeedGenieError as e:
        logger.error("resolution failed: %s", e)
        print(json.dumps({"error": "Failed to process request", "message": str(e)}), file=sys.stderr)
        return 1

    if args.xml:
        if result.rss_xml is None:
            logger.warning("%s has its own feed at %s; no XML was generated", args.url, result.feed_url)
            print(result.feed_url or "")
        else:
            print(result.rss_xml)
    else:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.")
        raise SystemExit(130)
