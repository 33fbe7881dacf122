"""Feed wire contracts.

Two JSON payloads cross the package boundary:
- scraped page data handed to the synthesizer as a plain mapping
- the JSON feed projection served to the frontend (`ResolvedFeed.to_dict()`)

Keys are camelCase because the frontend reads them as-is.
"""

from __future__ import annotations

from typing import Any, Dict, List

from jsonschema import Draft202012Validator


_NULLABLE_STRING = {"type": ["string", "null"]}

SCRAPED_PAGE_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["url", "title", "items"],
    "properties": {
        "url": {"type": "string", "minLength": 1},
        "title": {"type": "string"},
        "description": _NULLABLE_STRING,
        "siteName": _NULLABLE_STRING,
        "favicon": _NULLABLE_STRING,
        "scrapedAt": _NULLABLE_STRING,
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["title", "link"],
                "properties": {
                    "title": {"type": "string", "minLength": 1},
                    "link": {"type": "string", "minLength": 1},
                    "content": _NULLABLE_STRING,
                    "pubDate": _NULLABLE_STRING,
                    "thumbnail": _NULLABLE_STRING,
                },
                "additionalProperties": True,
            },
        },
    },
    "additionalProperties": True,
}

FEED_JSON_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["title", "description", "link", "language", "lastBuildDate", "items"],
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "link": {"type": "string", "minLength": 1},
        "language": {"type": "string", "minLength": 1},
        "lastBuildDate": {"type": "string"},
        "generatedAt": _NULLABLE_STRING,
        "fromCache": {"type": "boolean"},
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["title", "link", "pubDate", "content", "contentSnippet", "guid"],
                "properties": {
                    "id": {"type": "string"},
                    "title": {"type": "string"},
                    "link": {"type": "string"},
                    "pubDate": _NULLABLE_STRING,
                    "creator": {"type": "string"},
                    "content": {"type": "string"},
                    "contentSnippet": {"type": "string"},
                    "categories": {"type": "array", "items": {"type": "string"}},
                    "guid": {"type": "string"},
                    "thumbnail": _NULLABLE_STRING,
                },
                "additionalProperties": True,
            },
        },
    },
    "additionalProperties": True,
}

_SCRAPED_VALIDATOR = Draft202012Validator(SCRAPED_PAGE_SCHEMA)
_FEED_VALIDATOR = Draft202012Validator(FEED_JSON_SCHEMA)


def _errors(validator: Draft202012Validator, payload: Any) -> List[str]:
    errors = []
    for e in sorted(validator.iter_errors(payload), key=lambda x: list(map(str, x.path))):
        path = ".".join(str(p) for p in e.path) or "<root>"
        errors.append(f"{path}: {e.message}")
    return errors


def validate_scraped_page(payload: Any) -> List[str]:
    """Return a list of human-readable validation errors (empty means valid)."""
    return _errors(_SCRAPED_VALIDATOR, payload)


def validate_feed_json(payload: Any) -> List[str]:
    return _errors(_FEED_VALIDATOR, payload)
