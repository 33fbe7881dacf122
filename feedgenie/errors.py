"""Error taxonomy shared by every pipeline stage.

The routing layer maps `UrlValidationError` to a 400 response and everything
else to a 500. Fetch/parse errors raised inside a fallback tier are caught by
the caller that owns the tier and never reach the routing layer on their own.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class RejectionReason(str, Enum):
    INVALID_FORMAT = "invalid_format"
    DISALLOWED_PROTOCOL = "disallowed_protocol"
    BLOCKED_HOSTNAME = "blocked_hostname"
    PRIVATE_IP = "private_ip"
    CREDENTIALS_NOT_ALLOWED = "credentials_not_allowed"


class FeedGenieError(Exception):
    """Base class for errors raised by feedgenie."""


class UrlValidationError(FeedGenieError):
    def __init__(self, reason: RejectionReason, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.url = url

    @property
    def code(self) -> str:
        return self.reason.value


class FetchError(FeedGenieError):
    """Network failure, timeout or non-2xx response."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.message = message
        self.status_code = status_code


class ParseError(FeedGenieError):
    """Malformed feed document or malformed scraped structure."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message if source is None else f"{message} ({source})")
        self.message = message
        self.source = source


class ConfigurationError(FeedGenieError):
    """A credential needed by the tier being invoked is not configured."""

    def __init__(self, setting: str):
        super().__init__(f"Missing {setting} in environment")
        self.setting = setting


class ResolutionError(FeedGenieError):
    """Every tier of a resolution failed; carries the last tier's error."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        detail = f"{message}: {last_error}" if last_error is not None else message
        super().__init__(detail)
        self.message = message
        self.last_error = last_error
