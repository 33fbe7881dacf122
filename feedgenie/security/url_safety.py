"""Outbound URL gate (SSRF protection).

Every URL the pipeline is about to fetch goes through `require_safe_url` first,
including redirect hops and feed links pulled out of HTML.

Checks, in order:
- well-formed absolute URL
- http/https only
- hostname not on the loopback/metadata blocklist
- IP literals outside private/reserved ranges
- no embedded credentials
"""

from __future__ import annotations

import ipaddress
import re
import socket
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union
from urllib.parse import SplitResult, urlsplit

from feedgenie.errors import RejectionReason, UrlValidationError


ALLOWED_SCHEMES = ("http", "https")

BLOCKED_HOSTNAMES = (
    "localhost",
    "localhost.localdomain",
    "0.0.0.0",
    "::",
    "::1",
    "[::]",
    "[::1]",
    "metadata.google.internal",  # GCP metadata
    "metadata.google",
    "169.254.169.254",  # AWS/Azure/GCP metadata endpoint
)

_PRIVATE_V4_NETS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("100.64.0.0/10"),  # carrier-grade NAT
    ipaddress.ip_network("192.0.0.0/24"),
    ipaddress.ip_network("192.0.2.0/24"),  # TEST-NET-1
    ipaddress.ip_network("198.51.100.0/24"),  # TEST-NET-2
    ipaddress.ip_network("203.0.113.0/24"),  # TEST-NET-3
    ipaddress.ip_network("224.0.0.0/4"),  # multicast
    ipaddress.ip_network("240.0.0.0/4"),  # reserved, includes 255.255.255.255
]

_PRIVATE_V6_NETS = [
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("::/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("ff00::/8"),
]

_DOTTED_QUAD = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
# Shorthand IPv4 forms browsers accept: 127.1, 0x7f000001, 2130706433
_NUMERIC_HOST = re.compile(r"^(0x[0-9a-f]+|\d+)(\.(0x[0-9a-f]+|\d+)){0,3}$")
_BAD_HOST_CHARS = set(' \t\r\n<>"{}|\\^`')

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class CandidateUrl:
    """A parsed URL that passed the gate."""

    raw: str
    scheme: str
    host: str
    port: Optional[int]
    path: str
    query: str = ""

    @property
    def origin(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is None:
            return f"{self.scheme}://{host}"
        return f"{self.scheme}://{host}:{self.port}"

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class ValidationVerdict:
    accepted: bool
    reason: Optional[RejectionReason] = None
    message: str = ""
    url: Optional[CandidateUrl] = None

    def raise_for_rejection(self, raw: Optional[str] = None) -> CandidateUrl:
        if not self.accepted or self.url is None:
            raise UrlValidationError(self.reason or RejectionReason.INVALID_FORMAT, self.message, raw)
        return self.url


@dataclass(frozen=True)
class InvalidUrl:
    url: str
    reason: RejectionReason
    message: str


@dataclass(frozen=True)
class BatchValidation:
    valid: List[str]
    invalid: List[InvalidUrl]


def _reject(reason: RejectionReason, message: str) -> ValidationVerdict:
    return ValidationVerdict(accepted=False, reason=reason, message=message)


def _is_blocked_hostname(host: str) -> bool:
    return any(host == blocked or host.endswith("." + blocked) for blocked in BLOCKED_HOSTNAMES)


def _parse_ip_literal(host: str) -> Optional[IPAddress]:
    """Return the IP for an IP-literal host, None for a DNS name.

    Raises ValueError for something that looks like an IP literal but is not one.
    """
    if ":" in host:
        return ipaddress.IPv6Address(host.split("%", 1)[0])
    if _DOTTED_QUAD.match(host) or _NUMERIC_HOST.match(host):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError as e:
            raise ValueError(f"invalid IPv4 literal: {host}") from e
    return None


def is_private_ip(ip: IPAddress) -> bool:
    if isinstance(ip, ipaddress.IPv6Address):
        if ip.ipv4_mapped is not None:
            return is_private_ip(ip.ipv4_mapped)
        return any(ip in net for net in _PRIVATE_V6_NETS)
    return any(ip in net for net in _PRIVATE_V4_NETS)


def validate_url(url: object) -> ValidationVerdict:
    """Classify a URL as safe or unsafe for an outbound fetch. Never raises."""
    if not url or not isinstance(url, str) or not url.strip():
        return _reject(RejectionReason.INVALID_FORMAT, "URL is required")
    raw = url.strip()

    try:
        parts: SplitResult = urlsplit(raw)
        port = parts.port
    except ValueError:
        return _reject(RejectionReason.INVALID_FORMAT, f"Invalid URL format: {raw}")
    if not parts.scheme:
        return _reject(RejectionReason.INVALID_FORMAT, f"Invalid URL format: {raw}")

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return _reject(
            RejectionReason.DISALLOWED_PROTOCOL,
            f"Invalid protocol: {scheme}:. Only HTTP and HTTPS are allowed.",
        )

    host = (parts.hostname or "").strip().lower().rstrip(".")
    if not host or any(ch in _BAD_HOST_CHARS for ch in host):
        return _reject(RejectionReason.INVALID_FORMAT, f"Invalid URL format: {raw}")

    if _is_blocked_hostname(host):
        return _reject(RejectionReason.BLOCKED_HOSTNAME, f"Blocked hostname: {host}")

    try:
        ip = _parse_ip_literal(host)
    except ValueError:
        return _reject(RejectionReason.INVALID_FORMAT, f"Invalid URL format: {raw}")
    if ip is not None and is_private_ip(ip):
        return _reject(RejectionReason.PRIVATE_IP, f"Private IP addresses are not allowed: {ip}")

    if parts.username or parts.password:
        return _reject(RejectionReason.CREDENTIALS_NOT_ALLOWED, "URLs with credentials are not allowed")

    candidate = CandidateUrl(
        raw=raw,
        scheme=scheme,
        host=str(ip) if ip is not None else host,
        port=port,
        path=parts.path or "/",
        query=parts.query,
    )
    return ValidationVerdict(accepted=True, url=candidate)


def require_safe_url(url: object) -> CandidateUrl:
    """Return the parsed URL or raise UrlValidationError."""
    verdict = validate_url(url)
    return verdict.raise_for_rejection(url if isinstance(url, str) else None)


def is_valid_url(url: object) -> bool:
    return validate_url(url).accepted


def validate_urls(urls: Iterable[str]) -> BatchValidation:
    """Partition URLs into valid/invalid, keeping input order in each list."""
    valid: List[str] = []
    invalid: List[InvalidUrl] = []
    for url in urls:
        verdict = validate_url(url)
        if verdict.accepted:
            valid.append(url)
        else:
            invalid.append(InvalidUrl(url=url, reason=verdict.reason, message=verdict.message))
    return BatchValidation(valid=valid, invalid=invalid)
