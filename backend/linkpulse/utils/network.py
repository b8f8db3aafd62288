"""
Client address extraction for click analytics.

This is a best-effort heuristic over proxy headers. It must only feed
analytics and never access control: every header it reads is client
controlled unless a trusted proxy overwrites it.
"""

import ipaddress
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional

# Highest priority first; X-Forwarded-For is handled separately
PROXY_HEADERS = (
    "cf-connecting-ip",  # Cloudflare
    "x-azure-clientip",  # Azure Front Door
    "x-real-ip",  # nginx
    "x-client-ip",
)
FORWARDED_FOR_HEADER = "x-forwarded-for"

IPV6_MAPPED_PREFIX = "::ffff:"
LOOPBACK_ADDRESSES = {"127.0.0.1", "::1", "localhost"}


@dataclass
class RequestMetadata:
    """Transport details of a resolution request"""
    headers: Mapping[str, str] = field(default_factory=dict)
    peer_address: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    @property
    def user_agent(self) -> str:
        return self.header("user-agent") or ""

    @property
    def referer(self) -> Optional[str]:
        return self.header("referer") or self.header("referrer")

    @classmethod
    def from_request(cls, request) -> "RequestMetadata":
        """Snapshot a FastAPI request so it can outlive the response"""
        return cls(
            headers=dict(request.headers),
            peer_address=request.client.host if request.client else None,
        )


def is_loopback(ip: str) -> bool:
    return ip in LOOPBACK_ADDRESSES


def normalize_ip(value: Optional[str]) -> Optional[str]:
    """
    Canonical text of an IP address, or None if the value is not one.

    Strips whitespace and the IPv6-mapped prefix. Proxy placeholders such as
    "unknown" or anything carrying URL syntax are rejected.
    """
    value = (value or "").strip()
    if value.lower().startswith(IPV6_MAPPED_PREFIX):
        value = value[len(IPV6_MAPPED_PREFIX):]
    if not value:
        return None

    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def _candidates(metadata: RequestMetadata) -> Iterator[Optional[str]]:
    for header in PROXY_HEADERS:
        yield metadata.header(header)

    forwarded = metadata.header(FORWARDED_FOR_HEADER)
    if forwarded:
        # Take the first IP in the chain
        yield forwarded.split(",")[0]

    yield metadata.peer_address


def extract_client_ip(metadata: RequestMetadata) -> Optional[str]:
    """
    Get the best-guess client IP address.

    Sources are tried in precedence order; a blank or malformed value falls
    through to the next source.

    Args:
        metadata: Headers and peer address of the request

    Returns:
        Client IP address, or None when only a loopback or nothing was found,
        in which case the caller should fall back to public address discovery
    """
    for candidate in _candidates(metadata):
        if candidate and is_loopback(candidate.strip().lower()):
            return None

        client_ip = normalize_ip(candidate)
        if client_ip is None:
            continue

        if ipaddress.ip_address(client_ip).is_loopback:
            return None
        return client_ip

    return None
