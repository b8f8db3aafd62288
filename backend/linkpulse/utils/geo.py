"""
IP geolocation through an ordered chain of HTTP providers.

Every provider gets exactly one attempt per lookup, bounded by a timeout.
The first response passing that provider's validity check wins; otherwise
the next provider is tried. Nothing here raises to the caller: a lookup
that exhausts the chain comes back as the "unknown" sentinel.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence, TypeVar

import httpx

from ..config import settings
from ..core.exceptions import ResolutionDegraded
from ..models.click import UNKNOWN
from .logger import get_logger, hash_ip
from .network import normalize_ip

log = get_logger(__name__)

USER_AGENT = "LinkPulse/1.0"

T = TypeVar("T")

# Private IP patterns, never sent to a provider
PRIVATE_IP_PATTERNS = [
    re.compile(r'^127\.'),  # Loopback
    re.compile(r'^10\.'),  # Class A private
    re.compile(r'^172\.(1[6-9]|2[0-9]|3[0-1])\.'),  # Class B private
    re.compile(r'^192\.168\.'),  # Class C private
    re.compile(r'^169\.254\.'),  # Link-local
    re.compile(r'^::1$'),  # IPv6 loopback
    re.compile(r'^f[cd][0-9a-f]{2}:', re.IGNORECASE),  # IPv6 unique local
    re.compile(r'^fe80:', re.IGNORECASE),  # IPv6 link-local
]


def is_private_ip(ip: str) -> bool:
    """Check if IP address is private/local"""
    if not ip:
        return True
    for pattern in PRIVATE_IP_PATTERNS:
        if pattern.match(ip):
            return True
    return False


def lookup_address(ip: Optional[str]) -> Optional[str]:
    """The address to send to providers, or None if it must not be looked up"""
    address = normalize_ip(ip)
    if address is None or is_private_ip(address):
        return None
    return address


@dataclass(frozen=True)
class GeoLocation:
    """Coarse location of a network address"""
    city: str = UNKNOWN
    country: str = UNKNOWN


UNKNOWN_LOCATION = GeoLocation()


class HttpLookup:
    """
    One link of a fallback chain.

    Subclasses describe the request and how to read the response; attempt()
    raises httpx.HTTPError or ValueError on transport/decoding problems and
    ResolutionDegraded when the response is well-formed but unusable.
    """

    name: str = "lookup"

    def is_configured(self) -> bool:
        return True

    def request_url(self, value: str) -> str:
        raise NotImplementedError

    def request_params(self, value: str) -> Optional[Dict[str, str]]:
        return None

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return True

    def parse(self, data: Dict[str, Any]):
        raise NotImplementedError

    def attempt(self, client: httpx.Client, value: str, timeout: float):
        response = client.get(
            self.request_url(value),
            params=self.request_params(value),
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
        )
        response.raise_for_status()
        data = response.json()

        if not isinstance(data, dict) or not self.is_valid(data):
            raise ResolutionDegraded(self.name, "invalid response")

        result = self.parse(data)
        if not result:
            raise ResolutionDegraded(self.name, "empty result")
        return result


class GeoProvider(HttpLookup):
    """Resolves an IP address to a GeoLocation"""

    city_field = "city"
    country_field = "country"

    def parse(self, data: Dict[str, Any]) -> GeoLocation:
        return GeoLocation(
            city=data.get(self.city_field) or UNKNOWN,
            country=data.get(self.country_field) or UNKNOWN,
        )


class IpApiProvider(GeoProvider):
    """ip-api.com, free, 45 req/min limit"""
    name = "ip-api"

    def request_url(self, ip: str) -> str:
        return f"http://ip-api.com/json/{ip}"

    def request_params(self, ip: str) -> Dict[str, str]:
        return {"fields": "status,country,city,query"}

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return data.get("status") == "success"


class IpGeolocationProvider(GeoProvider):
    name = "ipgeolocation"
    country_field = "country_name"

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def request_url(self, ip: str) -> str:
        return "https://api.ipgeolocation.io/ipgeo"

    def request_params(self, ip: str) -> Dict[str, str]:
        return {"apiKey": self.api_key, "ip": ip}

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return not data.get("message")


class IpStackProvider(GeoProvider):
    name = "ipstack"
    country_field = "country_name"

    def __init__(self, access_key: Optional[str]):
        self.access_key = access_key

    def is_configured(self) -> bool:
        return bool(self.access_key)

    def request_url(self, ip: str) -> str:
        return f"http://api.ipstack.com/{ip}"

    def request_params(self, ip: str) -> Dict[str, str]:
        return {"access_key": self.access_key}

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return not data.get("error")


class PublicIpService(HttpLookup):
    """Reports the public address the request was seen from"""

    def __init__(self, name: str, url: str, field: str):
        self.name = name
        self.url = url
        self.field = field

    def request_url(self, value: str) -> str:
        return self.url

    def parse(self, data: Dict[str, Any]) -> Optional[str]:
        value = data.get(self.field)
        if not value:
            return None
        # httpbin may report a proxy chain
        return normalize_ip(str(value).split(",")[0])


def default_geo_providers() -> list[GeoProvider]:
    return [
        IpApiProvider(),
        IpGeolocationProvider(settings.IPGEOLOCATION_KEY),
        IpStackProvider(settings.IPSTACK_KEY),
    ]


def default_public_ip_services() -> list[PublicIpService]:
    return [
        PublicIpService("ipify", "https://api.ipify.org?format=json", "ip"),
        PublicIpService("ipapi.co", "https://ipapi.co/json", "ip"),
        PublicIpService("httpbin", "https://httpbin.org/ip", "origin"),
    ]


class GeoResolver:
    """Walks the provider chains for geolocation and public IP discovery"""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        providers: Optional[Sequence[GeoProvider]] = None,
        ip_services: Optional[Sequence[PublicIpService]] = None,
        timeout: Optional[float] = None,
    ):
        self.client = client or httpx.Client()
        self.providers = list(providers) if providers is not None else default_geo_providers()
        self.ip_services = list(ip_services) if ip_services is not None else default_public_ip_services()
        self.timeout = timeout if timeout is not None else settings.GEO_LOOKUP_TIMEOUT

    def _first_valid(self, chain: Iterable[HttpLookup], value: str, kind: str) -> Optional[T]:
        for lookup in chain:
            if not lookup.is_configured():
                continue

            try:
                result = lookup.attempt(self.client, value, self.timeout)
            except Exception as e:
                # Whatever a provider does, the chain moves on
                log.warning(
                    f"{kind}_lookup_failed",
                    provider=lookup.name,
                    ip=hash_ip(value) if value else None,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            log.debug(f"{kind}_lookup_succeeded", provider=lookup.name)
            return result

        return None

    def try_resolve(self, ip: Optional[str]) -> Optional[GeoLocation]:
        """
        Location from the first provider that answers validly, or None.

        Missing, malformed and private addresses are never looked up.
        """
        address = lookup_address(ip)
        if address is None:
            return None
        return self._first_valid(self.providers, address, "geo")

    def resolve(self, ip: Optional[str]) -> GeoLocation:
        """
        Get the location of an IP address.

        Never raises; returns city/country "unknown" when the address cannot
        be looked up or every provider failed.
        """
        address = lookup_address(ip)
        if address is None:
            log.debug("geo_lookup_skipped", ip=hash_ip(normalize_ip(ip)))
            return UNKNOWN_LOCATION

        location = self._first_valid(self.providers, address, "geo")
        if location is None:
            log.warning("geo_lookup_exhausted", ip=hash_ip(address))
            return UNKNOWN_LOCATION
        return location

    def discover_public_ip(self) -> Optional[str]:
        """Public address of this server as seen by an external service"""
        return self._first_valid(self.ip_services, "", "public_ip")

    def close(self) -> None:
        self.client.close()
