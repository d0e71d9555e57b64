"""
IP to country resolution.

Lookups go to a free geolocation service with a fallback, bounded by a
timeout. Addresses that can't be located publicly (loopback, RFC1918,
link-local, junk) are never sent out.
"""

import asyncio
import ipaddress
import logging

import httpx

logger = logging.getLogger(__name__)

UNKNOWN_COUNTRY = "Unknown"

PRIMARY_LOOKUP_URL = "https://ipapi.co/{ip}/country_name/"
FALLBACK_LOOKUP_URL = "http://ip-api.com/json/{ip}?fields=country"
USER_AGENT = "StorefrontAnalytics/0.1"

_SENTINELS = {"", "unknown", "null", "none", "localhost"}


def is_lookup_exempt(ip: str | None) -> bool:
    """Return True if `ip` should resolve to "Unknown" without a lookup."""
    if ip is None:
        return True
    value = ip.strip()
    if value.lower() in _SENTINELS or value.lower().startswith("localhost"):
        return True

    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return True

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return address.is_loopback or address.is_private or not address.is_global


class CountryResolver:
    """Resolves an IP address to a country name. Never raises."""

    def __init__(self, timeout: float = 5.0, client: httpx.AsyncClient | None = None):
        self.timeout = timeout
        self._client = client

    async def resolve_country(self, ip: str | None) -> str:
        if is_lookup_exempt(ip):
            return UNKNOWN_COUNTRY

        try:
            return await asyncio.wait_for(self._lookup(ip.strip()), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"IP geolocation timed out after {self.timeout}s")
        except Exception as e:
            logger.warning(f"IP geolocation failed: {e}")
        return UNKNOWN_COUNTRY

    async def _lookup(self, ip: str) -> str:
        if self._client is not None:
            return await self._lookup_with(self._client, ip)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._lookup_with(client, ip)

    async def _lookup_with(self, client: httpx.AsyncClient, ip: str) -> str:
        headers = {"User-Agent": USER_AGENT}

        response = await client.get(PRIMARY_LOOKUP_URL.format(ip=ip), headers=headers)
        if response.is_success:
            return response.text.strip() or UNKNOWN_COUNTRY

        logger.debug(f"Primary geolocation answered HTTP {response.status_code}, trying fallback")
        response = await client.get(FALLBACK_LOOKUP_URL.format(ip=ip), headers=headers)
        if response.is_success:
            data = response.json()
            country = data.get("country") if isinstance(data, dict) else None
            if isinstance(country, str) and country.strip():
                return country.strip()
        return UNKNOWN_COUNTRY
