"""
IP geolocation with concurrent provider fan-out.

Every configured provider is queried at once, each under its own short timeout.
The first provider to return a usable answer wins and the remaining requests are
cancelled. If none answer, the caller gets None and decides the fallback.
"""

from __future__ import annotations

import asyncio
import ipaddress
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
import structlog

logger = structlog.get_logger()

_CHINA_NAMES = frozenset({"中国", "CN", "China"})


@dataclass(frozen=True)
class GeoLocation:
    """Result of a successful lookup."""

    ip: str
    country_code: str | None
    provider: str
    country_name: str | None = None
    city: str | None = None

    @property
    def is_china(self) -> bool:
        return self.country_code == "CN"


class GeoProvider(ABC):
    """A single geolocation HTTP API."""

    name: str = ""

    @abstractmethod
    async def lookup(self, client: httpx.AsyncClient, ip: str) -> GeoLocation | None:
        """Return a location, or None when the provider has no answer."""
        ...


class IpapiProvider(GeoProvider):
    """ipapi.co: returns ISO country code, country name and city."""

    name = "ipapi"

    async def lookup(self, client: httpx.AsyncClient, ip: str) -> GeoLocation | None:
        response = await client.get(f"https://ipapi.co/{ip}/json/")
        response.raise_for_status()
        data = response.json()
        if not data.get("country_code"):
            return None
        return GeoLocation(
            ip=ip,
            country_code=data["country_code"],
            provider=self.name,
            country_name=data.get("country_name"),
            city=data.get("city"),
        )


class IpApiComProvider(GeoProvider):
    """ip-api.com: free tier, reports ``status`` alongside the payload."""

    name = "ip-api"

    async def lookup(self, client: httpx.AsyncClient, ip: str) -> GeoLocation | None:
        response = await client.get(
            f"http://ip-api.com/json/{ip}",
            params={"fields": "status,countryCode,country,city"},
        )
        response.raise_for_status()
        data = response.json()
        if data.get("status") != "success" or not data.get("countryCode"):
            return None
        return GeoLocation(
            ip=ip,
            country_code=data["countryCode"],
            provider=self.name,
            country_name=data.get("country"),
            city=data.get("city"),
        )


class IpipProvider(GeoProvider):
    """freeapi.ipip.net: accurate for mainland addresses, returns a positional list."""

    name = "ipip"

    async def lookup(self, client: httpx.AsyncClient, ip: str) -> GeoLocation | None:
        response = await client.get(f"https://freeapi.ipip.net/{ip}")
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list) or not data or not data[0]:
            return None
        country = str(data[0])
        city = str(data[2]) if len(data) > 2 and data[2] else None  # noqa: PLR2004
        return GeoLocation(
            ip=ip,
            country_code="CN" if country in _CHINA_NAMES else None,
            provider=self.name,
            country_name=country,
            city=city,
        )


PROVIDERS: dict[str, type[GeoProvider]] = {
    IpapiProvider.name: IpapiProvider,
    IpApiComProvider.name: IpApiComProvider,
    IpipProvider.name: IpipProvider,
}


def build_providers(names: list[str]) -> list[GeoProvider]:
    """Instantiate providers by configured name.

    Raises:
        ValueError: If a name is not a known provider.
    """
    providers: list[GeoProvider] = []
    for name in names:
        provider_cls = PROVIDERS.get(name)
        if provider_cls is None:
            msg = f"Unknown geolocation provider: {name}"
            raise ValueError(msg)
        providers.append(provider_cls())
    return providers


def is_public_ip(ip: str | None) -> bool:
    """True when the address is routable on the public internet."""
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    return address.is_global


class GeoIPLocator:
    """Races several providers and keeps the first success."""

    def __init__(
        self,
        providers: list[GeoProvider],
        timeout: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.providers = providers
        self.timeout = timeout
        self._client = client

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def _attempt(self, provider: GeoProvider, client: httpx.AsyncClient, ip: str) -> GeoLocation | None:
        try:
            async with asyncio.timeout(self.timeout):
                return await provider.lookup(client, ip)
        except (httpx.HTTPError, TimeoutError, ValueError, KeyError, TypeError) as exc:
            logger.debug("geoip_provider_failed", provider=provider.name, ip=ip, error=str(exc) or type(exc).__name__)
            return None

    async def locate(self, ip: str) -> GeoLocation | None:
        """Return the first successful provider answer, or None if every provider failed."""
        if not self.providers:
            return None
        async with self._http() as client:
            tasks = [asyncio.create_task(self._attempt(p, client, ip)) for p in self.providers]
            try:
                for next_done in asyncio.as_completed(tasks):
                    location = await next_done
                    if location is not None:
                        logger.debug("geoip_located", ip=ip, provider=location.provider, country=location.country_code)
                        return location
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
        return None

    async def describe_location(self, ip: str | None) -> str:
        """Human-readable "City, Country" for device listings."""
        if not is_public_ip(ip):
            return "Local"
        location = await self.locate(ip)  # type: ignore[arg-type]
        if location is None:
            return "Unknown"
        country = location.country_name or location.country_code or "Unknown"
        return f"{location.city or 'Unknown'}, {country}"
