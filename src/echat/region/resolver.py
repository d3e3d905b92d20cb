"""
Region resolution.

Signals are consulted in strict priority order and the first definitive one wins:

1. deployment configuration (``force_global_database``, then ``deployment_region``)
2. request host suffix hints
3. caller IP geolocation (providers raced concurrently)

When nothing is conclusive the region defaults to ``global``. That fallback is
deliberate; deployments that would rather reject the request set
``region_fail_closed``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from echat.errors import RegionUnresolvedError
from echat.region.geoip import GeoIPLocator, build_providers, is_public_ip
from echat.region.models import Region, RegionContext, RegionDecision

if TYPE_CHECKING:
    import httpx

    from echat.config import Settings

logger = structlog.get_logger()


def _strip_port(host: str) -> str:
    host = host.strip().lower()
    if host.startswith("["):
        return host[1 : host.find("]")] if "]" in host else host
    return host.rsplit(":", 1)[0] if host.count(":") == 1 else host


class RegionResolver:
    """Chooses a backend region for a request."""

    def __init__(
        self,
        locator: GeoIPLocator,
        cn_host_suffixes: list[str] | None = None,
        global_host_suffixes: list[str] | None = None,
        fail_closed: bool = False,
    ) -> None:
        self.locator = locator
        self.cn_host_suffixes = [s.lower() for s in (cn_host_suffixes or [])]
        self.global_host_suffixes = [s.lower() for s in (global_host_suffixes or [])]
        self.fail_closed = fail_closed

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> RegionResolver:
        """Build a resolver from configuration."""
        locator = GeoIPLocator(
            build_providers(settings.geoip_providers),
            timeout=settings.geoip_timeout_seconds,
            client=client,
        )
        return cls(
            locator,
            cn_host_suffixes=settings.cn_host_suffixes,
            global_host_suffixes=settings.global_host_suffixes,
            fail_closed=settings.region_fail_closed,
        )

    def region_from_host(self, host: str | None) -> Region | None:
        """Match the request host against the configured suffix hints."""
        if not host:
            return None
        hostname = _strip_port(host)
        if any(hostname.endswith(suffix) for suffix in self.cn_host_suffixes):
            return Region.CN
        if any(hostname.endswith(suffix) for suffix in self.global_host_suffixes):
            return Region.GLOBAL
        return None

    async def decide(self, context: RegionContext) -> RegionDecision:
        """Resolve a region and report which signal decided it.

        Raises:
            RegionUnresolvedError: If no signal was conclusive and fail-closed is enabled.
        """
        if context.force_global:
            return RegionDecision(Region.GLOBAL, "force_global")

        configured = Region.from_deployment(context.configured_region)
        if configured is not None:
            return RegionDecision(configured, "config")

        from_host = self.region_from_host(context.host)
        if from_host is not None:
            return RegionDecision(from_host, "host")

        if is_public_ip(context.client_ip):
            location = await self.locator.locate(context.client_ip)  # type: ignore[arg-type]
            if location is not None:
                region = Region.CN if location.is_china else Region.GLOBAL
                return RegionDecision(region, "geoip", country_code=location.country_code)
            logger.warning(
                "region_unconfirmed",
                ip=context.client_ip,
                detail="all geolocation providers failed; region could not be confirmed",
                fail_closed=self.fail_closed,
            )
        else:
            logger.info("region_signal_missing", ip=context.client_ip)

        if self.fail_closed:
            raise RegionUnresolvedError
        return RegionDecision(Region.GLOBAL, "default")

    async def resolve(self, context: RegionContext) -> Region:
        """Resolve a region for the given signals."""
        decision = await self.decide(context)
        return decision.region
