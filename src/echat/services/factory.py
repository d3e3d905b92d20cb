"""
Service registry.

One ``ServiceRegistry`` is built at application start and kept on
``app.state``. It hands out the ``UserService`` / ``ChatService`` pair bound to a
region, building each pair at most once per process.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from echat.backends.base import BackendClient
from echat.backends.registry import BackendRegistry
from echat.config import Settings
from echat.errors import ConfigurationError
from echat.region.models import Region
from echat.region.resolver import RegionResolver
from echat.services.chat_service import chat_service_for
from echat.services.interfaces import ChatService, UserService
from echat.services.user_service import user_service_for

logger = structlog.get_logger()


@dataclass(frozen=True)
class RegionServices:
    """Everything bound to one region's store."""

    region: Region
    backend: BackendClient
    users: UserService
    chat: ChatService


class ServiceRegistry:
    """Lazily built, memoized services per region."""

    def __init__(
        self,
        settings: Settings,
        backends: BackendRegistry | None = None,
        resolver: RegionResolver | None = None,
    ) -> None:
        self.settings = settings
        self.backends = backends or BackendRegistry(settings)
        self.resolver = resolver or RegionResolver.from_settings(settings)
        self._services: dict[Region, RegionServices] = {}
        self._locks: dict[Region, asyncio.Lock] = {region: asyncio.Lock() for region in Region}

    @property
    def configured_region(self) -> Region | None:
        """Region fixed by deployment settings, if any."""
        if self.settings.force_global_database:
            return Region.GLOBAL
        return Region.from_deployment(self.settings.deployment_region)

    async def for_region(self, region: Region) -> RegionServices:
        """Services bound to ``region``.

        Raises:
            ConfigurationError: If the region's store is not configured.
        """
        services = self._services.get(region)
        if services is not None:
            return services
        async with self._locks[region]:
            services = self._services.get(region)
            if services is None:
                backend = await self.backends.get(region)
                users = user_service_for(backend)
                services = RegionServices(
                    region=region,
                    backend=backend,
                    users=users,
                    chat=chat_service_for(backend, users),
                )
                self._services[region] = services
                logger.info("services_initialized", region=region.value)
        return services

    async def primary(self) -> RegionServices:
        """Services for the configured deployment region.

        Raises:
            ConfigurationError: If no deployment region is configured.
        """
        region = self.configured_region
        if region is None:
            msg = "No deployment region configured"
            raise ConfigurationError(msg)
        return await self.for_region(region)

    async def secondary(self, region: Region) -> RegionServices | None:
        """Services for the region other than ``region``, or None when its store is not configured."""
        if not self.backends.is_configured(region.secondary):
            return None
        return await self.for_region(region.secondary)

    async def close(self) -> None:
        self._services.clear()
        await self.backends.close()

    def reset(self) -> None:
        """Drop every memoized service and backend. Test harnesses only."""
        self._services.clear()
        self.backends.reset()
