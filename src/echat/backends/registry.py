"""Lazy per-region backend clients.

Each region's client is built on first use and then reused for the life of the
process. Construction is guarded by a per-region lock so concurrent first
requests cannot build two clients.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from echat.backends.base import BackendClient
from echat.backends.document import DocumentBackend
from echat.backends.sql import SqlBackend
from echat.config import Settings
from echat.errors import ConfigurationError
from echat.region.models import Region

logger = structlog.get_logger()


def build_global_backend(settings: Settings) -> SqlBackend:
    """Row store for the global region.

    Raises:
        ConfigurationError: If no database URL is configured.
    """
    if not settings.global_database_url:
        msg = "ECHAT_GLOBAL_DATABASE_URL is not configured"
        raise ConfigurationError(msg)
    return SqlBackend.from_url(
        settings.global_database_url,
        pool_size=settings.global_pool_size,
        timeout=settings.storage_timeout_seconds,
    )


def build_cn_backend(settings: Settings) -> DocumentBackend:
    """Document store for the cn region.

    Raises:
        ConfigurationError: If no Redis URL is configured.
    """
    if not settings.cn_redis_url:
        msg = "ECHAT_CN_REDIS_URL is not configured"
        raise ConfigurationError(msg)
    return DocumentBackend.from_url(
        settings.cn_redis_url,
        prefix=settings.cn_key_prefix,
        timeout=settings.storage_timeout_seconds,
    )


_BUILDERS: dict[Region, Callable[[Settings], BackendClient]] = {
    Region.GLOBAL: build_global_backend,
    Region.CN: build_cn_backend,
}


class BackendRegistry:
    """Holds at most one BackendClient per region."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._clients: dict[Region, BackendClient] = {}
        self._locks: dict[Region, asyncio.Lock] = {region: asyncio.Lock() for region in Region}

    def is_configured(self, region: Region) -> bool:
        """True when credentials for ``region`` are present (or a client was injected)."""
        if region in self._clients:
            return True
        if region is Region.GLOBAL:
            return bool(self.settings.global_database_url)
        return bool(self.settings.cn_redis_url)

    def configured_regions(self) -> list[Region]:
        return [region for region in Region if self.is_configured(region)]

    async def get(self, region: Region) -> BackendClient:
        """Return the region's client, building it on first use.

        Raises:
            ConfigurationError: If the region's credentials are missing.
        """
        client = self._clients.get(region)
        if client is not None:
            return client
        async with self._locks[region]:
            client = self._clients.get(region)
            if client is None:
                client = _BUILDERS[region](self.settings)
                if isinstance(client, SqlBackend) and self.settings.global_auto_create_schema:
                    await client.create_schema()
                self._clients[region] = client
                logger.info("storage_initialized", region=region.value, driver=type(client).__name__)
        return client

    def override(self, region: Region, client: BackendClient) -> None:
        """Install a prebuilt client for ``region``. Used by tests."""
        self._clients[region] = client

    async def close(self) -> None:
        """Close every initialised client."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.close()

    def reset(self) -> None:
        """Forget every client without closing it. Test harnesses only."""
        self._clients.clear()
