"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Depends, Request

from echat.auth.sessions import SessionRevoker
from echat.config import get_settings
from echat.devices.parser import client_ip
from echat.devices.registry import DeviceRegistry
from echat.region.models import RegionContext
from echat.services.factory import RegionServices, ServiceRegistry
from echat.users.presence import PresenceService
from echat.verification.service import VerificationCodeService


def get_registry(request: Request) -> ServiceRegistry:
    """The process-wide service registry built by the lifespan."""
    return request.app.state.registry


def get_client_ip(request: Request) -> str | None:
    return client_ip(request.headers, request.client.host if request.client else None)


async def get_region_services(
    request: Request,
    registry: ServiceRegistry = Depends(get_registry),
) -> RegionServices:
    """Services for the request's region.

    A configured deployment region wins; otherwise the resolver looks at the
    request host and the caller's address.
    """
    region = registry.configured_region
    if region is None:
        context = RegionContext(host=request.headers.get("host"), client_ip=get_client_ip(request))
        region = await registry.resolver.resolve(context)
    return await registry.for_region(region)


def get_presence_service(registry: ServiceRegistry = Depends(get_registry)) -> PresenceService:
    return PresenceService(registry, mirror_to_secondary=get_settings().mirror_status_to_secondary)


def get_verification_service(services: RegionServices = Depends(get_region_services)) -> VerificationCodeService:
    return VerificationCodeService(services.backend, get_settings())


def get_device_registry(services: RegionServices) -> DeviceRegistry:
    return DeviceRegistry(services.backend, SessionRevoker(services.backend))
