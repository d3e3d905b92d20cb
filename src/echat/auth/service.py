"""
Session issuance.

Every successful register or login creates a session id, signs a token that
carries it, and records the device that logged in.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from echat.auth.jwt import create_session_token, new_session_id
from echat.auth.schemas import TokenResponse
from echat.config import get_settings
from echat.devices.parser import parse_device
from echat.devices.registry import DeviceRegistry
from echat.devices.schemas import RecordDeviceData
from echat.region.geoip import GeoIPLocator
from echat.services.factory import RegionServices
from echat.users.schemas import User, UserResponse

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClientMeta:
    """What the request reveals about the device logging in."""

    user_agent: str | None
    ip_address: str | None


async def issue_session(
    services: RegionServices,
    devices: DeviceRegistry,
    locator: GeoIPLocator,
    user: User,
    client: ClientMeta,
) -> TokenResponse:
    """Sign a session token for ``user`` and record the device behind it."""
    settings = get_settings()
    session_id = new_session_id()
    token = create_session_token(user.id, session_id, services.region.value)

    info = parse_device(client.user_agent)
    location = await locator.describe_location(client.ip_address)
    await devices.record_device(
        RecordDeviceData(
            user_id=user.id,
            device_name=info.device_name,
            device_type=info.device_type,
            browser=info.browser,
            os=info.os,
            ip_address=client.ip_address,
            location=location,
            session_token=session_id,
        )
    )
    logger.info("session_issued", user_id=user.id, region=services.region.value, device_type=info.device_type)
    return TokenResponse(
        access_token=token,
        expires_in=settings.session_ttl_hours * 3600,
        user=UserResponse.from_user(user),
    )
