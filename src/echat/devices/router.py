"""Device/session endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from echat.auth.dependencies import AuthContext, get_auth_context
from echat.dependencies import get_client_ip, get_device_registry, get_registry
from echat.devices.parser import parse_device
from echat.devices.schemas import DeviceResponse, RecordDeviceData
from echat.services.factory import ServiceRegistry

router = APIRouter(prefix="/api/v1/devices", tags=["Devices"])


@router.get("", response_model=list[DeviceResponse])
async def list_devices(ctx: AuthContext = Depends(get_auth_context)) -> list[DeviceResponse]:
    """Devices with an active session, most recently active first."""
    devices = await get_device_registry(ctx.services).get_devices(ctx.user.id)
    return [DeviceResponse.from_device(device, ctx.session_id) for device in devices]


@router.post("/record", response_model=DeviceResponse)
async def record_device(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    registry: ServiceRegistry = Depends(get_registry),
) -> DeviceResponse:
    """Record or refresh the calling device for the current session."""
    info = parse_device(request.headers.get("user-agent"))
    ip_address = get_client_ip(request)
    device = await get_device_registry(ctx.services).record_device(
        RecordDeviceData(
            user_id=ctx.user.id,
            device_name=info.device_name,
            device_type=info.device_type,
            browser=info.browser,
            os=info.os,
            ip_address=ip_address,
            location=await registry.resolver.locator.describe_location(ip_address),
            session_token=ctx.session_id,
        )
    )
    return DeviceResponse.from_device(device, ctx.session_id)


@router.delete("/{device_id}")
async def delete_device(device_id: str, ctx: AuthContext = Depends(get_auth_context)) -> dict[str, bool]:
    """Sign a device out remotely. Unknown and foreign devices both give 404."""
    await get_device_registry(ctx.services).delete_device(device_id, ctx.user.id)
    return {"success": True}
