"""Device/session records and request schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Device(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    device_name: str
    device_type: str
    browser: str | None = None
    os: str | None = None
    ip_address: str | None = None
    location: str | None = None
    session_token: str | None = Field(default=None, exclude=True, repr=False)
    last_active_at: datetime | None = None
    created_at: datetime | None = None


class RecordDeviceData(BaseModel):
    """Input to DeviceRegistry.record_device."""

    user_id: str
    device_name: str
    device_type: str
    browser: str | None = None
    os: str | None = None
    ip_address: str | None = None
    location: str | None = None
    session_token: str | None = None


class DeviceResponse(BaseModel):
    id: str
    device_name: str
    device_type: str
    browser: str | None = None
    os: str | None = None
    ip_address: str | None = None
    location: str | None = None
    last_active_at: datetime | None = None
    created_at: datetime | None = None
    is_current: bool = False

    @classmethod
    def from_device(cls, device: Device, current_session: str | None = None) -> DeviceResponse:
        return cls(
            **device.model_dump(),
            is_current=current_session is not None and device.session_token == current_session,
        )
