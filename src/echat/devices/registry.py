"""
Device/session registry.

Each successful login records a device row carrying the session id. Removing a
device revokes its session first and deletes the row second, so an interrupted
removal leaves a revoked session that is still listed, never a listed-looking
device whose session is gone but still valid.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog

from echat.auth.sessions import SessionRevoker
from echat.backends.base import BackendClient
from echat.backends.filters import desc
from echat.core.best_effort import BestEffortResult, run_best_effort
from echat.devices.schemas import Device, RecordDeviceData
from echat.errors import NotFoundError

logger = structlog.get_logger()


class DeviceRegistry:
    """Lists, records and removes a user's devices."""

    def __init__(self, backend: BackendClient, revoker: SessionRevoker | None = None) -> None:
        self.devices = backend.collection("devices")
        self.revoker = revoker or SessionRevoker(backend)

    async def get_devices(self, user_id: str) -> list[Device]:
        docs = await self.devices.query({"user_id": user_id}, order=desc("last_active_at"))
        return [Device.model_validate(doc) for doc in docs]

    async def record_device(self, data: RecordDeviceData) -> Device:
        """Record a login. A known ``(user_id, session_token)`` pair is refreshed in place."""
        now = datetime.now(UTC)
        fields = data.model_dump()
        if data.session_token:
            existing = await self.devices.first({"user_id": data.user_id, "session_token": data.session_token})
            if existing:
                doc = await self.devices.update(existing["id"], {**fields, "last_active_at": now})
                if doc is not None:
                    return Device.model_validate(doc)
        doc = await self.devices.insert({**fields, "last_active_at": now, "created_at": now})
        logger.info("device_recorded", user_id=data.user_id, device_id=doc["id"], device_type=data.device_type)
        return Device.model_validate(doc)

    async def touch(self, user_id: str, session_token: str) -> Device | None:
        """Refresh ``last_active_at`` for the device holding ``session_token``."""
        existing = await self.devices.first({"user_id": user_id, "session_token": session_token})
        if not existing:
            return None
        doc = await self.devices.update(existing["id"], {"last_active_at": datetime.now(UTC)})
        return Device.model_validate(doc) if doc else None

    async def forget_session(self, user_id: str, session_token: str) -> int:
        """Drop device rows bound to a session that has just been revoked."""
        docs = await self.devices.query({"user_id": user_id, "session_token": session_token})
        removed = 0
        for doc in docs:
            removed += int(await self.devices.delete(doc["id"]))
        return removed

    async def delete_device(self, device_id: str, user_id: str) -> BestEffortResult:
        """Revoke a device's session, then remove the device.

        Returns the outcome of the session revocation, which never blocks the removal.

        Raises:
            NotFoundError: If the device does not exist or belongs to someone else.
        """
        doc = await self.devices.get(device_id)
        if not doc or doc.get("user_id") != user_id:
            msg = "Device not found"
            raise NotFoundError(msg)

        session_token = doc.get("session_token")
        if session_token:
            revocation = await run_best_effort(
                "session_revocation",
                self.revoker.revoke(session_token, user_id),
                device_id=device_id,
                user_id=user_id,
            )
        else:
            revocation = BestEffortResult(operation="session_revocation", ok=True)

        if not await self.devices.delete(device_id):
            msg = "Device not found"
            raise NotFoundError(msg)
        logger.info("device_deleted", device_id=device_id, user_id=user_id, session_revoked=revocation.ok)
        return revocation
