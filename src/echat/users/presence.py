"""Presence: heartbeats and status changes, with optional cross-region mirroring."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from echat.core.best_effort import BestEffortResult, run_best_effort
from echat.errors import NotFoundError
from echat.services.factory import RegionServices, ServiceRegistry
from echat.users.schemas import User, UserStatus

logger = structlog.get_logger()


@dataclass(frozen=True)
class StatusUpdate:
    user: User
    mirror: BestEffortResult | None = None


class PresenceService:
    """Writes presence to the request's region and mirrors status to the other one when enabled."""

    def __init__(self, registry: ServiceRegistry, mirror_to_secondary: bool = False) -> None:
        self.registry = registry
        self.mirror_to_secondary = mirror_to_secondary

    async def heartbeat(self, services: RegionServices, user_id: str) -> User:
        user = await services.users.update_presence(user_id, last_seen_at=datetime.now(UTC))
        if user is None:
            msg = "User not found"
            raise NotFoundError(msg)
        return user

    async def set_status(self, services: RegionServices, user_id: str, status: UserStatus) -> StatusUpdate:
        """Set status on the primary store. The mirror write never fails the call."""
        now = datetime.now(UTC)
        user = await services.users.update_presence(user_id, status=status, last_seen_at=now)
        if user is None:
            msg = "User not found"
            raise NotFoundError(msg)
        logger.info("status_updated", user_id=user_id, status=status.value, region=services.region.value)

        mirror = None
        if self.mirror_to_secondary and self.registry.backends.is_configured(services.region.secondary):
            mirror = await run_best_effort(
                "status_mirror",
                self._mirror(services, user_id, status, now),
                user_id=user_id,
                target_region=services.region.secondary.value,
            )
        return StatusUpdate(user=user, mirror=mirror)

    async def _mirror(self, services: RegionServices, user_id: str, status: UserStatus, at: datetime) -> None:
        secondary = await self.registry.secondary(services.region)
        if secondary is None:
            return
        await secondary.users.update_presence(user_id, status=status, last_seen_at=at)
