"""
Chat permission evaluation.

Decides whether a sender may message a target. Checks run in a fixed order and
the first decisive one wins:

1. a block in either direction denies, even between accepted contacts
2. a target that only accepts contacts requires an accepted contact edge
3. otherwise the message is allowed

Workspace membership never bypasses these checks; callers that offer such a
convenience apply it only after this engine has allowed the pair.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from echat.services.interfaces import UserService

logger = structlog.get_logger()


class DenyReason(str, Enum):
    BLOCKED = "blocked"
    NOT_A_CONTACT = "not a contact"
    NOT_MEMBER = "not a member"


_MESSAGES = {
    DenyReason.BLOCKED: "You cannot message this user",
    DenyReason.NOT_A_CONTACT: "This user only accepts messages from contacts",
    DenyReason.NOT_MEMBER: "You are not a member of this conversation",
}


@dataclass(frozen=True)
class ChatPermissionResult:
    """Allow/deny decision with a structured reason on denial."""

    allowed: bool
    reason: DenyReason | None = None
    message: str | None = None

    @classmethod
    def allow(cls) -> ChatPermissionResult:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason) -> ChatPermissionResult:
        return cls(allowed=False, reason=reason, message=_MESSAGES[reason])


class ChatPermissionEngine:
    """Composes block, privacy and friendship lookups into one decision."""

    def __init__(self, users: UserService) -> None:
        self.users = users

    async def check(
        self,
        sender_id: str,
        target_user_id: str,
        workspace_id: str | None = None,
    ) -> ChatPermissionResult:
        """Evaluate whether ``sender_id`` may message ``target_user_id``.

        Storage failures propagate; they are never turned into a denial.
        """
        if await self.users.check_block_relation(sender_id, target_user_id):
            return self._denied(DenyReason.BLOCKED, sender_id, target_user_id, workspace_id)

        privacy = await self.users.get_privacy_settings(target_user_id)
        if privacy.allow_non_friend_messages:
            return ChatPermissionResult.allow()

        if await self.users.check_friend_relation(sender_id, target_user_id):
            return ChatPermissionResult.allow()

        return self._denied(DenyReason.NOT_A_CONTACT, sender_id, target_user_id, workspace_id)

    async def check_block(self, sender_id: str, target_user_id: str) -> ChatPermissionResult:
        """Block check alone, for delivery into an existing conversation."""
        if await self.users.check_block_relation(sender_id, target_user_id):
            return self._denied(DenyReason.BLOCKED, sender_id, target_user_id, None)
        return ChatPermissionResult.allow()

    @staticmethod
    def _denied(
        reason: DenyReason,
        sender_id: str,
        target_user_id: str,
        workspace_id: str | None,
    ) -> ChatPermissionResult:
        logger.info(
            "chat_permission_denied",
            sender_id=sender_id,
            target_user_id=target_user_id,
            workspace_id=workspace_id,
            reason=reason.value,
        )
        return ChatPermissionResult.deny(reason)
