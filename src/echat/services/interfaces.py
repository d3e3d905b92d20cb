"""
Service capability sets.

Every region provides one ``UserService`` and one ``ChatService``. Callers hold
these interfaces only; which store sits underneath is decided once by the
service registry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from echat.chat.permissions import ChatPermissionResult
    from echat.chat.schemas import Conversation, Message, MessageType, WorkspaceMember
    from echat.region.models import Region
    from echat.users.schemas import (
        BlockedUser,
        BlockUserRequest,
        Contact,
        CreateUserRequest,
        PrivacySettings,
        Report,
        ReportStatus,
        ReportUserRequest,
        UpdatePrivacyRequest,
        UpdateReportRequest,
        User,
        UserStatus,
    )

T = TypeVar("T")


@dataclass(frozen=True)
class ChatOutcome(Generic[T]):
    """Result of a chat entry point that consults the permission engine.

    Exactly one of ``value`` and ``denied`` is set.
    """

    value: T | None = None
    denied: ChatPermissionResult | None = None
    created: bool = False

    @property
    def ok(self) -> bool:
        return self.denied is None


class UserService(ABC):
    """Users, privacy, blocks, reports and contacts."""

    region: Region

    # --- users ---

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def get_users_by_ids(self, user_ids: list[str]) -> list[User]: ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> User | None: ...

    @abstractmethod
    async def create_user(self, req: CreateUserRequest) -> User: ...

    @abstractmethod
    async def update_user(self, user_id: str, patch: Mapping[str, Any]) -> User | None: ...

    @abstractmethod
    async def update_presence(
        self,
        user_id: str,
        status: UserStatus | None = None,
        last_seen_at: datetime | None = None,
    ) -> User | None: ...

    # --- privacy ---

    @abstractmethod
    async def get_privacy_settings(self, user_id: str) -> PrivacySettings: ...

    @abstractmethod
    async def update_privacy_settings(self, user_id: str, req: UpdatePrivacyRequest) -> PrivacySettings: ...

    # --- blocks ---

    @abstractmethod
    async def block_user(self, blocker_id: str, req: BlockUserRequest) -> BlockedUser: ...

    @abstractmethod
    async def unblock_user(self, blocker_id: str, blocked_id: str) -> bool: ...

    @abstractmethod
    async def get_blocked_users(self, blocker_id: str) -> list[BlockedUser]: ...

    @abstractmethod
    async def check_block_relation(self, user_a: str, user_b: str) -> bool: ...

    # --- reports ---

    @abstractmethod
    async def report_user(self, reporter_id: str, req: ReportUserRequest) -> Report: ...

    @abstractmethod
    async def get_reports_by_reporter(self, reporter_id: str) -> list[Report]: ...

    @abstractmethod
    async def get_report_by_id(self, report_id: str) -> Report | None: ...

    @abstractmethod
    async def get_all_reports(self, status: ReportStatus | None = None) -> list[Report]: ...

    @abstractmethod
    async def update_report(self, report_id: str, admin_id: str, req: UpdateReportRequest) -> Report | None: ...

    # --- contacts ---

    @abstractmethod
    async def request_contact(self, user_id: str, contact_user_id: str) -> Contact: ...

    @abstractmethod
    async def respond_contact_request(self, contact_id: str, user_id: str, accept: bool) -> Contact | None: ...

    @abstractmethod
    async def check_friend_relation(self, user_a: str, user_b: str) -> bool: ...

    @abstractmethod
    async def get_contacts(self, user_id: str) -> list[Contact]: ...


class ChatService(ABC):
    """Conversations, messages and workspace membership."""

    region: Region

    @abstractmethod
    async def check_chat_permission(
        self, sender_id: str, target_user_id: str, workspace_id: str | None = None
    ) -> ChatPermissionResult: ...

    @abstractmethod
    async def get_or_create_direct_conversation(
        self, user_id: str, target_user_id: str, workspace_id: str
    ) -> ChatOutcome[Conversation]: ...

    @abstractmethod
    async def get_conversations(self, user_id: str, workspace_id: str | None = None) -> list[Conversation]: ...

    @abstractmethod
    async def get_conversation_by_id(self, conversation_id: str) -> Conversation | None: ...

    @abstractmethod
    async def get_user_workspaces(self, user_id: str) -> list[WorkspaceMember]: ...

    @abstractmethod
    async def get_workspace_members(self, workspace_id: str) -> list[WorkspaceMember]: ...

    @abstractmethod
    async def check_workspace_membership(self, workspace_id: str, user_id: str) -> bool: ...

    @abstractmethod
    async def is_conversation_member(self, conversation_id: str, user_id: str) -> bool: ...

    @abstractmethod
    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        type_: MessageType | None = None,
        extra: dict[str, Any] | None = None,
    ) -> ChatOutcome[Message]: ...

    @abstractmethod
    async def get_messages(
        self, conversation_id: str, limit: int = 50, before_id: str | None = None
    ) -> list[Message]: ...
