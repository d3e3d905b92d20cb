"""Conversation and message operations over a BackendClient."""

from __future__ import annotations

import asyncio
from abc import abstractmethod
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import structlog

from echat.backends.base import BackendClient, Collection, Document
from echat.backends.filters import desc, in_, lt
from echat.chat.permissions import ChatPermissionEngine, ChatPermissionResult, DenyReason
from echat.chat.schemas import Conversation, ConversationType, Message, MessageType, WorkspaceMember
from echat.errors import NotFoundError
from echat.region.models import Region
from echat.services.interfaces import ChatOutcome, ChatService, UserService

logger = structlog.get_logger()

_EPOCH = datetime.min.replace(tzinfo=UTC)


def _now() -> datetime:
    return datetime.now(UTC)


class StoreChatService(ChatService):
    """Store-agnostic chat logic. Every new direct conversation and every
    message passes through the permission engine first."""

    def __init__(self, backend: BackendClient, users: UserService) -> None:
        self.backend = backend
        self.region = backend.region
        self.users = users
        self.permissions = ChatPermissionEngine(users)
        self.conversations = backend.collection("conversations")
        self.members = backend.collection("conversation_members")
        self.messages = backend.collection("messages")
        self.workspace_members = backend.collection("workspace_members")

    @abstractmethod
    async def _fetch_many(self, collection: Collection, ids: Sequence[str]) -> list[Document]:
        """Documents for ``ids``; missing ids are skipped."""
        ...

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def check_chat_permission(
        self, sender_id: str, target_user_id: str, workspace_id: str | None = None
    ) -> ChatPermissionResult:
        return await self.permissions.check(sender_id, target_user_id, workspace_id)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def _find_direct(self, user_id: str, target_user_id: str, workspace_id: str) -> Conversation | None:
        mine = await self.members.query({"user_id": user_id})
        if not mine:
            return None
        shared = await self.members.query(
            {
                "user_id": target_user_id,
                "conversation_id": in_(doc["conversation_id"] for doc in mine),
            }
        )
        if not shared:
            return None
        docs = await self._fetch_many(self.conversations, [doc["conversation_id"] for doc in shared])
        for doc in docs:
            if doc.get("type") == ConversationType.DIRECT.value and doc.get("workspace_id") == workspace_id:
                return Conversation.model_validate(doc)
        return None

    async def get_or_create_direct_conversation(
        self, user_id: str, target_user_id: str, workspace_id: str
    ) -> ChatOutcome[Conversation]:
        """Return the pair's direct conversation, creating it if permission allows.

        Raises:
            ValueError: If a user targets themselves.
        """
        if user_id == target_user_id:
            msg = "Cannot start a conversation with yourself"
            raise ValueError(msg)

        existing = await self._find_direct(user_id, target_user_id, workspace_id)
        if existing is not None:
            return ChatOutcome(value=existing)

        permission = await self.permissions.check(user_id, target_user_id, workspace_id)
        if not permission.allowed:
            return ChatOutcome(denied=permission)

        now = _now()
        doc = await self.conversations.insert(
            {
                "workspace_id": workspace_id,
                "type": ConversationType.DIRECT.value,
                "name": None,
                "is_private": True,
                "created_by": user_id,
                "created_at": now,
                "last_message_at": None,
            }
        )
        for member_id in (user_id, target_user_id):
            await self.members.insert(
                {"conversation_id": doc["id"], "user_id": member_id, "role": "member", "joined_at": now}
            )
        logger.info(
            "conversation_created",
            conversation_id=doc["id"],
            workspace_id=workspace_id,
            created_by=user_id,
        )
        return ChatOutcome(value=Conversation.model_validate(doc), created=True)

    async def get_conversations(self, user_id: str, workspace_id: str | None = None) -> list[Conversation]:
        memberships = await self.members.query({"user_id": user_id})
        docs = await self._fetch_many(self.conversations, [doc["conversation_id"] for doc in memberships])
        conversations = [
            Conversation.model_validate(doc)
            for doc in docs
            if workspace_id is None or doc.get("workspace_id") == workspace_id
        ]
        conversations.sort(key=lambda c: c.last_message_at or c.created_at or _EPOCH, reverse=True)
        return conversations

    async def get_conversation_by_id(self, conversation_id: str) -> Conversation | None:
        doc = await self.conversations.get(conversation_id)
        return Conversation.model_validate(doc) if doc else None

    async def is_conversation_member(self, conversation_id: str, user_id: str) -> bool:
        doc = await self.members.first({"conversation_id": conversation_id, "user_id": user_id})
        return doc is not None

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    async def get_user_workspaces(self, user_id: str) -> list[WorkspaceMember]:
        docs = await self.workspace_members.query({"user_id": user_id})
        return [WorkspaceMember.model_validate(doc) for doc in docs]

    async def get_workspace_members(self, workspace_id: str) -> list[WorkspaceMember]:
        docs = await self.workspace_members.query({"workspace_id": workspace_id})
        return [WorkspaceMember.model_validate(doc) for doc in docs]

    async def check_workspace_membership(self, workspace_id: str, user_id: str) -> bool:
        doc = await self.workspace_members.first({"workspace_id": workspace_id, "user_id": user_id})
        return doc is not None

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        type_: MessageType | None = None,
        extra: dict[str, Any] | None = None,
    ) -> ChatOutcome[Message]:
        """Deliver a message from a conversation member.

        Raises:
            NotFoundError: If the conversation does not exist.
        """
        conversation = await self.get_conversation_by_id(conversation_id)
        if conversation is None:
            msg = "Conversation not found"
            raise NotFoundError(msg)

        members = await self.members.query({"conversation_id": conversation_id})
        member_ids = [doc["user_id"] for doc in members]
        if sender_id not in member_ids:
            logger.info("message_rejected", conversation_id=conversation_id, sender_id=sender_id, reason="not_member")
            return ChatOutcome(denied=ChatPermissionResult.deny(DenyReason.NOT_MEMBER))

        if conversation.type is ConversationType.DIRECT:
            for other_id in member_ids:
                if other_id == sender_id:
                    continue
                permission = await self.permissions.check_block(sender_id, other_id)
                if not permission.allowed:
                    return ChatOutcome(denied=permission)

        now = _now()
        doc = await self.messages.insert(
            {
                "conversation_id": conversation_id,
                "sender_id": sender_id,
                "content": content,
                "type": (type_ or MessageType.TEXT).value,
                "extra": extra,
                "is_deleted": False,
                "created_at": now,
            }
        )
        await self.conversations.update(conversation_id, {"last_message_at": now})
        logger.debug("message_sent", conversation_id=conversation_id, message_id=doc["id"], sender_id=sender_id)
        return ChatOutcome(value=Message.model_validate(doc))

    async def get_messages(
        self, conversation_id: str, limit: int = 50, before_id: str | None = None
    ) -> list[Message]:
        """Most recent ``limit`` messages before ``before_id``, oldest first."""
        filter_: dict[str, Any] = {"conversation_id": conversation_id, "is_deleted": False}
        if before_id:
            anchor = await self.messages.get(before_id)
            if anchor and anchor.get("created_at") is not None:
                filter_["created_at"] = lt(anchor["created_at"])
        docs = await self.messages.query(filter_, order=desc("created_at"), limit=limit)
        return [Message.model_validate(doc) for doc in reversed(docs)]


class GlobalChatService(StoreChatService):
    async def _fetch_many(self, collection: Collection, ids: Sequence[str]) -> list[Document]:
        if not ids:
            return []
        return await collection.query({"id": in_(ids)})


class CnChatService(StoreChatService):
    async def _fetch_many(self, collection: Collection, ids: Sequence[str]) -> list[Document]:
        docs = await asyncio.gather(*(collection.get(doc_id) for doc_id in ids))
        return [doc for doc in docs if doc]


def chat_service_for(backend: BackendClient, users: UserService) -> StoreChatService:
    """Pick the implementation matching the backend's region."""
    if backend.region is Region.CN:
        return CnChatService(backend, users)
    return GlobalChatService(backend, users)
