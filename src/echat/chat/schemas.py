"""Conversation, message and workspace models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ConversationType(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class Conversation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    workspace_id: str
    type: ConversationType = ConversationType.DIRECT
    name: str | None = None
    is_private: bool = True
    created_by: str
    created_at: datetime | None = None
    last_message_at: datetime | None = None


class ConversationMember(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    conversation_id: str
    user_id: str
    role: str = "member"
    joined_at: datetime | None = None


class Message(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    conversation_id: str
    sender_id: str
    content: str
    type: MessageType = MessageType.TEXT
    extra: dict[str, Any] | None = None
    is_deleted: bool = False
    created_at: datetime | None = None


class WorkspaceMember(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    workspace_id: str
    user_id: str
    role: str = "member"
    joined_at: datetime | None = None


# ---------------------------------------------------------------------------
# Requests / responses
# ---------------------------------------------------------------------------


class CreateDirectConversationRequest(BaseModel):
    target_user_id: str = Field(..., min_length=1)
    workspace_id: str = Field(..., min_length=1)


class SendMessageRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=10_000)
    type: MessageType = MessageType.TEXT
    extra: dict[str, Any] | None = None


class ConversationResponse(BaseModel):
    conversation: Conversation
    created: bool = False


class PermissionResponse(BaseModel):
    allowed: bool
    reason: str | None = None
    message: str | None = None
