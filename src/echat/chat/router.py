"""Conversation and message endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from echat.auth.dependencies import AuthContext, get_auth_context
from echat.chat.permissions import ChatPermissionResult
from echat.chat.schemas import (
    Conversation,
    ConversationResponse,
    CreateDirectConversationRequest,
    Message,
    PermissionResponse,
    SendMessageRequest,
)
from echat.errors import PermissionDeniedError

router = APIRouter(prefix="/api/v1", tags=["Chat"])


def _denied(result: ChatPermissionResult) -> PermissionDeniedError:
    return PermissionDeniedError(result.message, reason=result.reason.value if result.reason else None)


@router.get("/chat/permission", response_model=PermissionResponse)
async def check_permission(
    target_user_id: str = Query(..., min_length=1),
    workspace_id: str | None = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
) -> PermissionResponse:
    """Whether the caller may message ``target_user_id``."""
    result = await ctx.services.chat.check_chat_permission(ctx.user.id, target_user_id, workspace_id)
    return PermissionResponse(
        allowed=result.allowed,
        reason=result.reason.value if result.reason else None,
        message=result.message,
    )


@router.post("/conversations", response_model=ConversationResponse)
async def create_direct_conversation(
    body: CreateDirectConversationRequest,
    ctx: AuthContext = Depends(get_auth_context),
) -> ConversationResponse:
    """Open (or return) the caller's direct conversation with another user."""
    if await ctx.services.users.get_user_by_id(body.target_user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        outcome = await ctx.services.chat.get_or_create_direct_conversation(
            ctx.user.id, body.target_user_id, body.workspace_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if outcome.denied is not None:
        raise _denied(outcome.denied)
    return ConversationResponse(conversation=outcome.value, created=outcome.created)


@router.get("/conversations", response_model=list[Conversation])
async def list_conversations(
    workspace_id: str | None = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[Conversation]:
    return await ctx.services.chat.get_conversations(ctx.user.id, workspace_id)


@router.post("/messages", response_model=Message, status_code=201)
async def send_message(body: SendMessageRequest, ctx: AuthContext = Depends(get_auth_context)) -> Message:
    outcome = await ctx.services.chat.send_message(
        body.conversation_id, ctx.user.id, body.content, body.type, body.extra
    )
    if outcome.denied is not None:
        raise _denied(outcome.denied)
    return outcome.value


@router.get("/conversations/{conversation_id}/messages", response_model=list[Message])
async def list_messages(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=200),
    before_id: str | None = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[Message]:
    """Messages oldest first. Non-members get the same 404 as a missing conversation."""
    if not await ctx.services.chat.is_conversation_member(conversation_id, ctx.user.id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return await ctx.services.chat.get_messages(conversation_id, limit=limit, before_id=before_id)
