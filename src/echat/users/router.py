"""User, privacy, block, report and contact endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from echat.auth.dependencies import AuthContext, get_auth_context, require_admin
from echat.dependencies import get_device_registry, get_presence_service
from echat.errors import NotFoundError
from echat.users.presence import PresenceService
from echat.users.schemas import (
    BlockedUser,
    BlockUserRequest,
    Contact,
    ContactRequest,
    ContactResponseRequest,
    PresenceResponse,
    PrivacySettings,
    Report,
    ReportStatus,
    ReportUserRequest,
    StatusUpdateRequest,
    UpdatePrivacyRequest,
    UpdateReportRequest,
    UpdateUserRequest,
    UserResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Profile and presence
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=UserResponse)
async def get_profile(ctx: AuthContext = Depends(get_auth_context)) -> UserResponse:
    """Get own profile."""
    return UserResponse.from_user(ctx.user)


@router.patch("/users/me", response_model=UserResponse)
async def update_profile(body: UpdateUserRequest, ctx: AuthContext = Depends(get_auth_context)) -> UserResponse:
    user = await ctx.services.users.update_user(ctx.user.id, body.model_dump(exclude_unset=True))
    if user is None:
        raise NotFoundError
    return UserResponse.from_user(user)


@router.get("/users/me/privacy", response_model=PrivacySettings)
async def get_privacy(ctx: AuthContext = Depends(get_auth_context)) -> PrivacySettings:
    return await ctx.services.users.get_privacy_settings(ctx.user.id)


@router.patch("/users/me/privacy", response_model=PrivacySettings)
async def update_privacy(body: UpdatePrivacyRequest, ctx: AuthContext = Depends(get_auth_context)) -> PrivacySettings:
    return await ctx.services.users.update_privacy_settings(ctx.user.id, body)


@router.post("/users/heartbeat", response_model=PresenceResponse)
async def heartbeat(
    ctx: AuthContext = Depends(get_auth_context),
    presence: PresenceService = Depends(get_presence_service),
) -> PresenceResponse:
    """Refresh last-seen for the user and the current device."""
    user = await presence.heartbeat(ctx.services, ctx.user.id)
    await get_device_registry(ctx.services).touch(ctx.user.id, ctx.session_id)
    return PresenceResponse(status=user.status, last_seen_at=user.last_seen_at)


@router.put("/users/status", response_model=PresenceResponse)
async def set_status(
    body: StatusUpdateRequest,
    ctx: AuthContext = Depends(get_auth_context),
    presence: PresenceService = Depends(get_presence_service),
) -> PresenceResponse:
    update = await presence.set_status(ctx.services, ctx.user.id, body.status)
    return PresenceResponse(
        status=update.user.status,
        last_seen_at=update.user.last_seen_at,
        mirrored=update.mirror.ok if update.mirror else None,
    )


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, ctx: AuthContext = Depends(get_auth_context)) -> UserResponse:
    user = await ctx.services.users.get_user_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.from_user(user)


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


@router.get("/blocked-users", response_model=list[BlockedUser])
async def list_blocked_users(ctx: AuthContext = Depends(get_auth_context)) -> list[BlockedUser]:
    return await ctx.services.users.get_blocked_users(ctx.user.id)


@router.post("/blocked-users", response_model=BlockedUser, status_code=201)
async def block_user(body: BlockUserRequest, ctx: AuthContext = Depends(get_auth_context)) -> BlockedUser:
    """Block a user. Blocking an already blocked user returns the existing block."""
    if await ctx.services.users.get_user_by_id(body.blocked_user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        return await ctx.services.users.block_user(ctx.user.id, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.delete("/blocked-users/{user_id}", status_code=204)
async def unblock_user(user_id: str, ctx: AuthContext = Depends(get_auth_context)) -> None:
    if not await ctx.services.users.unblock_user(ctx.user.id, user_id):
        raise HTTPException(status_code=404, detail="Block not found")


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@router.post("/reports", response_model=Report, status_code=201)
async def report_user(body: ReportUserRequest, ctx: AuthContext = Depends(get_auth_context)) -> Report:
    try:
        return await ctx.services.users.report_user(ctx.user.id, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/reports", response_model=list[Report])
async def my_reports(ctx: AuthContext = Depends(get_auth_context)) -> list[Report]:
    return await ctx.services.users.get_reports_by_reporter(ctx.user.id)


@router.get("/admin/reports", response_model=list[Report])
async def all_reports(
    status: ReportStatus | None = Query(None),
    ctx: AuthContext = Depends(require_admin),
) -> list[Report]:
    return await ctx.services.users.get_all_reports(status)


@router.patch("/admin/reports/{report_id}", response_model=Report)
async def update_report(
    report_id: str,
    body: UpdateReportRequest,
    ctx: AuthContext = Depends(require_admin),
) -> Report:
    report = await ctx.services.users.update_report(report_id, ctx.user.id, body)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


@router.get("/contacts", response_model=list[Contact])
async def list_contacts(ctx: AuthContext = Depends(get_auth_context)) -> list[Contact]:
    return await ctx.services.users.get_contacts(ctx.user.id)


@router.post("/contact-requests", response_model=Contact, status_code=201)
async def request_contact(body: ContactRequest, ctx: AuthContext = Depends(get_auth_context)) -> Contact:
    if await ctx.services.users.get_user_by_id(body.contact_user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        return await ctx.services.users.request_contact(ctx.user.id, body.contact_user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.patch("/contact-requests/{contact_id}", response_model=Contact)
async def respond_contact_request(
    contact_id: str,
    body: ContactResponseRequest,
    ctx: AuthContext = Depends(get_auth_context),
) -> Contact:
    """Accept or reject a request addressed to the caller."""
    contact = await ctx.services.users.respond_contact_request(contact_id, ctx.user.id, body.accept)
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact request not found")
    return contact
