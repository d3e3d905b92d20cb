"""Authentication router: all /api/v1/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from echat.auth.dependencies import AuthContext, get_auth_context
from echat.auth.password import PasswordStrengthError, hash_password, validate_password_strength, verify_password
from echat.auth.schemas import (
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    SendCodeRequest,
    SendCodeResponse,
    TokenResponse,
)
from echat.auth.service import ClientMeta, issue_session
from echat.auth.sessions import SessionRevoker
from echat.config import get_settings
from echat.dependencies import (
    get_client_ip,
    get_device_registry,
    get_region_services,
    get_registry,
    get_verification_service,
)
from echat.email.service import get_email_service
from echat.errors import ExpiredOrExhaustedError
from echat.services.factory import RegionServices, ServiceRegistry
from echat.users.schemas import CreateUserRequest
from echat.verification.service import CodeType, VerificationCodeService

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

_RESET_SENT = "If an account exists for this email, a reset code has been sent"


def _client_meta(request: Request) -> ClientMeta:
    return ClientMeta(user_agent=request.headers.get("user-agent"), ip_address=get_client_ip(request))


def _check_password(password: str) -> None:
    try:
        validate_password_strength(password)
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


# ---------------------------------------------------------------------------
# Verification codes
# ---------------------------------------------------------------------------


@router.post("/send-register-code", response_model=SendCodeResponse)
async def send_register_code(
    body: SendCodeRequest,
    request: Request,
    services: RegionServices = Depends(get_region_services),
    codes: VerificationCodeService = Depends(get_verification_service),
) -> SendCodeResponse:
    """Send a registration code to an unregistered address."""
    if await services.users.get_user_by_email(body.email) is not None:
        raise HTTPException(status_code=409, detail="Email already registered")

    result = await codes.create_code(body.email, CodeType.REGISTER, get_client_ip(request))
    if not result.success:
        raise result.to_error()

    if not await get_email_service().send_verification_code(body.email, result.code or "", CodeType.REGISTER):
        raise HTTPException(status_code=502, detail="Could not send verification email")
    return SendCodeResponse(
        message="Verification code sent",
        expires_in=get_settings().verification_code_ttl_minutes * 60,
    )


@router.post("/send-reset-code", response_model=SendCodeResponse)
async def send_reset_code(
    body: SendCodeRequest,
    request: Request,
    services: RegionServices = Depends(get_region_services),
    codes: VerificationCodeService = Depends(get_verification_service),
) -> SendCodeResponse:
    """Send a password reset code. The response never reveals whether the address is registered."""
    response = SendCodeResponse(message=_RESET_SENT, expires_in=get_settings().verification_code_ttl_minutes * 60)
    if await services.users.get_user_by_email(body.email) is None:
        return response

    result = await codes.create_code(body.email, CodeType.RESET_PASSWORD, get_client_ip(request))
    if not result.success:
        return response

    await get_email_service().send_verification_code(body.email, result.code or "", CodeType.RESET_PASSWORD)
    return response


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    services: RegionServices = Depends(get_region_services),
    codes: VerificationCodeService = Depends(get_verification_service),
) -> MessageResponse:
    """Consume a reset code and set a new password."""
    _check_password(body.new_password)

    result = await codes.verify_code(body.email, body.code, CodeType.RESET_PASSWORD)
    if not result.success:
        raise result.to_error()

    user = await services.users.get_user_by_email(body.email)
    if user is None:
        raise ExpiredOrExhaustedError
    await services.users.update_user(user.id, {"password_hash": hash_password(body.new_password)})
    logger.info("password_reset", user_id=user.id)
    return MessageResponse(message="Password has been reset")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    services: RegionServices = Depends(get_region_services),
    codes: VerificationCodeService = Depends(get_verification_service),
    registry: ServiceRegistry = Depends(get_registry),
) -> TokenResponse:
    """Create an account from a verified registration code and sign in."""
    _check_password(body.password)

    result = await codes.verify_code(body.email, body.code, CodeType.REGISTER)
    if not result.success:
        raise result.to_error()

    try:
        user = await services.users.create_user(
            CreateUserRequest(
                email=body.email,
                username=body.username,
                full_name=body.full_name,
                password_hash=hash_password(body.password),
            )
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    return await issue_session(
        services, get_device_registry(services), registry.resolver.locator, user, _client_meta(request)
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    services: RegionServices = Depends(get_region_services),
    registry: ServiceRegistry = Depends(get_registry),
) -> TokenResponse:
    """Sign in with email and password."""
    user = await services.users.get_user_by_email(body.email)
    if user is None or not verify_password(body.password, user.password_hash):
        logger.info("login_failed", email=body.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return await issue_session(
        services, get_device_registry(services), registry.resolver.locator, user, _client_meta(request)
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(ctx: AuthContext = Depends(get_auth_context)) -> MessageResponse:
    """Revoke the current session and drop its device row."""
    await SessionRevoker(ctx.services.backend).revoke(ctx.session_id, ctx.user.id)
    await get_device_registry(ctx.services).forget_session(ctx.user.id, ctx.session_id)
    return MessageResponse(message="Logged out")
