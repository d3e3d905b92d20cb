"""FastAPI authentication dependencies."""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from echat.auth.jwt import verify_token
from echat.auth.sessions import SessionRevoker
from echat.dependencies import get_registry
from echat.region.models import Region
from echat.services.factory import RegionServices, ServiceRegistry
from echat.users.schemas import User

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """The caller, their live session id, and the services of the region that holds them."""

    user: User
    session_id: str
    services: RegionServices


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    registry: ServiceRegistry = Depends(get_registry),
) -> AuthContext:
    """
    Verify the session token, reject revoked sessions, and load the user.

    Raises 401 on any failure.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    region = Region.from_deployment(payload.get("region"))
    if region is None:
        raise HTTPException(status_code=401, detail="Invalid token region")
    services = await registry.for_region(region)

    if await SessionRevoker(services.backend).is_revoked(payload["sid"]):
        raise HTTPException(status_code=401, detail="Session has been revoked")

    user = await services.users.get_user_by_id(payload["sub"])
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return AuthContext(user=user, session_id=payload["sid"], services=services)


async def get_current_user(ctx: AuthContext = Depends(get_auth_context)) -> User:
    return ctx.user


async def require_admin(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Same as get_auth_context but the caller must be an administrator."""
    if not ctx.user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return ctx
