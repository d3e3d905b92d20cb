"""
Session token management.

A session token is a signed JWT whose ``sid`` claim names the login session.
The device row stores the ``sid``, so revoking a device revokes exactly that
session.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from echat.config import get_settings


def new_session_id() -> str:
    """Opaque identifier for a login session."""
    return secrets.token_urlsafe(24)


def create_session_token(user_id: str, session_id: str, region: str) -> str:
    """
    Create a session token.

    Args:
        user_id: The user's id.
        session_id: Identifier recorded on the device row and checked for revocation.
        region: Region whose store holds the user.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": user_id,
        "sid": session_id,
        "region": region,
        "iat": now,
        "exp": now + timedelta(hours=settings.session_ttl_hours),
        "iss": settings.jwt_issuer,
        "type": "session",
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode a session token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or not a session token.
    """
    settings = get_settings()
    payload = jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "sid", "exp", "iat", "iss"]},
    )
    if payload.get("type") != "session":
        msg = "Invalid token type"
        raise jwt.InvalidTokenError(msg)
    return payload
