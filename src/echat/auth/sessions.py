"""Session revocation store.

Revoked session ids live in the ``revoked_sessions`` collection of the
request's backend, keyed by the SHA-256 of the id.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime

import structlog

from echat.backends.base import BackendClient

logger = structlog.get_logger()


def _key(session_id: str) -> str:
    return hashlib.sha256(session_id.encode()).hexdigest()


class SessionRevoker:
    """Marks sessions revoked and answers revocation checks."""

    def __init__(self, backend: BackendClient) -> None:
        self.sessions = backend.collection("revoked_sessions")

    async def revoke(self, session_id: str, user_id: str | None = None) -> None:
        """Revoke a session. Revoking twice is a no-op."""
        key = _key(session_id)
        if await self.sessions.get(key) is not None:
            return
        await self.sessions.insert({"id": key, "user_id": user_id, "revoked_at": datetime.now(UTC)})
        logger.info("session_revoked", user_id=user_id)

    async def is_revoked(self, session_id: str) -> bool:
        return await self.sessions.get(_key(session_id)) is not None
