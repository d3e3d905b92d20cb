"""
Verification codes for registration and password reset.

A code record moves from issued through zero or more attempts to either
verified or expired/exhausted, and never back. Only an HMAC of the code is
stored; the plaintext is returned once to the caller for delivery.

Attempts are counted with the store's atomic increment before the record is
judged, so attempts past the cap are still recorded. The resend window is a
plain "any record newer than N seconds" check; two requests racing inside the
same instant can both pass it.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog

from echat.backends.base import BackendClient
from echat.backends.filters import desc, gt, gte
from echat.config import Settings
from echat.errors import EchatError, ExpiredOrExhaustedError, InvalidCodeError, RateLimitedError

logger = structlog.get_logger()


class CodeType(str, Enum):
    REGISTER = "register"
    RESET_PASSWORD = "reset_password"


class CodeFailure(str, Enum):
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found_or_expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID = "invalid_code"


_ERRORS: dict[CodeFailure, type[EchatError]] = {
    CodeFailure.RATE_LIMITED: RateLimitedError,
    CodeFailure.NOT_FOUND: ExpiredOrExhaustedError,
    CodeFailure.TOO_MANY_ATTEMPTS: ExpiredOrExhaustedError,
    CodeFailure.INVALID: InvalidCodeError,
}


@dataclass(frozen=True)
class CodeResult:
    """Outcome of issuing or checking a code."""

    success: bool
    code: str | None = None
    error: str | None = None
    reason: CodeFailure | None = None

    def to_error(self) -> EchatError:
        """The exception a caller at the HTTP edge should raise for this failure."""
        if self.reason is None:
            msg = "Successful result has no error"
            raise ValueError(msg)
        return _ERRORS[self.reason](self.error)


_NOT_FOUND = CodeResult(success=False, error="Verification code not found or expired", reason=CodeFailure.NOT_FOUND)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class VerificationCodeService:
    """Issues, rate-limits and checks one-time email codes."""

    def __init__(
        self,
        backend: BackendClient,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.codes = backend.collection("email_verification_codes")
        self.secret = settings.jwt_secret_key.encode()
        self.length = settings.verification_code_length
        self.ttl = timedelta(minutes=settings.verification_code_ttl_minutes)
        self.resend_interval = timedelta(seconds=settings.verification_resend_interval_seconds)
        self.max_attempts = settings.verification_max_attempts
        self.clock = clock

    def _hash(self, email: str, type_: CodeType, code: str) -> str:
        message = f"{email}:{type_.value}:{code}".encode()
        return hmac.new(self.secret, message, hashlib.sha256).hexdigest()

    def _generate(self) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(self.length))

    async def create_code(self, email: str, type_: CodeType, client_ip: str | None = None) -> CodeResult:
        """Issue a new code unless one was issued within the resend interval."""
        email = email.lower().strip()
        now = self.clock()
        recent = await self.codes.first(
            {"email": email, "type": type_.value, "created_at": gte(now - self.resend_interval)},
            order=desc("created_at"),
        )
        if recent is not None:
            wait = self.resend_interval - (now - recent["created_at"])
            seconds = max(1, int(wait.total_seconds()))
            logger.info("verification_code_rate_limited", email=email, type=type_.value, retry_after=seconds)
            return CodeResult(
                success=False,
                error=f"Please wait {seconds} seconds before requesting another code",
                reason=CodeFailure.RATE_LIMITED,
            )

        code = self._generate()
        record = await self.codes.insert(
            {
                "email": email,
                "code_hash": self._hash(email, type_, code),
                "type": type_.value,
                "attempts": 0,
                "ip_address": client_ip,
                "created_at": now,
                "expires_at": now + self.ttl,
                "verified": False,
                "verified_at": None,
            }
        )
        logger.info("verification_code_created", email=email, type=type_.value, code_id=record["id"])
        return CodeResult(success=True, code=code)

    async def verify_code(self, email: str, code: str, type_: CodeType) -> CodeResult:
        """Check ``code`` against the newest live record and consume it on a match."""
        email = email.lower().strip()
        now = self.clock()
        record = await self.codes.first(
            {"email": email, "type": type_.value, "verified": False, "expires_at": gt(now)},
            order=desc("created_at"),
        )
        if record is None:
            return _NOT_FOUND

        attempts = await self.codes.increment(record["id"], "attempts")
        if attempts is None:
            return _NOT_FOUND
        if attempts > self.max_attempts:
            logger.warning("verification_code_exhausted", email=email, type=type_.value, attempts=attempts)
            return CodeResult(
                success=False,
                error="Too many attempts, please request a new code",
                reason=CodeFailure.TOO_MANY_ATTEMPTS,
            )

        if not hmac.compare_digest(self._hash(email, type_, code.strip()), record["code_hash"]):
            remaining = self.max_attempts - attempts
            logger.info("verification_code_mismatch", email=email, type=type_.value, remaining=remaining)
            return CodeResult(
                success=False,
                error=f"Invalid verification code, {remaining} attempts remaining",
                reason=CodeFailure.INVALID,
            )

        await self.codes.update(record["id"], {"verified": True, "verified_at": now})
        logger.info("verification_code_verified", email=email, type=type_.value, code_id=record["id"])
        return CodeResult(success=True)
