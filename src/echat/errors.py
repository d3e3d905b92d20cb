"""Error taxonomy shared by the services and the HTTP layer.

Expected outcomes (rate limits, permission denials, wrong codes) travel as typed
results inside the services; routers raise these exceptions at the edge so the
global handler can render them with the right status code.
"""

from __future__ import annotations


class EchatError(Exception):
    """Base class for all application errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(EchatError):
    """Required backend credentials or settings are missing. Never retried."""

    status_code = 500
    default_message = "Server configuration error"


class StorageError(EchatError):
    """The underlying store failed. Carries the original driver message."""

    status_code = 503
    default_message = "Storage unavailable"


class RateLimitedError(EchatError):
    """A verification code was requested too soon after the previous one."""

    status_code = 429
    default_message = "Too many requests, please wait before requesting another code"


class ExpiredOrExhaustedError(EchatError):
    """The verification code is expired, already used, or out of attempts."""

    status_code = 400
    default_message = "Verification code not found or expired"


class InvalidCodeError(EchatError):
    """The supplied verification code does not match."""

    status_code = 400
    default_message = "Invalid verification code"


class PermissionDeniedError(EchatError):
    """A block or privacy rule prevents the action."""

    status_code = 403
    default_message = "Permission denied"

    def __init__(self, message: str | None = None, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class NotFoundError(EchatError):
    """Record absent or not owned by the caller. The two cases are indistinguishable."""

    status_code = 404
    default_message = "Not found"


class RegionUnresolvedError(EchatError):
    """No region signal was conclusive and the deployment is configured to fail closed."""

    status_code = 503
    default_message = "Could not determine the service region"
