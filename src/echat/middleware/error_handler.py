"""Global error handlers: every failure leaves as JSON."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from echat.errors import EchatError, PermissionDeniedError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(EchatError)
    async def echat_error_handler(request: Request, exc: EchatError) -> JSONResponse:
        """Render application errors with their own status code."""
        content: dict[str, object] = {"detail": exc.message}
        if isinstance(exc, PermissionDeniedError) and exc.reason:
            content["reason"] = exc.reason
        if exc.status_code >= 500:
            logger.error(
                "request_failed",
                path=request.url.path,
                method=request.method,
                error_type=type(exc).__name__,
                error=exc.message,
            )
            # Driver and config messages stay in the log.
            masked = EchatError if exc.status_code == 500 else type(exc)
            content = {"detail": masked.default_message}
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
