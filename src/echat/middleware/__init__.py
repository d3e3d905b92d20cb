"""Middleware registration."""

from fastapi import FastAPI

from echat.config import Settings
from echat.middleware.cors import setup_cors
from echat.middleware.error_handler import setup_error_handlers
from echat.middleware.logging import setup_logging
from echat.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and middleware.

    Starlette runs middleware in reverse-add order, so CORS (added last) wraps
    every response including errors.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
