"""Middleware registration."""

from fastapi import FastAPI

from podium.config import Settings
from podium.middleware.error_handler import setup_error_handlers
from podium.middleware.logging import setup_logging
from podium.middleware.request_context import RequestContextMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, exception handlers and the request-context middleware."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestContextMiddleware)
