"""Middleware registration."""

from fastapi import FastAPI

from mlo.config import Settings
from mlo.middleware.cors import setup_cors
from mlo.middleware.error_handler import setup_error_handlers
from mlo.middleware.logging import setup_logging
from mlo.middleware.rate_limit import RateLimitMiddleware
from mlo.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware.

    Starlette runs middleware in reverse-add order, so CORS is added last to
    wrap 429 responses from the rate limiter.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        trust_forwarded_for=settings.trust_forwarded_for,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
