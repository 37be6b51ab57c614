"""Browser access for the exercise web client."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mlo.config import Settings

# X-Webhook-Secret is server-to-server only.
_REQUEST_HEADERS = ["Authorization", "Content-Type", "X-Request-Id"]
_RESPONSE_HEADERS = ["X-Request-Id", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"]


def setup_cors(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.cors_origin_regex or None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=_REQUEST_HEADERS,
        expose_headers=_RESPONSE_HEADERS,
        max_age=600,
    )
