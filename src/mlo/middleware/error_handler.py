"""JSON error bodies: every failure carries ``detail`` and a stable ``kind``."""

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mlo.errors import ProgressError

logger = structlog.get_logger()

_HTTP_KINDS = {
    401: "unauthenticated",
    404: "not_found",
    405: "method_not_allowed",
    503: "unavailable",
}


def error_response(status_code: int, detail: Any, kind: str, headers: dict[str, str] | None = None, **extra: Any) -> JSONResponse:  # noqa: ANN401
    return JSONResponse(status_code=status_code, content={"detail": detail, "kind": kind, **extra}, headers=headers)


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    """Validation errors without the non-serializable ``ctx``/``input`` payloads."""
    return [{k: v for k, v in err.items() if k in ("type", "loc", "msg")} for err in exc.errors()]


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(ProgressError)
    async def progress_error_handler(request: Request, exc: ProgressError) -> JSONResponse:
        if exc.status_code >= 500 or exc.kind == "conflict_exhausted":
            logger.warning("request_failed", path=request.url.path, kind=exc.kind, error=exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return error_response(exc.status_code, exc.message, exc.kind, headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, exc.detail, _HTTP_KINDS.get(exc.status_code, "http_error"), exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(422, "Validation error", "invalid_request", errors=jsonable_errors(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", path=request.url.path, method=request.method, exc_info=exc)
        return error_response(500, "Internal server error", "internal")
