"""
MarketDash — Global Exception Handlers

Every error response uses the same JSON envelope:

    {"error": "<message>", "status_code": <int>, "request_id": "<id>"}

Status mapping:
  400  missing / invalid parameter, unknown outlook engine
  401  provider credentials not configured (direct analyst calls)
  404  no provider returned data
  500  anything else (logged with traceback, message kept generic)
"""

from __future__ import annotations

import traceback

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from marketdash.exceptions import (
    InvalidRequestError,
    ProviderNotConfiguredError,
    UnknownEngineError,
)

log = structlog.get_logger(__name__)


def error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "status_code": status_code,
            "request_id": request_id,
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(request, exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed query parameters → 400."""
        errors = exc.errors()
        log.warning(
            "validation_error",
            path=str(request.url.path),
            errors=[
                {"field": " → ".join(str(loc) for loc in err.get("loc", [])), "message": err.get("msg", "")}
                for err in errors
            ],
        )
        return error_response(request, 400, "Invalid request parameters")

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(request: Request, exc: InvalidRequestError):
        return error_response(request, 400, str(exc))

    @app.exception_handler(UnknownEngineError)
    async def unknown_engine_handler(request: Request, exc: UnknownEngineError):
        return error_response(request, 400, str(exc))

    @app.exception_handler(ProviderNotConfiguredError)
    async def not_configured_handler(request: Request, exc: ProviderNotConfiguredError):
        log.warning("provider.not_configured", provider=exc.provider, path=str(request.url.path))
        return error_response(request, 401, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions → 500 with safe details."""
        log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
            traceback="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )
        return error_response(request, 500, "Internal server error")
