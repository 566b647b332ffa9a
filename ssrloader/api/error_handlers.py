"""
Structured API error response handlers.

Wraps HTTPExceptions, loader failures and unhandled exceptions in a
consistent JSON envelope with a machine-readable error code and a
timestamp.

Response format:
    {
        "error": {
            "code": "MODULE_NOT_FOUND",
            "message": "failed to load module for ssr: /src/missing.py",
            "status": 404,
            "request_id": "abc123...",
            "timestamp": 1718901234.56,
            "details": null
        }
    }

Usage:
    from ssrloader.api.error_handlers import install_error_handlers
    install_error_handlers(app)
"""
from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ssrloader.errors import ResolutionFailure, SSRLoaderError, TransformFailure

log = logging.getLogger("ssrloader.api.errors")


# ── Error response schema ────────────────────────────────────────────

class ErrorDetail(BaseModel):
    """Structured error payload."""
    code: str
    message: str
    status: int
    request_id: str | None = None
    timestamp: float = 0.0
    details: Any | None = None


class ErrorResponse(BaseModel):
    """Envelope wrapping an ErrorDetail."""
    error: ErrorDetail


# ── HTTP status → error code mapping ─────────────────────────────────

_STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _error_code_for(status: int) -> str:
    return _STATUS_CODES.get(status, f"HTTP_{status}")


def _get_request_id(request: Request) -> str | None:
    rid = getattr(request.state, "request_id", None)
    if rid:
        return str(rid)
    return request.headers.get("x-request-id")


def _debug_enabled(request: Request) -> bool:
    config = getattr(request.app.state, "config", None)
    return bool(config is not None and config.debug)


def _build_error_response(
    status: int,
    message: str,
    request: Request,
    details: Any = None,
    code: str | None = None,
) -> JSONResponse:
    """Build a structured JSON error response."""
    body = ErrorResponse(
        error=ErrorDetail(
            code=code or _error_code_for(status),
            message=message,
            status=status,
            request_id=_get_request_id(request),
            timestamp=time.time(),
            details=details,
        )
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
    )


# ── Exception handlers ───────────────────────────────────────────────

async def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _build_error_response(exc.status_code, detail, request)


async def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = []
    for err in exc.errors():
        loc = " → ".join(str(l) for l in err.get("loc", []))
        errors.append({"field": loc, "message": err.get("msg", ""), "type": err.get("type", "")})
    return _build_error_response(
        422,
        "Request validation failed",
        request,
        details=errors,
        code="VALIDATION_ERROR",
    )


async def _transform_failure_handler(
    request: Request, exc: TransformFailure
) -> JSONResponse:
    return _build_error_response(
        404, str(exc), request,
        details={"url": exc.url},
        code="MODULE_NOT_FOUND",
    )


async def _resolution_failure_handler(
    request: Request, exc: ResolutionFailure
) -> JSONResponse:
    log.error(
        "Unresolved dependency on %s: %s", request.url.path, exc,
        extra={"request_path": request.url.path},
    )
    return _build_error_response(
        500, str(exc), request,
        details={"dep_id": exc.dep_id, "resolve_dir": exc.resolve_dir},
        code="DEPENDENCY_NOT_FOUND",
    )


async def _loader_error_handler(
    request: Request, exc: SSRLoaderError
) -> JSONResponse:
    return _build_error_response(500, str(exc), request, code="SSR_LOAD_ERROR")


async def _unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all; module evaluation errors land here.

    The rewritten SSR stack is only included in debug mode.
    """
    stack = getattr(exc, "ssr_stacktrace", None)
    if stack is None:
        log.exception(
            "Unhandled exception on %s %s", request.method, request.url.path,
            extra={"request_path": request.url.path},
        )
    details = None
    if _debug_enabled(request):
        details = {"type": type(exc).__name__, "stack": stack}
    return _build_error_response(
        500,
        "Error when evaluating SSR module" if stack is not None else "Internal server error",
        request,
        details=details,
        code="SSR_EVALUATION_ERROR" if stack is not None else None,
    )


# ── Installer ────────────────────────────────────────────────────────

def install_error_handlers(app: FastAPI) -> None:
    """Register structured error handlers on the FastAPI application."""
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(TransformFailure, _transform_failure_handler)
    app.add_exception_handler(ResolutionFailure, _resolution_failure_handler)
    app.add_exception_handler(SSRLoaderError, _loader_error_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
    log.debug("Structured API error handlers installed")
