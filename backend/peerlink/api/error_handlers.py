"""Error Handlers — one error envelope for the federation wire and the dashboard API.

Invariants:
    - PeerLinkError → to_response() envelope with the error's own http_status
    - Wire-level rejections (HTTPException from WebFinger / inbox) → same envelope shape
    - RequestValidationError → 400 VALIDATION_ERROR with field-level details
    - Exception (catch-all) → 500 INTERNAL_ERROR, never leaks internal details
    - 503 COORDINATOR_NOT_RUNNING carries Retry-After so peers back off during boot/shutdown

Design Decisions:
    - Rejections caused by the caller (4xx: bad signature, unknown resource) log at warning;
      peer or node failures (5xx: discovery, delivery, not running) log at error
    - Log records carry the error context's domain/target/attempt as structured extras,
      so a failed delivery is traceable to its peer in JSON logs
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from peerlink.core.errors import ErrorCategory, ErrorSeverity, PeerLinkError

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5

_HTTP_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    app.add_exception_handler(PeerLinkError, peerlink_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)


async def peerlink_error_handler(request: Request, exc: PeerLinkError) -> JSONResponse:
    """Domain errors: registry misses, verification, discovery, delivery, lifecycle."""
    log = logger.warning if exc.http_status < 500 else logger.error
    ctx = exc.context
    log(
        f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "domain": ctx.domain,
            "target": ctx.target,
            "attempt": ctx.attempt,
        },
    )
    headers = None
    if exc.http_status == status.HTTP_503_SERVICE_UNAVAILABLE:
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers,
    )


async def http_error_handler(
    request: Request, exc: StarletteHTTPException,
) -> JSONResponse:
    """Route-raised rejections (malformed WebFinger resource, bad inbox body, 404s)."""
    logger.warning(
        f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}",
        extra={"path": request.url.path},
    )
    category = (
        ErrorCategory.RESOURCE_NOT_FOUND
        if exc.status_code == status.HTTP_404_NOT_FOUND
        else ErrorCategory.VALIDATION
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(
            _HTTP_CODES.get(exc.status_code, f"HTTP_{exc.status_code}"),
            str(exc.detail), category, ErrorSeverity.WARNING,
        ),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    logger.warning(
        f"Validation error on {request.url.path}: {exc.errors()}",
        extra={"path": request.url.path},
    )
    content = _envelope(
        "VALIDATION_ERROR", "Invalid request data",
        ErrorCategory.VALIDATION, ErrorSeverity.ERROR,
    )
    content["error"]["details"] = [
        {
            "field": ".".join(str(loc) for loc in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all — never leaks internal details."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {exc}",
        exc_info=True,
        extra={"path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ),
    )


def _envelope(
    code: str, message: str, category: ErrorCategory, severity: ErrorSeverity,
) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category.value,
            "severity": severity.value,
        },
    }
