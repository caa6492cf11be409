"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Consistent JSON error response format ``{success: false, error, code}``
    • CORS headers on every error response
    • Automatic logging of unhandled errors

Usage:
    from backend.app.core.errors import (
        EdgeFunctionError,
        MalformedRequest,
        DirectoryError,
        DispatchError,
        register_error_handlers,
    )

    raise DirectoryError("connection refused")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.core.config import settings
from backend.app.core.middleware import cors_headers

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class EdgeFunctionError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class MalformedRequest(EdgeFunctionError):
    """Request body is missing required fields or has invalid values (400)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=400,
            error_code="MALFORMED_REQUEST",
            details=d,
        )


class DirectoryError(EdgeFunctionError):
    """User-location directory could not be queried (500)."""

    def __init__(self, message: str = "", **details: Any):
        super().__init__(
            message=f"Location directory query failed: {message}",
            status_code=500,
            error_code="DIRECTORY_ERROR",
            details=details,
        )


class ConfigurationError(EdgeFunctionError):
    """A required setting or credential is missing (500)."""

    def __init__(self, setting: str, message: str = ""):
        super().__init__(
            message=message or f"Missing required setting: {setting}",
            status_code=500,
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )


class DispatchError(EdgeFunctionError):
    """
    Push delivery to a single recipient failed.

    Raised by push transports and converted into a failed outcome by the
    dispatcher; it never reaches the HTTP error handlers.
    """

    def __init__(self, message: str, *, reason: str = "transport_error", **details: Any):
        super().__init__(
            message=message,
            status_code=502,
            error_code="DISPATCH_ERROR",
            details={"reason": reason, **details},
        )
        self.reason = reason


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "success": False,
        "error": message,
        "code": error_code,
    }

    if details and not settings.is_production:
        body["details"] = details

    return JSONResponse(status_code=status_code, content=body, headers=cors_headers())


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc or 'body'}: {err.get('msg', 'invalid')}")
    return "Invalid request: " + "; ".join(parts)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(EdgeFunctionError)
    async def handle_edge_error(request: Request, exc: EdgeFunctionError):
        log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(
            log_level,
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message, exc.details,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        malformed = MalformedRequest(_describe_validation_errors(exc))
        logger.warning("Malformed request to %s: %s", request.url.path, malformed.message)
        return _build_error_response(
            malformed.status_code, malformed.error_code, malformed.message,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(500, "INTERNAL_ERROR", str(exc), details)
