"""
Global exception handlers rendering every failure as the shared JSON envelope.

``CanvaBridgeError`` subclasses carry their own status and body; request
validation failures are reported as a malformed request; anything else is a
500 that never leaks internal details.
"""

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from canva_bridge.core.errors import CanvaBridgeError, MalformedRequest

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_bridge_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def bridge_error_response(request: Request, exc: CanvaBridgeError) -> JSONResponse:
    """Log ``exc`` and render it; routes use this when they must add cookies."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "%s on %s: %s (code=%s)",
        type(exc).__name__,
        request.url.path,
        exc.message,
        exc.code,
    )
    return JSONResponse(status_code=int(exc.status_code), content=exc.to_response())


def _register_bridge_error_handler(app: FastAPI) -> None:
    @app.exception_handler(CanvaBridgeError)
    async def bridge_error_handler(request: Request, exc: CanvaBridgeError):
        return bridge_error_response(request, exc)


def _register_validation_error_handler(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        error = MalformedRequest(_describe_validation_error(exc))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content=error.to_response()
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all; never leaks internal details."""
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "An unexpected error occurred"},
        )


def _describe_validation_error(exc: RequestValidationError) -> str:
    """Collapse pydantic's error list into one message, e.g. ``Missing imageUrl``."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first: Dict[str, Any] = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query")]
    if not location:
        return "Invalid request body"
    field = location[-1]
    if first.get("type") == "missing":
        return f"Missing {field}"
    return f"Invalid {field}: {first.get('msg', 'invalid value')}"


__all__ = ["bridge_error_response", "register_error_handlers"]
