"""Global exception handlers turning service errors into the JSON error envelope."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .errors import InvariantViolation, SocialError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_social_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_social_error_handler(app: FastAPI) -> None:
    @app.exception_handler(SocialError)
    async def social_error_handler(request: Request, exc: SocialError):
        if isinstance(exc, InvariantViolation):
            logger.error(f"Invariant violated on {request.url.path}: {exc}")
        elif exc.http_status >= 500:
            logger.error(f"Store failure on {request.url.path}: {exc}")
        else:
            logger.info(f"{exc.code} on {request.url.path}: {exc}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())


def _register_validation_error_handler(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": {
                    "code": "validation_error",
                    "message": _first_error_message(exc),
                }
            },
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all; never leaks internal details."""
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": {"code": "internal_error", "message": "Internal server error"}},
        )


def _first_error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", "")
