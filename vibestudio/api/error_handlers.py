"""Error Handlers - global exception handlers for the studio API.

Invariants:
    - StudioError -> {"error": <message>, code, category, severity} with its http_status
      and any error-specific headers (Retry-After on 429)
    - RequestValidationError -> 400 with field-level details
    - Exception (catch-all) -> never leaks internal details

Design Decisions:
    - Three-layer handler: domain (StudioError), validation (Pydantic), catch-all (Exception)
    - Extracted from main.py to keep the entry point's import fan-out small
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from vibestudio.core.errors import ErrorSeverity, StudioError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_studio_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_studio_error_handler(app: FastAPI) -> None:

    @app.exception_handler(StudioError)
    async def studio_error_handler(request: Request, exc: StudioError):
        """Handle all studio domain/infrastructure errors."""
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            f"StudioError: {exc.message}",
            extra={
                "error_code": exc.code,
                "path": request.url.path,
                "project_id": exc.context.project_id,
            },
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=exc.to_response(),
            headers=exc.response_headers(),
        )


def _register_validation_error_handler(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        """Handle Pydantic validation errors."""
        logger.warning(
            f"Validation error on {request.url.path}: {exc.errors()}",
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_build_validation_error_response(exc),
        )


def _register_generic_error_handler(app: FastAPI) -> None:

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all - never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
                "category": "internal",
                "severity": ErrorSeverity.CRITICAL.value,
            },
        )


def _build_validation_error_response(exc: RequestValidationError) -> dict:
    """Build structured validation error response."""
    return {
        "error": "Invalid request data",
        "code": "VALIDATION_ERROR",
        "category": "validation",
        "severity": ErrorSeverity.WARNING.value,
        "details": [
            {
                "field": ".".join(str(loc) for loc in e["loc"]),
                "message": e["msg"],
                "type": e["type"],
            }
            for e in exc.errors()
        ],
    }
