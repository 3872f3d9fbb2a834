"""Error Handlers - global exception handlers for the command API.

Invariants:
    - CommandCoreError -> record.to_response() with the code's HTTP status
    - RequestValidationError -> VALIDATION_FAILED envelope with field-level details
    - Exception (catch-all) -> never leaks internal details

Design Decisions:
    - Three-layer handler: domain (CommandCoreError), validation (Pydantic), catch-all (Exception)
    - Bus failures normally arrive as CommandResult, not exceptions; these handlers cover
      route-level faults (bad JSON, missing bus) with the same envelope
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from command_core.core.errors import (
    CommandCoreError, ErrorFactory, ValidationFailedError, ValidationIssue,
)

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_core_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_core_error_handler(app: FastAPI) -> None:

    @app.exception_handler(CommandCoreError)
    async def core_error_handler(request: Request, exc: CommandCoreError):
        logger.error(
            f"CommandCoreError: {exc.message}",
            extra={"error_code": exc.code.value, "error_id": exc.record.id},
        )
        return JSONResponse(
            status_code=exc.http_status, content=exc.to_response(),
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
        error = ValidationFailedError(_issues(exc), "Invalid request data")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content=error.to_response(),
        )


def _register_generic_error_handler(app: FastAPI) -> None:

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all - never leaks internal details."""
        record = ErrorFactory.wrap(exc, {"path": request.url.path})
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
            extra={"error_code": record.code.value, "error_id": record.id},
        )
        return JSONResponse(
            status_code=record.http_status, content=record.to_response(),
        )


def _issues(exc: RequestValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            ".".join(str(loc) for loc in e["loc"]), e["msg"], e["type"],
        )
        for e in exc.errors()
    ]
