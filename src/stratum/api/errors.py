"""Translate service-layer exceptions into HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from stratum.errors import (
    AlreadyExistsError,
    DatabaseError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from stratum.logging import get_logger

log = get_logger("api.errors")


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str
    details: list[str] | None = None


def _error(status_code: int, error: str, details: list[str] | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def handle_repository_error(request: Request, exc: RepositoryError) -> JSONResponse:
    """Map repository errors to status codes."""
    if isinstance(exc, NotFoundError):
        return _error(status.HTTP_404_NOT_FOUND, f"Resource not found: {exc.entity_id}")
    if isinstance(exc, AlreadyExistsError):
        return _error(
            status.HTTP_409_CONFLICT,
            f"Resource already exists with id: {exc.entity_id}",
        )
    if isinstance(exc, ValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, "Validation failed", [exc.message])
    if isinstance(exc, DatabaseError):
        log.error("request_database_error", path=request.url.path, error=exc.message)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Database error occurred",
            [exc.message],
        )

    log.error("request_failed", path=request.url.path, error=str(exc))
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", [str(exc)])


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report invalid request payloads and query parameters as 400."""
    details = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]
    return _error(status.HTTP_400_BAD_REQUEST, "Validation failed", details)


def register_error_handlers(app: FastAPI) -> None:
    """Install the exception handlers on an application."""
    app.add_exception_handler(RepositoryError, handle_repository_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
