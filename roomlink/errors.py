"""Error kinds raised by the booking core and their HTTP translation."""
from __future__ import annotations

import logging

from circuitbreaker import CircuitBreakerError
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class RoomLinkError(Exception):
    """Base class; ``message`` is safe to show to end users."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(RoomLinkError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ConflictError(RoomLinkError):
    default_message = "Room is not available for the selected dates"


class InvalidStateError(RoomLinkError):
    default_message = "Booking cannot make this transition"


class InvalidRangeError(RoomLinkError):
    default_message = "Check-out date must be after check-in date"


class InvalidUploadError(RoomLinkError):
    default_message = "Upload rejected"


class StorageError(RoomLinkError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage failure, the operation was rolled back"


def roomlink_error_handler(_: Request, exc: RoomLinkError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error("storage failure surfaced to client: %s", exc.__cause__ or exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def database_error_handler(_: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("database error surfaced to client: %s", exc)
    return JSONResponse(status_code=StorageError.status_code, content={"detail": StorageError.default_message})


def circuit_open_handler(_: Request, exc: CircuitBreakerError) -> JSONResponse:
    logger.warning("request short-circuited: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable, try again later"},
    )


def add_error_handlers(app: FastAPI) -> None:
    """Translate core error kinds into JSON responses."""

    app.add_exception_handler(RoomLinkError, roomlink_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(CircuitBreakerError, circuit_open_handler)
