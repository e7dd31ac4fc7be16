"""Booking error taxonomy and HTTP error handlers."""
import enum
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from courtbook.core.config import settings

logger = logging.getLogger(__name__)


class ReasonCode(str, enum.Enum):
    """Stable, machine-readable failure reasons."""

    COURT_CONFLICT = "CourtConflict"
    MAINTENANCE_CONFLICT = "MaintenanceConflict"
    COACH_CONFLICT = "CoachConflict"
    COACH_UNAVAILABLE = "CoachUnavailable"
    INSUFFICIENT_STOCK = "InsufficientStock"
    RESOURCE_INACTIVE = "ResourceInactive"
    NOT_FOUND = "NotFound"
    ALREADY_CANCELLED = "AlreadyCancelled"
    NOT_AUTHORIZED = "NotAuthorized"
    NOT_AUTHENTICATED = "NotAuthenticated"
    INVALID_REQUEST = "InvalidRequest"
    INVALID_TRANSITION = "InvalidTransition"
    TRANSIENT_FAILURE = "TransientFailure"
    INTERNAL_ERROR = "InternalError"


class BookingError(Exception):
    """Base class for every failure the booking engine reports."""

    status_code = 400
    default_code = ReasonCode.INVALID_REQUEST

    def __init__(self, message: str, code: Optional[ReasonCode] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_payload(self) -> Dict[str, Any]:
        return {"code": self.code.value, "detail": self.message}


class UnavailableError(BookingError):
    """A requested resource is taken, blocked, inactive or out of stock."""

    status_code = 409
    default_code = ReasonCode.COURT_CONFLICT

    def __init__(self, code: ReasonCode, message: Optional[str] = None):
        super().__init__(message or f"Requested resources are unavailable ({code.value})", code)
        if code == ReasonCode.NOT_FOUND:
            self.status_code = 404


class NotFoundError(BookingError):
    status_code = 404
    default_code = ReasonCode.NOT_FOUND


class AlreadyCancelledError(BookingError):
    status_code = 409
    default_code = ReasonCode.ALREADY_CANCELLED


class NotAuthorizedError(BookingError):
    status_code = 403
    default_code = ReasonCode.NOT_AUTHORIZED


class NotAuthenticatedError(BookingError):
    status_code = 401
    default_code = ReasonCode.NOT_AUTHENTICATED


class InvalidRequestError(BookingError):
    """Malformed input rejected before any write."""

    status_code = 422
    default_code = ReasonCode.INVALID_REQUEST


class InvalidTransitionError(BookingError):
    status_code = 409
    default_code = ReasonCode.INVALID_TRANSITION


class TransientError(BookingError):
    """Storage-level failure; the whole unit of work was rolled back and may be retried."""

    status_code = 503
    default_code = ReasonCode.TRANSIENT_FAILURE


GENERIC_STORAGE_MESSAGE = "The booking store is temporarily unavailable, please retry"


def register_error_handlers(app: FastAPI) -> None:
    """Install JSON error handlers that emit ``{code, detail}`` bodies."""

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        if isinstance(exc, TransientError):
            logger.warning(f"Transient failure on {request.method} {request.url.path}: {exc.message}")
            payload = exc.to_payload()
            if not settings.DEBUG:
                payload["detail"] = GENERIC_STORAGE_MESSAGE
            return JSONResponse(status_code=exc.status_code, content=payload)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "code": ReasonCode.INVALID_REQUEST.value,
                "detail": "Request validation failed",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(f"Storage error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        detail = str(exc) if settings.DEBUG else GENERIC_STORAGE_MESSAGE
        return JSONResponse(
            status_code=503,
            content={"code": ReasonCode.TRANSIENT_FAILURE.value, "detail": detail},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        detail = str(exc) if settings.DEBUG else "Internal server error"
        return JSONResponse(
            status_code=500,
            content={"code": ReasonCode.INTERNAL_ERROR.value, "detail": detail},
        )
