"""Domain errors and their HTTP mapping."""

import logging
from typing import Iterable, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base domain error with a message and an HTTP status code."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def extra(self) -> dict:
        return {}


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class SeatConflict(DomainError):
    """One or more requested seats are booked or locked by someone else."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, seats: Iterable[int], message: Optional[str] = None):
        self.seats = sorted(set(seats))
        seat_list = ", ".join(str(s) for s in self.seats)
        super().__init__(message or f"Seats unavailable: {seat_list}")

    def extra(self) -> dict:
        return {"seats": self.seats}


class ScheduleUnavailable(DomainError):
    status_code = status.HTTP_409_CONFLICT


class Unauthorized(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateTransition(DomainError):
    status_code = status.HTTP_409_CONFLICT


class AlreadyInState(InvalidStateTransition):
    """Idempotency guard: the entity is already in the requested state."""


class AlreadyConfirmed(AlreadyInState):
    pass


class AlreadyCancelled(AlreadyInState):
    pass


class BookingExpired(InvalidStateTransition):
    pass


class DispatchFailure(Exception):
    """A notification could not be delivered. Logged, never surfaced to callers."""


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    content = {"detail": exc.message}
    content.update(exc.extra())
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("%s %s -> 400: invalid request body", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Store error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


EXCEPTION_HANDLERS = {
    DomainError: domain_error_handler,
    RequestValidationError: request_validation_handler,
    SQLAlchemyError: store_error_handler,
    Exception: unhandled_error_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
