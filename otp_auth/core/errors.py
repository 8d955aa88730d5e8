"""Typed HTTP errors and the handlers that render them.

Every failure leaves the service as ``{"success": false, "message": ...}``
with a lowercase message and a status matching its kind.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    """Base class for errors raised deliberately by the service layer."""

    status_code = status.HTTP_400_BAD_REQUEST
    name = "Request Error"

    def __init__(self, message: str, headers: dict[str, str] | None = None):
        super().__init__(status_code=self.status_code, detail=message.lower(), headers=headers)

    @property
    def message(self) -> str:
        return self.detail


class RequestError(AppError):
    """Client-correctable problem: bad input, missing session, duplicates."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AppError):
    """Inactive or soft-deleted account, or a missing role."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class RateLimitError(AppError):
    """The OTP resend interval has not elapsed yet."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class InternalError(AppError):
    """Unexpected failure of a collaborator, normalized for the client."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    name = "Internal Server Error"

    @classmethod
    def from_exception(cls, exc: BaseException) -> "InternalError":
        """Keep only the first line of the underlying message.

        SQLAlchemy errors carry the statement and parameters on later lines;
        those never reach the client.
        """
        source = getattr(exc, "orig", None) or exc
        lines = str(source).strip().splitlines()
        return cls(lines[0] if lines else "an unknown error occurred")


def error_body(message: str) -> dict:
    return {"success": False, "message": message.lower()}


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render AppError and framework HTTP errors in the common envelope."""
    message = exc.detail if isinstance(exc.detail, str) else "request error"
    log = logger.error if exc.status_code >= 500 else logger.info
    log("%s %s -> %s %s", request.method, request.url.path, exc.status_code, message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Turn body/query parsing failures into a 400 with the first problem."""
    errors = jsonable_encoder(exc.errors())
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", "invalid request")
    else:
        message = "invalid request"
    logger.info("%s %s -> 400 %s", request.method, request.url.path, message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body(message))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("internal server error"),
    )
