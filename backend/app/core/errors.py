"""
Service-level errors and their translation to JSON responses.

Services raise the :class:`ServiceError` subclasses below and never touch
HTTP types directly. :func:`register_exception_handlers` turns them, together
with FastAPI's own ``HTTPException`` and request validation failures, into a
single response shape::

    {"statusCode": 401, "message": "Invalid refresh token", "error": "Unauthorized"}
"""

import logging
from http import HTTPStatus
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequestError(ServiceError):
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Bad request"


class InvalidCredentialError(ServiceError):
    """Login fields are missing, malformed or could not be verified."""

    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Authentication failed"


class UnauthorizedError(ServiceError):
    """Bad or expired token, or an ownership conflict."""

    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Unauthorized"


class NotFoundError(ServiceError):
    status_code = HTTPStatus.NOT_FOUND
    default_message = "Not found"


class ConflictError(ServiceError):
    status_code = HTTPStatus.CONFLICT
    default_message = "Conflict"


class UsernameTakenError(ConflictError):
    default_message = "Username already taken"


def error_body(status_code: int, message: Union[str, List[str]]) -> Dict[str, Any]:
    """Build the uniform ``{statusCode, message, error}`` payload."""
    return {
        "statusCode": status_code,
        "message": message,
        "error": HTTPStatus(status_code).phrase,
    }


def _validation_messages(exc: RequestValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        text = error.get("msg", "Invalid value")
        messages.append(f"{location}: {text}" if location else text)
    return messages


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the JSON error handlers to the application."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
        status_code = int(exc.status_code)
        level = logger.error if status_code >= 500 else logger.warning
        level(
            f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}"
        )
        return JSONResponse(status_code=status_code, content=error_body(status_code, exc.message))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else HTTPStatus(exc.status_code).phrase
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # every violation is reported, not only the first one
        messages = _validation_messages(exc)
        logger.warning(f"Validation failed on {request.url.path}: {messages}")
        return JSONResponse(
            status_code=HTTPStatus.BAD_REQUEST,
            content=error_body(HTTPStatus.BAD_REQUEST, messages),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc
        )
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content=error_body(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error"),
        )
