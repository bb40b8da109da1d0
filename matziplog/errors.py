"""Error types and centralized exception handlers.

Every error response is a JSON object with a ``message`` field. Extra
keyword arguments given to an ``ApiError`` are merged into the body, which
is how the login endpoint reports its attempt counters. Unexpected failures
answer 500 and echo the raw error text in an ``error`` field.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra


class ValidationFailed(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND


class AccountLocked(ApiError):
    status_code = status.HTTP_423_LOCKED


def _error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    headers = None
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=status_code,
        content={"message": message, **extra},
        headers=headers,
    )


def _format_validation_error(error: dict) -> str:
    loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
    field = ".".join(loc)
    msg = error.get("msg", "Invalid value")
    return f"{field}: {msg}" if field else msg


def validation_message(errors: list) -> str:
    return ", ".join(_format_validation_error(e) for e in errors)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers on the application."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.debug(
                "%s %s -> %d %s",
                request.method,
                request.url.path,
                exc.status_code,
                exc.message,
            )
        return _error_response(exc.status_code, exc.message, **exc.extra)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            return _error_response(exc.status_code, "The requested resource was not found")
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = validation_message(exc.errors())
        logger.debug("Validation failed on %s %s: %s", request.method, request.url.path, message)
        return _error_response(status.HTTP_400_BAD_REQUEST, message)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            error=str(exc),
        )
