"""
Application error taxonomy and the FastAPI handler that renders it.

UserError carries a message meant for the caller. InternalError wraps an
unexpected failure: the cause is logged server-side and the caller only sees a
generic message.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Unexpected internal server error occurred"


class AppError(Exception):
    def __init__(
        self,
        messages: list[str],
        status_code: int,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(", ".join(messages))
        self.messages = messages
        self.status_code = status_code
        self.cause = cause

    def as_body(self) -> dict:
        if len(self.messages) == 1:
            return {"error": self.messages[0]}
        return {"errors": self.messages}


class UserError(AppError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__([message], status_code)


class ValidationFailed(AppError):
    """Request fields that failed validation, one message per field."""

    def __init__(self, messages: list[str]):
        super().__init__(messages, 400)


class InternalError(AppError):
    def __init__(self, cause: BaseException):
        super().__init__([INTERNAL_ERROR_MESSAGE], 500, cause=cause)


class InvalidSortMode(UserError):
    def __init__(self):
        super().__init__("Unsupported sorting method requested!", 400)


class InvalidCursor(UserError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class AuthError(UserError):
    def __init__(self, message: str):
        super().__init__(message, 403)


class NoAccess(UserError):
    def __init__(self):
        super().__init__("You don't have access to this resource", 403)


class RiceNotFound(UserError):
    def __init__(self):
        super().__init__("Rice with provided ID not found", 404)


class UserNotFound(UserError):
    def __init__(self):
        super().__init__("User not found", 404)


class MissingFile(UserError):
    def __init__(self):
        super().__init__("Required file is missing", 400)


class TitleInUse(UserError):
    def __init__(self):
        super().__init__("Provided rice title is already in use!", 409)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.cause is not None:
        logger.error(
            "Unexpected error occurred on %s %s",
            request.method,
            request.url.path,
            exc_info=exc.cause,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.as_body())


async def database_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    return await app_error_handler(request, InternalError(exc))


def _validation_message(error: dict) -> str:
    # loc starts with where the value came from ("body", "query", "path", ...)
    field = ".".join(str(part) for part in error.get("loc", ())[1:])
    if not field:
        return error["msg"]
    return f"{field}: {error['msg']}"


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = [_validation_message(error) for error in exc.errors()]
    return await app_error_handler(request, ValidationFailed(messages))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
