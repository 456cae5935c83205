"""
Application error types and their HTTP mapping.

Services raise these; a single exception handler registered in main.py
turns them into ``{"error": "<message>"}`` JSON responses.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "サーバーエラーが発生しました"

    def __init__(self, message: str = None, **extra):
        self.message = message or self.default_message
        # Extra keys merged into the JSON error body
        self.extra = extra
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or missing required input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "入力内容が正しくありません"


class NotFoundError(AppError):
    """Referenced entity does not exist where existence is required."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "対象が見つかりません"


class AuthError(AppError):
    """Invalid or absent access token."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "無効なトークンです"


class StorageError(AppError):
    """
    Underlying persistence failure.

    The message is always safe to show to clients; the original exception is
    kept as ``__cause__`` and logged by the store.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    content = {"error": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"{type(exc).__name__} in {request.method} {request.url.path}: {exc.message}",
            exc_info=exc.__cause__ is not None,
        )
    else:
        logger.info(f"{type(exc).__name__} in {request.method} {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.message, **exc.extra)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"Request validation failed for {request.method} {request.url.path}: {exc.errors()}")
    return error_response(status.HTTP_400_BAD_REQUEST, ValidationError.default_message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception in {request.method} {request.url.path}: {exc}",
        exc_info=True,
        extra={"error_type": type(exc).__name__},
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, AppError.default_message)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the JSON error handlers with the application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    logger.debug("Exception handlers registered")
