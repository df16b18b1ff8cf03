"""Map share pool domain errors to JSON HTTP responses.

Responses carry the error message and its structured details; stack traces
never leave the process.
"""
from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from sharepool.core.errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    InsufficientFundsError,
    NotFoundError,
    SharePoolError,
    ValidationError,
)
from sharepool.core.logger import get_logger

LOGGER = get_logger(__name__)

HTTP_400 = 400
HTTP_404 = 404
HTTP_409 = 409
HTTP_422 = 422
HTTP_500 = 500

# Most specific first; the first matching class decides the status code.
_STATUS_BY_ERROR: tuple[tuple[type[SharePoolError], int, str], ...] = (
    (NotFoundError, HTTP_404, "not_found"),
    (ValidationError, HTTP_422, "validation_error"),
    (InsufficientFundsError, HTTP_409, "insufficient_funds"),
    (ConcurrencyConflictError, HTTP_409, "concurrency_conflict"),
    (ConfigurationError, HTTP_400, "configuration_error"),
)


def _error_response(status_code: int, error: str, message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error, "detail": message}
    if details:
        body["context"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content=body)


def status_for(exc: SharePoolError) -> tuple[int, str]:
    for error_type, status_code, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code, code
    return HTTP_500, "internal_error"


def register_error_handlers(app: FastAPI) -> None:
    """Register the domain error handler on the FastAPI application."""

    @app.exception_handler(SharePoolError)
    async def handle_share_pool_error(_request: Request, exc: SharePoolError) -> JSONResponse:
        status_code, code = status_for(exc)
        if status_code >= HTTP_500:
            LOGGER.error("Unhandled domain error: %s", exc.message)
            return _error_response(status_code, code, "Internal server error")
        LOGGER.warning("%s: %s", code, exc.message)
        return _error_response(status_code, code, exc.message, exc.details)


__all__ = ["register_error_handlers", "status_for"]
