"""Exception handlers rendering every failure as one JSON error envelope.

``{"error": {"code", "message", "request_id", "details"?}}`` with:

- BackendAppError (cache/data store failure surfacing outside a check) -> 503
- any other AppError -> 400
- anything else -> 500 with a generic message
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from admission.core.errors import AppError, BackendAppError
from admission.core.logging import get_request_id

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


def _status_for(exc: AppError) -> int:
    return 503 if isinstance(exc, BackendAppError) else 400


def _envelope(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    body: dict[str, Any] = {"code": code, "message": message, "request_id": get_request_id()}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError (or subclass) with its mapped status code."""
    status_code = _status_for(exc)
    logger.warning(
        "http.app_error",
        extra={
            "error_code": exc.code,
            "error_class": type(exc).__name__,
            "status": status_code,
            "path": request.url.path,
        },
    )
    return _envelope(status_code, exc.code, exc.message, exc.details)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; the response never carries exception text."""
    logger.error(
        "http.unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return _envelope(500, "internal_server_error", GENERIC_ERROR_MESSAGE)


def setup_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
