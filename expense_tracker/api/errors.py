"""
API Errors

Every failure leaves the API as a JSON body of the form
``{"error": message, "code"?: ..., "details"?: ...}`` plus any
route-specific extras (``success``, ``lastError``).
"""

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from expense_tracker.orchestrator import InvalidInputError
from expense_tracker.services.storage import ConnectionError, NotFoundError, StorageError


logger = structlog.get_logger(__name__)


class ApiError(Exception):
    """An error with a fixed HTTP status and response body."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        details: Any = None,
        extra: Optional[dict] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.details = details
        self.extra = extra or {}

    def to_body(self) -> dict:
        body: dict[str, Any] = dict(self.extra)
        body["error"] = self.message
        if self.code:
            body["code"] = self.code
        if self.details is not None:
            body["details"] = self.details
        return body


def _json_error(error: ApiError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_body())


async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return _json_error(exc)


async def handle_invalid_input(request: Request, exc: InvalidInputError) -> JSONResponse:
    return _json_error(ApiError(400, str(exc), details=exc.messages))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    return _json_error(ApiError(400, "Invalid request body", details=details))


async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return _json_error(ApiError(404, str(exc)))


async def handle_connection_error(request: Request, exc: ConnectionError) -> JSONResponse:
    logger.error("storage_unavailable", path=request.url.path, error=str(exc))
    return _json_error(ApiError(503, "Database unavailable. Please try again later."))


async def handle_storage_error(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("storage_error", path=request.url.path, error=str(exc))
    return _json_error(ApiError(500, "Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, handle_api_error)
    app.add_exception_handler(InvalidInputError, handle_invalid_input)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    # Subclasses before their StorageError base
    app.add_exception_handler(NotFoundError, handle_not_found)
    app.add_exception_handler(ConnectionError, handle_connection_error)
    app.add_exception_handler(StorageError, handle_storage_error)
