"""
Error taxonomy and the FastAPI handlers that render it.

Every failure leaves the API as the envelope::

    {"error": {"code": "...", "message": "...", "details": [{"field": "...", "message": "..."}]}}

where ``details`` is only present for VALIDATION_ERROR.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

ValidationDetail = Dict[str, str]


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# PUBLIC_INTERFACE
class AppError(Exception):
    """Base exception for failures the API reports to clients."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[List[ValidationDetail]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    @staticmethod
    def validation(message: str, details: List[ValidationDetail]) -> "ValidationFailed":
        return ValidationFailed(message, details)

    @staticmethod
    def not_found(message: str) -> "NotFoundError":
        return NotFoundError(message)

    @staticmethod
    def conflict(message: str) -> "ConflictError":
        return ConflictError(message)

    @staticmethod
    def internal(message: str = "An unexpected error occurred") -> "AppError":
        return AppError(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.code is ErrorCode.VALIDATION_ERROR:
            body["details"] = list(self.details or [])
        return {"error": body}


class ValidationFailed(AppError):
    """Raised when input is rejected before it reaches persistence."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.VALIDATION_ERROR


class NotFoundError(AppError):
    """Raised when a referenced todo or category does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND


class ConflictError(AppError):
    """Raised when a write would violate a uniqueness constraint."""

    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.CONFLICT


def invalid_id(resource: str) -> ValidationFailed:
    return AppError.validation(
        f"Invalid {resource} ID", [{"field": "id", "message": "ID must be a number"}]
    )


def _field_from_loc(loc: Iterable[Any]) -> str:
    parts = [str(p) for p in loc]
    if parts and parts[0] in {"body", "query"}:
        parts = parts[1:]
    elif parts and parts[0] == "path":
        # Path parameters are always resource ids
        return "id"
    return ".".join(parts) or "body"


def _message_from_error(error: Dict[str, Any]) -> str:
    msg = str(error.get("msg", "Invalid value"))
    # Messages from our own field validators arrive prefixed by pydantic
    prefix = "Value error, "
    return msg[len(prefix):] if msg.startswith(prefix) else msg


# PUBLIC_INTERFACE
def validation_details(errors: Iterable[Dict[str, Any]]) -> List[ValidationDetail]:
    """
    Convert pydantic/FastAPI error dicts into one {field, message} pair per field.

    The first error reported for a field wins; every violated field is kept.
    """
    details: List[ValidationDetail] = []
    seen = set()
    for error in errors:
        field = _field_from_loc(error.get("loc", ()))
        if field in seen:
            continue
        seen.add(field)
        details.append({"field": field, "message": _message_from_error(error)})
    return details


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = AppError.validation("Validation failed", validation_details(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # An unmatched method on a known path is reported like an unknown route
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        error: AppError = AppError.not_found("Resource not found")
    elif exc.status_code < 500:
        error = AppError.validation(str(exc.detail), [])
        error.status_code = exc.status_code
    else:
        error = AppError.internal()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error while handling %s %s", request.method, request.url.path)
    error = AppError.internal()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# PUBLIC_INTERFACE
def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers that render every failure as the error envelope."""
    app.add_exception_handler(AppError, _app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_exception_handler)
