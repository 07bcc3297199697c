"""Error responses for the storefront API.

Every error body has the same shape:

    {"success": false, "error": "...", "code": "...", "requestId": "..."}

Validation errors add ``details: [{field, message}]``. Messages never
carry stack traces; full details go to the server log.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.errors import InvalidCursor, NoUpdateFields, StoreTimeout, StoreUnavailable
from storefront.observability.logging import request_id_var
from storefront.persistence.repositories import CategoryNotFound

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE -> (status, code, message)
INTEGRITY_ERRORS: dict[str, tuple[int, str, str]] = {
    "23505": (409, "DUPLICATE_ENTRY", "This record already exists"),
    "23503": (400, "FOREIGN_KEY_VIOLATION", "Referenced record does not exist"),
    "23514": (400, "CONSTRAINT_VIOLATION", "Invalid data provided"),
}


class ApiError(HTTPException):
    """Base exception for storefront API errors."""

    def __init__(
        self,
        status_code: int,
        code: str,
        text: str,
        details: list[dict[str, str]] | None = None,
    ):
        self.code = code
        self.text = text
        self.details = details
        super().__init__(status_code=status_code, detail=text)

    def to_body(self, request_id: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.text, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        body["requestId"] = request_id
        return body


class BadRequestError(ApiError):
    """Invalid request (400)."""

    def __init__(self, text: str, code: str = "BAD_REQUEST"):
        super().__init__(status_code=400, code=code, text=text)


class ValidationFailedError(ApiError):
    """Request parameters or body failed validation (400)."""

    def __init__(self, details: list[dict[str, str]]):
        super().__init__(
            status_code=400, code="VALIDATION_ERROR", text="Validation failed", details=details
        )


class NotFoundError(ApiError):
    """Resource not found (404)."""

    def __init__(self, resource_type: str):
        super().__init__(status_code=404, code="NOT_FOUND", text=f"{resource_type} not found")


class ConflictError(ApiError):
    """Resource already exists (409)."""

    def __init__(self, text: str = "This record already exists"):
        super().__init__(status_code=409, code="DUPLICATE_ENTRY", text=text)


class ServiceUnavailableError(ApiError):
    """Relational store unreachable or too slow (503)."""

    def __init__(self, code: str = "DB_CONNECTION_ERROR", text: str = "Database connection error"):
        super().__init__(status_code=503, code=code, text=text)


class InternalServerError(ApiError):
    """Internal server error (500)."""

    def __init__(self, text: str = "An unexpected error occurred"):
        super().__init__(status_code=500, code="INTERNAL_ERROR", text=text)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or request_id_var.get() or None


def _respond(request: Request, error: ApiError) -> ORJSONResponse:
    return ORJSONResponse(status_code=error.status_code, content=error.to_body(_request_id(request)))


def _field_name(loc: tuple[Any, ...] | list[Any]) -> str:
    # Drop the "body"/"query"/"path" prefix
    parts = [str(part) for part in loc[1:]] if len(loc) > 1 else [str(part) for part in loc]
    return ".".join(parts)


def _validation_message(error: dict[str, Any]) -> str:
    message = str(error.get("msg", "Invalid value"))
    ctx = error.get("ctx") or {}
    # Custom validators raise ValueError; pydantic prefixes the message
    if error.get("type") == "value_error" and "error" in ctx:
        return str(ctx["error"])
    return message.removeprefix("Value error, ")


async def api_error_handler(request: Request, exc: ApiError) -> ORJSONResponse:
    """Exception handler for storefront API errors."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.text}")
    return _respond(request, exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    """Render framework HTTP errors (unknown route, wrong method) in the API shape."""
    code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    error = ApiError(status_code=exc.status_code, code=code, text=str(exc.detail))
    response = _respond(request, error)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    details = [
        {"field": _field_name(err.get("loc", ())), "message": _validation_message(err)}
        for err in exc.errors()
    ]
    return _respond(request, ValidationFailedError(details))


async def invalid_cursor_handler(request: Request, exc: InvalidCursor) -> ORJSONResponse:
    return _respond(request, BadRequestError(str(exc), code="INVALID_CURSOR"))


async def no_update_fields_handler(request: Request, exc: NoUpdateFields) -> ORJSONResponse:
    return _respond(request, BadRequestError(str(exc), code="NO_UPDATE_FIELDS"))


async def category_not_found_handler(request: Request, exc: CategoryNotFound) -> ORJSONResponse:
    return _respond(
        request,
        BadRequestError("Invalid category_id: category does not exist", code="INVALID_CATEGORY"),
    )


async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> ORJSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: database unavailable: {exc}")
    return _respond(request, ServiceUnavailableError())


async def store_timeout_handler(request: Request, exc: StoreTimeout) -> ORJSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: database timeout: {exc}")
    return _respond(
        request, ServiceUnavailableError(code="DB_TIMEOUT", text="Database operation timed out")
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> ORJSONResponse:
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    logger.warning(f"{request.method} {request.url.path} integrity error {sqlstate}: {exc.orig}")
    mapped = INTEGRITY_ERRORS.get(sqlstate or "")
    if mapped is None:
        return _respond(request, InternalServerError())
    status_code, code, text = mapped
    return _respond(request, ApiError(status_code=status_code, code=code, text=text))


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Exception handler for unexpected errors."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return _respond(request, InternalServerError())
