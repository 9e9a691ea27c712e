"""
Central exception handlers.

Every error response has the body {"error": <message>, "code": <code>}. Routes
and services raise AppError subclasses; nothing else builds error responses.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from schemas.errors import ErrorResponse
from services.exceptions import AppError, InternalError, RateLimitedError

logger = logging.getLogger(__name__)

_HTTP_STATUS_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
    503: "SERVICE_UNAVAILABLE",
}


def error_response(
    status_code: int,
    message: str,
    code: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build a JSON error response in the shared shape."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, code=code).model_dump(),
        headers=headers,
    )


def _rate_limit_headers(exc: RateLimitedError) -> dict[str, str]:
    return {
        "Retry-After": str(exc.result.retry_after),
        "X-RateLimit-Limit": str(exc.result.limit),
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(exc.result.reset),
    }


async def app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
    """Render a known application error."""
    headers = dict(exc.headers) if exc.headers else None
    if isinstance(exc, RateLimitedError):
        headers = _rate_limit_headers(exc)
    return error_response(exc.status_code, exc.message, exc.code, headers)


async def request_validation_handler(
    _request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """Report the first schema violation as a 400."""
    errors = exc.errors()
    message = "Bad request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "invalid value")
        message = f"{field}: {detail}" if field else detail
    return error_response(400, message, "VALIDATION_ERROR")


async def http_exception_handler(
    _request: Request, exc: StarletteHTTPException,
) -> JSONResponse:
    """Render framework errors (unknown route, wrong method) in the shared shape."""
    code = _HTTP_STATUS_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(exc.status_code, message, code, getattr(exc, "headers", None))


async def integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    """A uniqueness violation that no flow mapped explicitly."""
    logger.warning("unhandled_integrity_error", extra={"error": type(exc.orig).__name__})
    return error_response(409, "Unique constraint violation", "UNIQUE_CONSTRAINT")


async def unhandled_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Last resort. Details are logged, never returned."""
    logger.exception("unhandled_exception", exc_info=exc)
    internal = InternalError()
    return error_response(internal.status_code, internal.message, internal.code)


def register_exception_handlers(app: FastAPI) -> None:
    """Install all handlers on the application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
