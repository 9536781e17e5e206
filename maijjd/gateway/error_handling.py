"""
Maijjd - Exception Handlers

Renders every failure as the standard error envelope:

    {"error", "message", "code", "timestamp", "details"?, "path"?, "stack"?}

Stack traces are only included outside production.
"""

import traceback
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from maijjd.auth.models import utcnow
from maijjd.config import settings
from maijjd.errors import AuthError, InternalError, TooManyAttempts, ValidationError
from maijjd.logging import get_logger


logger = get_logger(__name__)


def error_body(
    error: AuthError,
    request: Optional[Request] = None,
    exc: Optional[BaseException] = None,
) -> dict:
    body: dict[str, Any] = {
        "error": error.error,
        "message": error.message,
        "code": error.code,
        "timestamp": utcnow().isoformat(),
    }
    if error.details is not None:
        body["details"] = error.details
    if request is not None:
        body["path"] = request.url.path
    if exc is not None and not settings.is_production:
        body["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return body


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request.failed", error_code=exc.code, error=exc.message)
        body = error_body(exc, request, exc)
    else:
        body = error_body(exc, request)

    headers = {}
    if isinstance(exc, TooManyAttempts) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    elif exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON or wrong field types, reported as VALIDATION_ERROR."""
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "body",
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    error = ValidationError(details[0]["message"] if details else None, details=details)
    return JSONResponse(status_code=error.status_code, content=error_body(error, request))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled", error=str(exc))
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error_body(error, request, exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
