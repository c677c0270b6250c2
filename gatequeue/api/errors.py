"""
Exception handlers producing the API error envelope.

    {
      "success": false,
      "code": 404,
      "error": {"code": "NOT_FOUND", "message": "...", "details": ..., "timestamp": "..."},
      "debug": {...}            # outside production only
    }
"""

from __future__ import annotations

import traceback
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gatequeue.core.access import AccessDecision
from gatequeue.domain.errors import (
    AccessDeniedError,
    AlreadyProcessingError,
    JobNotFoundError,
    ProcessorNotFoundError,
    QueueError,
    QueueNotFoundError,
    StorageError,
    ValidationError,
)
from gatequeue.domain.models import utcnow
from gatequeue.i18n import translate

logger = structlog.get_logger(__name__)

VALIDATION_ERROR = "VALIDATION_ERROR"
AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
NOT_FOUND = "NOT_FOUND"
CONFLICT = "CONFLICT"
SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

_HTTP_CODES = {
    400: VALIDATION_ERROR,
    401: AUTHENTICATION_ERROR,
    403: AUTHORIZATION_ERROR,
    404: NOT_FOUND,
    409: CONFLICT,
    422: VALIDATION_ERROR,
    503: SERVICE_UNAVAILABLE,
}


def _locale(request: Request) -> str | None:
    return request.headers.get("accept-language")


def error_response(
    request: Request,
    status: int,
    code: str,
    message: str,
    *,
    details: Any = None,
    exc: BaseException | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "success": False,
        "code": status,
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "timestamp": utcnow().isoformat(),
        },
    }
    settings = getattr(request.app.state, "settings", None)
    if exc is not None and settings is not None and not settings.is_production:
        body["debug"] = {
            "type": type(exc).__name__,
            "traceback": traceback.format_exception(exc),
            "method": request.method,
            "path": request.url.path,
        }
    return JSONResponse(status_code=status, content=jsonable_encoder(body))


async def _validation(request: Request, exc: ValidationError) -> JSONResponse:
    return error_response(
        request, 422, VALIDATION_ERROR, str(exc), details=exc.details, exc=exc
    )


async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        422,
        VALIDATION_ERROR,
        translate("error.validation", _locale(request)),
        details=exc.errors(),
        exc=exc,
    )


async def _access_denied(request: Request, exc: AccessDeniedError) -> JSONResponse:
    decision: AccessDecision = exc.decision
    if decision.status_code == 401:
        status, code, key = 401, AUTHENTICATION_ERROR, "error.unauthenticated"
    else:
        status, code, key = 403, AUTHORIZATION_ERROR, "error.forbidden"
    return error_response(
        request,
        status,
        code,
        translate(key, _locale(request)),
        details={
            "outcome": decision.outcome.value,
            "resource": decision.obj,
            "action": decision.act,
        },
    )


async def _not_found(request: Request, exc: Exception) -> JSONResponse:
    return error_response(request, 404, NOT_FOUND, str(exc), exc=exc)


async def _conflict(request: Request, exc: Exception) -> JSONResponse:
    return error_response(request, 409, CONFLICT, str(exc), exc=exc)


async def _unavailable(request: Request, exc: Exception) -> JSONResponse:
    logger.error("service_unavailable", error=str(exc), path=request.url.path)
    return error_response(
        request,
        503,
        SERVICE_UNAVAILABLE,
        translate("error.unavailable", _locale(request)),
        details=str(exc),
        exc=exc,
    )


async def _http(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_CODES.get(exc.status_code, INTERNAL_SERVER_ERROR)
    return error_response(request, exc.status_code, code, str(exc.detail))


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_error",
        error=str(exc),
        method=request.method,
        path=request.url.path,
        exc_info=exc,
    )
    return error_response(
        request,
        500,
        INTERNAL_SERVER_ERROR,
        translate("error.internal", _locale(request)),
        exc=exc,
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, _validation)
    app.add_exception_handler(RequestValidationError, _request_validation)
    app.add_exception_handler(AccessDeniedError, _access_denied)
    for exc_type in (QueueNotFoundError, JobNotFoundError, ProcessorNotFoundError):
        app.add_exception_handler(exc_type, _not_found)
    app.add_exception_handler(AlreadyProcessingError, _conflict)
    for exc_type in (QueueError, StorageError):
        app.add_exception_handler(exc_type, _unavailable)
    app.add_exception_handler(StarletteHTTPException, _http)
    app.add_exception_handler(Exception, _unhandled)
