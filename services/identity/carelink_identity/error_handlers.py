"""
Identity service — translation of domain errors into HTTP responses.

This is the only place that knows which status code each error maps to.
Every response uses the shared envelope::

    {"error": {"code": "...", "message": "..."}, "request_id": "..."}
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from carelink_identity import exceptions as exc
from carelink_shared.middleware import error_envelope

logger = logging.getLogger(__name__)

STATUS_FOR_ERROR: dict[type[exc.IdentityError], int] = {
    exc.InvalidInput: status.HTTP_400_BAD_REQUEST,
    exc.Conflict: status.HTTP_409_CONFLICT,
    exc.InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    exc.AccountNotActive: status.HTTP_403_FORBIDDEN,
    exc.AccountLocked: status.HTTP_403_FORBIDDEN,
    exc.AccountNotFound: status.HTTP_404_NOT_FOUND,
    exc.TokenInvalid: status.HTTP_401_UNAUTHORIZED,
    exc.TokenExpired: status.HTTP_401_UNAUTHORIZED,
    exc.TokenWrongType: status.HTTP_401_UNAUTHORIZED,
    exc.Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    exc.Forbidden: status.HTTP_403_FORBIDDEN,
    exc.InvalidCode: status.HTTP_400_BAD_REQUEST,
    exc.OTPCooldown: status.HTTP_429_TOO_MANY_REQUESTS,
    exc.TwoFactorFailed: status.HTTP_401_UNAUTHORIZED,
    exc.TwoFactorAlreadyEnabled: status.HTTP_409_CONFLICT,
    exc.TwoFactorSetupNotStarted: status.HTTP_400_BAD_REQUEST,
}

_UNAUTHORIZED_HEADERS = {"WWW-Authenticate": "Bearer"}


def status_for(error: exc.IdentityError) -> int:
    for cls in type(error).__mro__:
        if cls in STATUS_FOR_ERROR:
            return STATUS_FOR_ERROR[cls]
    return status.HTTP_400_BAD_REQUEST


async def identity_error_handler(request: Request, error: exc.IdentityError) -> JSONResponse:
    status_code = status_for(error)
    extra = {"fields": error.fields} if isinstance(error, exc.InvalidInput) else {}
    response = error_envelope(request, status_code, error.code, error.message, **extra)
    if status_code == status.HTTP_401_UNAUTHORIZED:
        response.headers.update(_UNAUTHORIZED_HEADERS)
    return response


def _field_name(loc: tuple) -> str:
    # ("body", "profile", "doctor", "specialty") -> "profile.doctor.specialty"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header", "cookie")]
    return ".".join(parts) or "body"


async def validation_error_handler(
    request: Request, error: RequestValidationError
) -> JSONResponse:
    fields = [
        {"field": _field_name(tuple(e.get("loc", ()))), "message": e.get("msg", "Invalid value")}
        for e in error.errors()
    ]
    return error_envelope(
        request,
        status.HTTP_400_BAD_REQUEST,
        exc.InvalidInput.code,
        exc.InvalidInput.message,
        fields=fields,
    )


async def http_error_handler(
    request: Request, error: StarletteHTTPException
) -> JSONResponse:
    message = error.detail if isinstance(error.detail, str) else "Request failed."
    response = error_envelope(request, error.status_code, "http_error", message)
    if error.headers:
        response.headers.update(error.headers)
    return response


async def rate_limit_handler(request: Request, error: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit exceeded on %s (%s)", request.url.path, error.detail)
    return error_envelope(
        request,
        status.HTTP_429_TOO_MANY_REQUESTS,
        "rate_limited",
        "Too many requests. Please slow down and try again later.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(exc.IdentityError, identity_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
