import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)


def error_envelope(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    **extra: Any,
) -> JSONResponse:
    """Build the standard error body shared by every CareLink service."""
    error: dict[str, Any] = {"code": code, "message": message}
    error.update(extra)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


async def error_envelope_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    # Typed errors are translated by the app's exception handlers; anything
    # reaching this point is unexpected and must not leak internals.
    try:
        return await call_next(request)
    except Exception:
        logger.exception(
            "Unhandled exception on %s %s", request.method, request.url.path
        )
        return error_envelope(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "An unexpected error occurred",
        )
