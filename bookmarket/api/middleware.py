"""HTTP middleware for the bookmarket API.

- ``RequestIdMiddleware`` tags every request with an ``X-Request-ID``,
  binds it to the structlog context and logs one line per request.
- ``ErrorHandlerMiddleware`` turns anything a route let escape into the
  standard error body.
"""

import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from bookmarket.domain.exceptions import DomainError, NotFoundError
from bookmarket.infrastructure.config import settings

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


def error_body(
    error_code: str,
    message: str,
    details: dict | list | None = None,
    request_id: str | None = None,
) -> dict:
    """Build the JSON error envelope shared by every error response."""
    return {
        "error_code": error_code,
        "message": message,
        "details": details if details is not None else {},
        "request_id": request_id,
    }


# ============================================================================
# Request ID Middleware
# ============================================================================


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlates logs and responses through a request ID.

    The ID comes from the ``X-Request-ID`` header when the caller sends
    one. Services receive it through ``request.state.request_id``.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            log = logger.warning if duration_ms >= settings.slow_request_ms else logger.info
            log("Request completed", status_code=status_code, duration_ms=duration_ms)
            structlog.contextvars.unbind_contextvars("request_id", "method", "path")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# ============================================================================
# Error Handling Middleware
# ============================================================================


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Last line of defence for exceptions no route handled.

    Domain errors keep their ``error_code`` (404 for lookups, 400 for the
    rest); anything else is a 500 ``INTERNAL_ERROR``.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except DomainError as e:
            code = (
                status.HTTP_404_NOT_FOUND
                if isinstance(e, NotFoundError)
                else status.HTTP_400_BAD_REQUEST
            )
            logger.warning("Unhandled domain error", error_code=e.error_code, error=e.message)
            return JSONResponse(
                status_code=code,
                content=error_body(
                    e.error_code,
                    e.message,
                    e.details,
                    getattr(request.state, "request_id", None),
                ),
            )
        except Exception as e:
            logger.exception("Unhandled exception", error=str(e))
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body(
                    "INTERNAL_ERROR",
                    "An internal error occurred",
                    request_id=getattr(request.state, "request_id", None),
                ),
            )


def setup_middleware(app: FastAPI) -> None:
    """Install the middleware stack.

    Starlette runs the last added middleware first, so the request ID is
    bound before the error handler can log.
    """
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIdMiddleware)
