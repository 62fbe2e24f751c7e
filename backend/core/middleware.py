"""FastAPI middleware for request tracking and error handling.

Every request gets an ``X-Request-ID`` (taken from the caller when
present) that is echoed on the response, returned in error bodies and
bound into the structlog context, so engine log lines emitted during an
HTTP-triggered pass carry it too.
"""

import logging
import time
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.exceptions import OutreachException

logger = logging.getLogger(__name__)

# Probed by load balancers every few seconds
_QUIET_PATHS = frozenset({"/api/health", "/api/v1/health", "/api/v1/health/health"})


def _error_body(request: Request, detail: str) -> dict:
    return {"detail": detail, "request_id": getattr(request.state, "request_id", None)}


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Attach a request id and timing headers, and log each request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        started = time.monotonic()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.exception(f"Unhandled error on {request.method} {request.url.path}")
                detail = "Internal server error"
                if not get_settings().is_production:
                    detail = str(exc) or detail
                return JSONResponse(
                    status_code=500,
                    content=_error_body(request, detail),
                    headers={"X-Request-ID": request_id},
                )

            duration_ms = (time.monotonic() - started) * 1000
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"

            if request.url.path not in _QUIET_PATHS:
                logger.log(
                    logging.WARNING if response.status_code >= 400 else logging.INFO,
                    f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.0f}ms)",
                )

        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Map the OutreachException hierarchy and ValueError to JSON errors."""

    @app.exception_handler(OutreachException)
    async def outreach_exception_handler(request: Request, exc: OutreachException):
        return JSONResponse(status_code=exc.status_code, content=_error_body(request, exc.message))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content=_error_body(request, str(exc)))
