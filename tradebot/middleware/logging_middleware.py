"""
HTTP request logging middleware.

One ``http_request`` event per API call. Trade routes carry the acting user
id when the client sends ``x-user-id``; liveness probes are logged at DEBUG
so they do not drown out trade traffic.
"""

import time
import uuid
from typing import Callable, Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = structlog.stdlib.get_logger("http")

QUIET_PATHS = ("/health", "/healthz")


def level_for(status_code: int, path: str, quiet_paths: Iterable[str] = QUIET_PATHS) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warning"
    if path in quiet_paths:
        return "debug"
    return "info"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, quiet_paths: Iterable[str] = QUIET_PATHS) -> None:
        super().__init__(app)
        self.quiet_paths = tuple(quiet_paths)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]
        context = {"request_id": request_id}
        if request.headers.get("x-user-id"):
            context["user_id"] = request.headers["x-user-id"]

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["x-request-id"] = request_id
            return response
        finally:
            emit: Callable[..., None] = getattr(
                logger, level_for(status_code, request.url.path, self.quiet_paths)
            )
            emit(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
                client=request.client.host if request.client else None,
            )
