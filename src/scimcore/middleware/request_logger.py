import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from scimcore.utils import logger

_QUIET_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per SCIM request and echo the request id back to the client."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in _QUIET_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        query = f"?{request.url.query}" if request.url.query else ""
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        log = logger.warning if response.status_code >= 500 else logger.info
        log(f"[{request_id}] {request.method} {request.url.path}{query} -> {response.status_code} ({elapsed_ms:.1f}ms)")

        response.headers["X-Request-ID"] = request_id
        return response
