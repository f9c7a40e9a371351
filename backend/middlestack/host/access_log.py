"""
Middlestack — Access Log Middleware
====================================

What:  Assigns a request ID to every request and logs one line per response.
How:   Starlette ``BaseHTTPMiddleware`` on the host application. The ID comes
       from the client's ``X-Request-ID`` header or a fresh short UUID; it is
       stored in a ContextVar (read by the pipeline when it builds the
       Request) and echoed back in the response header.

Log line:
    GET /api/items 200 3.2ms [a1b2c3d4] from 127.0.0.1

Level follows the status class: 5xx ERROR, 4xx WARNING, otherwise INFO.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger("middlestack.access")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


def status_log_level(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Request ID propagation plus structured access logging."""

    def __init__(self, app: ASGIApp, quiet_paths: Iterable[str] = ("/health",)):
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        token = request_id_var.set(rid)
        request.state.request_id = rid
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        path = request.url.path
        if path in self.quiet_paths:
            return response

        duration_ms = (time.perf_counter() - start_time) * 1000
        client_ip = request.client.host if request.client else "unknown"
        status = response.status_code
        logger.log(
            status_log_level(status),
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
