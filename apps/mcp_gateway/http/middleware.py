"""Access logging for every HTTP call."""

from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

__all__ = ["RequestLogMiddleware", "client_ip"]


def client_ip(request: Request) -> str:
    """First ``X-Forwarded-For`` hop, else the socket peer."""

    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client is not None:
        return request.client.host
    return "-"


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log ``[REQ] METHOD path -> status (ms) ip ua`` once the response starts."""

    def __init__(self, app, *, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self._logger = logger or logging.getLogger("mcp_gateway.http")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            self._logger.info(
                "[REQ] %s %s -> %d (%.0fms) %s %s",
                request.method,
                request.url.path,
                status_code,
                elapsed_ms,
                client_ip(request),
                request.headers.get("user-agent", "-"),
            )
