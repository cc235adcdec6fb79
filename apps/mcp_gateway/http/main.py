from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from apps.mcp_gateway import __version__
from apps.mcp_gateway.observability import log_event
from apps.mcp_gateway.service.errors import TransportError
from apps.mcp_gateway.service.gateway import McpGateway

from .legacy import build_legacy_router
from .middleware import RequestLogMiddleware
from .streamable import build_streamable_router

__all__ = ["create_app"]

HEALTH_TEXT = "MCP gateway active"


def create_app(gateway: McpGateway, *, enable_openapi: bool = False) -> FastAPI:
    """Return a FastAPI application serving both MCP transports."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        closed = gateway.streams.close_all()
        log_event("shutdown", streams_closed=closed)

    docs_url = "/docs" if enable_openapi else None
    openapi_url = "/openapi.json" if enable_openapi else None
    app = FastAPI(
        title="MCP Gateway",
        version=__version__,
        docs_url=docs_url,
        redoc_url=None,
        openapi_url=openapi_url,
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    app.add_middleware(RequestLogMiddleware)

    @app.exception_handler(TransportError)
    async def _transport_error(request: Request, exc: TransportError) -> JSONResponse:
        return JSONResponse(exc.to_body(), status_code=exc.status_code, headers=exc.headers)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return HEALTH_TEXT

    @app.get("/healthz")
    async def health() -> dict[str, object]:
        return gateway.health()

    app.include_router(build_legacy_router(gateway))
    app.include_router(build_streamable_router(gateway))
    return app
