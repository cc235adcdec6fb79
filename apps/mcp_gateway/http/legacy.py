"""Legacy transport: a push stream plus a write-back endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import Response, StreamingResponse

from apps.mcp_gateway.service.dispatcher import DispatchContext
from apps.mcp_gateway.service.gateway import McpGateway

from .common import SESSION_HEADER, SSE_HEADERS, read_json_body, render_reply

__all__ = ["build_legacy_router"]

TRANSPORT = "legacy"
MESSAGES_PATH = "/messages"


def build_legacy_router(gateway: McpGateway) -> APIRouter:
    router = APIRouter()
    settings = gateway.settings

    def _endpoint_url(request: Request) -> str:
        base = settings.public_base_url or str(request.base_url).rstrip("/")
        return f"{base}{MESSAGES_PATH}"

    @router.get("/sse")
    async def open_stream(request: Request) -> StreamingResponse:
        return StreamingResponse(
            gateway.streams.stream(endpoint_url=_endpoint_url(request)),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    async def post_messages(request: Request) -> Response:
        payload = await read_json_body(request, limit=settings.max_body_bytes)
        context = DispatchContext(
            transport=TRANSPORT,
            session_id=request.headers.get(SESSION_HEADER),
        )
        reply = await gateway.handle_payload(payload, context)
        return render_reply(reply, context)

    router.add_api_route(MESSAGES_PATH, post_messages, methods=["POST"])
    router.add_api_route("/message", post_messages, methods=["POST"], include_in_schema=False)
    return router
