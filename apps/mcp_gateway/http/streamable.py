"""Streamable transport: one ``/mcp`` endpoint for posts and an optional stream."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import Response, StreamingResponse

from apps.mcp_gateway.service.dispatcher import DispatchContext
from apps.mcp_gateway.service.errors import TransportError
from apps.mcp_gateway.service.gateway import McpGateway

from .common import SESSION_HEADER, SSE_HEADERS, accepts_event_stream, read_json_body, render_reply

__all__ = ["build_streamable_router"]

TRANSPORT = "streamable"


def build_streamable_router(gateway: McpGateway) -> APIRouter:
    router = APIRouter()
    settings = gateway.settings

    def _require_known_session(request: Request) -> str | None:
        session_id = request.headers.get(SESSION_HEADER)
        if not gateway.sessions.exists(session_id):
            raise TransportError("SESSION_NOT_FOUND", f"Session not found: {session_id}")
        return session_id or None

    @router.post("/mcp")
    async def post_mcp(request: Request) -> Response:
        session_id = _require_known_session(request)
        payload = await read_json_body(request, limit=settings.max_body_bytes)
        context = DispatchContext(transport=TRANSPORT, session_id=session_id)
        reply = await gateway.handle_payload(payload, context)
        return render_reply(reply, context)

    @router.get("/mcp")
    async def open_stream(request: Request) -> StreamingResponse:
        if not accepts_event_stream(request):
            raise TransportError(
                "STREAM_NOT_ACCEPTED",
                "Method not allowed: GET /mcp requires Accept: text/event-stream",
                headers={"Allow": "POST"},
            )
        session_id = _require_known_session(request)
        headers = dict(SSE_HEADERS)
        if session_id is not None:
            headers[SESSION_HEADER] = session_id
        return StreamingResponse(
            gateway.streams.stream(),
            media_type="text/event-stream",
            headers=headers,
        )

    return router
