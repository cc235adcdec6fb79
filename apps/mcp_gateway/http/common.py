"""Request decoding and reply rendering shared by both transports."""

from __future__ import annotations

import json
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from apps.mcp_gateway.service.dispatcher import DispatchContext
from apps.mcp_gateway.service.errors import TransportError
from apps.mcp_gateway.service.gateway import GatewayReply

__all__ = [
    "SESSION_HEADER",
    "SSE_HEADERS",
    "accepts_event_stream",
    "read_json_body",
    "render_reply",
]

SESSION_HEADER = "Mcp-Session-Id"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def read_json_body(request: Request, *, limit: int) -> Any:
    """Return the decoded JSON body, enforcing ``limit`` bytes."""

    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        raise TransportError("PAYLOAD_TOO_LARGE", f"Payload too large: limit is {limit} bytes")
    body = await request.body()
    if len(body) > limit:
        raise TransportError("PAYLOAD_TOO_LARGE", f"Payload too large: limit is {limit} bytes")
    if not body.strip():
        raise TransportError("PARSE_ERROR", "Parse error: empty body")
    try:
        return json.loads(body, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        raise TransportError("PARSE_ERROR", f"Parse error: {exc}") from exc


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def render_reply(reply: GatewayReply, context: DispatchContext) -> Response:
    headers: dict[str, str] = {}
    if context.issued_session_id is not None:
        headers[SESSION_HEADER] = context.issued_session_id
    if reply.empty:
        return Response(status_code=202, headers=headers)
    return JSONResponse(reply.body, status_code=200, headers=headers)


def accepts_event_stream(request: Request) -> bool:
    accept = request.headers.get("accept", "")
    return any(part.split(";")[0].strip() == "text/event-stream" for part in accept.split(","))
