from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from apps.mcp_gateway.config import GatewaySettings
from apps.mcp_gateway.observability import log_event
from apps.mcp_gateway.sessions import SessionStore
from apps.mcp_gateway.streams import StreamRegistry
from apps.toolpacks import ToolRegistry

from .classifier import Malformed, classify_payload
from .dispatcher import DispatchContext, MethodDispatcher, ServerInfo
from .envelope import JsonRpcResponse

__all__ = ["GatewayReply", "McpGateway", "ReplyKind", "TOOLS_LIST_CHANGED"]

LOGGER = logging.getLogger(__name__)

TOOLS_LIST_CHANGED = "notifications/tools/list_changed"


class ReplyKind(Enum):
    SINGLE = "single"
    BATCH = "batch"
    EMPTY = "empty"


@dataclass(frozen=True, slots=True)
class GatewayReply:
    kind: ReplyKind
    body: dict[str, Any] | list[dict[str, Any]] | None = None

    @property
    def empty(self) -> bool:
        return self.kind is ReplyKind.EMPTY


class McpGateway:
    """Batch-aware front door shared by the legacy and streamable transports."""

    def __init__(
        self,
        *,
        dispatcher: MethodDispatcher,
        streams: StreamRegistry,
        sessions: SessionStore,
        tools: ToolRegistry,
        settings: GatewaySettings | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.streams = streams
        self.sessions = sessions
        self.tools = tools
        self.settings = settings or GatewaySettings()
        tools.subscribe(self._announce_tools_changed)

    @classmethod
    def create(
        cls,
        settings: GatewaySettings | None = None,
        *,
        tools: ToolRegistry | None = None,
        server_info: ServerInfo | None = None,
    ) -> McpGateway:
        settings = settings or GatewaySettings()
        if tools is None:
            tools = ToolRegistry.from_directory(settings.toolpacks_dir)
        sessions = SessionStore()
        streams = StreamRegistry(
            keepalive_seconds=settings.keepalive_seconds,
            queue_size=settings.stream_queue_size,
        )
        dispatcher = MethodDispatcher(tools=tools, sessions=sessions, server_info=server_info)
        return cls(
            dispatcher=dispatcher,
            streams=streams,
            sessions=sessions,
            tools=tools,
            settings=settings,
        )

    async def handle_payload(self, raw: Any, context: DispatchContext) -> GatewayReply:
        """Classify ``raw``, dispatch every item in order and assemble the reply.

        Raises :class:`MalformedPayloadError` when ``raw`` is neither an
        object nor an array.
        """

        classified = classify_payload(raw)
        if self.settings.mirror_messages and context.transport == "legacy":
            self.streams.broadcast("message", raw)

        responses: list[JsonRpcResponse] = []
        for item in classified.items:
            if isinstance(item, Malformed):
                if item.id is None:
                    LOGGER.warning("Dropping malformed message without id: %s", item.reason)
                    continue
                responses.append(
                    JsonRpcResponse.failure(item.id, "INVALID_REQUEST", f"Invalid Request: {item.reason}")
                )
                continue
            response = await self.dispatcher.dispatch(item, context)
            if response is not None:
                responses.append(response)

        if not responses:
            return GatewayReply(ReplyKind.EMPTY)
        if classified.is_batch:
            return GatewayReply(ReplyKind.BATCH, [response.to_payload() for response in responses])
        return GatewayReply(ReplyKind.SINGLE, responses[0].to_payload())

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "streams": len(self.streams),
            "sessions": len(self.sessions),
            "tools": len(self.tools),
        }

    def _announce_tools_changed(self) -> None:
        notification = {"jsonrpc": "2.0", "method": TOOLS_LIST_CHANGED}
        delivered = self.streams.broadcast("message", notification)
        log_event("tools.list_changed", delivered=delivered, tools=len(self.tools))
