from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from apps.mcp_gateway import __version__
from apps.mcp_gateway.observability import log_event
from apps.mcp_gateway.sessions import SessionStore
from apps.toolpacks import (
    CancellationToken,
    ToolNotFoundError,
    ToolpackExecutionError,
    ToolpackInputError,
    ToolRegistry,
    ToolResult,
)

from .classifier import Notification, Request
from .envelope import JsonRpcResponse

__all__ = [
    "DEFAULT_PROTOCOL_VERSION",
    "DispatchContext",
    "MethodDispatcher",
    "ServerInfo",
    "canonical_method",
    "method_aliases",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_PROTOCOL_VERSION = "2024-11-05"

LIFECYCLE_NOTIFICATIONS = frozenset(
    {
        "initialized",
        "cancelled",
        "notifications/initialized",
        "notifications/cancelled",
        "notifications/progress",
        "notifications/roots/list_changed",
    }
)


@dataclass(frozen=True, slots=True)
class ServerInfo:
    name: str = "mcp-gateway"
    version: str = __version__


@dataclass(slots=True)
class DispatchContext:
    """Per-call state shared between a transport and the dispatcher.

    ``issued_session_id`` is the out-of-band channel: ``initialize`` writes the
    new id here and the transport copies it into a response header.
    """

    transport: str
    session_id: str | None = None
    issued_session_id: str | None = None
    cancellation: CancellationToken = field(default_factory=CancellationToken)


class InvalidParams(Exception):
    """Raised by handlers for structurally invalid ``params``."""


Handler = Callable[[Mapping[str, Any], DispatchContext], Awaitable[JsonRpcResponse | dict[str, Any]]]


def canonical_method(method: str) -> str:
    """Slash-delimited spelling of ``method``."""

    return method.replace(".", "/")


def method_aliases(method: str) -> tuple[str, str]:
    canonical = canonical_method(method)
    return canonical, canonical.replace("/", ".")


class MethodDispatcher:
    """Route classified messages to handlers by method name."""

    def __init__(
        self,
        *,
        tools: ToolRegistry,
        sessions: SessionStore,
        server_info: ServerInfo | None = None,
        default_protocol_version: str = DEFAULT_PROTOCOL_VERSION,
    ) -> None:
        self._tools = tools
        self._sessions = sessions
        self._server_info = server_info or ServerInfo()
        self._default_protocol_version = default_protocol_version
        self._handlers: dict[str, Handler] = {}
        self.register("initialize", self._initialize)
        self.register("ping", self._ping)
        self.register("tools/list", self._tools_list)
        self.register("tools/call", self._tools_call)

    def register(self, method: str, handler: Handler) -> None:
        """Bind ``handler`` under both the slash and the dot spelling."""

        for alias in method_aliases(method):
            self._handlers[alias] = handler

    def methods(self) -> list[str]:
        return sorted({canonical_method(name) for name in self._handlers})

    async def dispatch(
        self,
        message: Request | Notification,
        context: DispatchContext,
    ) -> JsonRpcResponse | None:
        if isinstance(message, Notification):
            self._accept_notification(message, context)
            return None

        start = time.perf_counter()
        response = await self._dispatch_request(message, context)
        log_event(
            "dispatch",
            level=logging.DEBUG if response.ok else logging.INFO,
            transport=context.transport,
            method=message.method,
            request_id=message.id,
            status="ok" if response.ok else "error",
            error_code=response.error.code if response.error is not None else None,
            duration_ms=round((time.perf_counter() - start) * 1000.0, 3),
        )
        return response

    async def _dispatch_request(self, request: Request, context: DispatchContext) -> JsonRpcResponse:
        handler = self._handlers.get(request.method)
        if handler is None:
            return JsonRpcResponse.failure(request.id, "METHOD_NOT_FOUND")

        if request.params is None:
            params: Mapping[str, Any] = {}
        elif isinstance(request.params, Mapping):
            params = request.params
        else:
            return JsonRpcResponse.failure(
                request.id, "INVALID_PARAMS", "Invalid params: expected object"
            )

        try:
            outcome = await handler(params, context)
        except InvalidParams as exc:
            return JsonRpcResponse.failure(request.id, "INVALID_PARAMS", f"Invalid params: {exc}")
        except Exception:
            LOGGER.exception("Handler for %s failed", request.method)
            return JsonRpcResponse.failure(request.id, "INTERNAL_ERROR")

        if isinstance(outcome, JsonRpcResponse):
            return outcome.model_copy(update={"id": request.id})
        return JsonRpcResponse.success(request.id, outcome)

    def _accept_notification(self, notification: Notification, context: DispatchContext) -> None:
        known = canonical_method(notification.method) in LIFECYCLE_NOTIFICATIONS
        log_event(
            "notification",
            level=logging.DEBUG,
            transport=context.transport,
            method=notification.method,
            recognised=known,
        )

    async def _initialize(
        self, params: Mapping[str, Any], context: DispatchContext
    ) -> JsonRpcResponse | dict[str, Any]:
        if context.issued_session_id is not None:
            return JsonRpcResponse.failure(
                None, "INVALID_REQUEST", "Invalid Request: initialize already issued a session in this call"
            )
        proposed = params.get("protocolVersion")
        version = proposed if isinstance(proposed, str) and proposed else self._default_protocol_version
        session_id = self._sessions.create()
        context.issued_session_id = session_id
        log_event("session.create", transport=context.transport, session_id=session_id)
        return {
            "protocolVersion": version,
            "capabilities": {"tools": {"listChanged": True}},
            "serverInfo": {"name": self._server_info.name, "version": self._server_info.version},
        }

    async def _ping(self, params: Mapping[str, Any], context: DispatchContext) -> dict[str, Any]:
        return {}

    async def _tools_list(self, params: Mapping[str, Any], context: DispatchContext) -> dict[str, Any]:
        return {"tools": self._tools.list_tools()}

    async def _tools_call(
        self, params: Mapping[str, Any], context: DispatchContext
    ) -> JsonRpcResponse | dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParams("'name' must be a non-empty string")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        elif not isinstance(arguments, Mapping):
            raise InvalidParams("'arguments' must be an object")

        try:
            result = await self._tools.call_tool(name, arguments, cancellation=context.cancellation)
        except ToolNotFoundError:
            return JsonRpcResponse.failure(None, "TOOL_NOT_FOUND", f"Tool not found: {name}")
        except ToolpackInputError as exc:
            raise InvalidParams(str(exc)) from exc
        except ToolpackExecutionError as exc:
            LOGGER.warning("Tool %s failed: %s", name, exc)
            result = ToolResult.text(str(exc), is_error=True)
        return result.to_payload()
