from .classifier import ClassifiedPayload, Malformed, Notification, Request, classify, classify_payload
from .dispatcher import DispatchContext, MethodDispatcher, ServerInfo
from .envelope import JsonRpcError, JsonRpcResponse
from .errors import CanonicalError, MalformedPayloadError, TransportError
from .gateway import GatewayReply, McpGateway, ReplyKind

__all__ = [
    "CanonicalError",
    "ClassifiedPayload",
    "DispatchContext",
    "GatewayReply",
    "JsonRpcError",
    "JsonRpcResponse",
    "Malformed",
    "MalformedPayloadError",
    "McpGateway",
    "MethodDispatcher",
    "Notification",
    "ReplyKind",
    "Request",
    "ServerInfo",
    "TransportError",
    "classify",
    "classify_payload",
]
