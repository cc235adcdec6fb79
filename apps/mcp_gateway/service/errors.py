from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

__all__ = ["CanonicalError", "MalformedPayloadError", "TransportError"]


@dataclass(frozen=True)
class _CanonicalSpec:
    code: str
    description: str
    http_status: int
    jsonrpc_code: int
    message: str


class CanonicalError:
    """Canonical error codes shared by the dispatcher and both transports."""

    _SPECS: tuple[_CanonicalSpec, ...] = (
        _CanonicalSpec("PARSE_ERROR", "Body is not a JSON object or array", 400, -32700, "Parse error"),
        _CanonicalSpec("INVALID_REQUEST", "Item is not a valid envelope", 400, -32600, "Invalid Request"),
        _CanonicalSpec("METHOD_NOT_FOUND", "Unknown method name", 404, -32601, "Method not found"),
        _CanonicalSpec("TOOL_NOT_FOUND", "Unknown tool name", 404, -32601, "Tool not found"),
        _CanonicalSpec("INVALID_PARAMS", "Params failed validation", 400, -32602, "Invalid params"),
        _CanonicalSpec("INTERNAL_ERROR", "Unexpected server-side failure", 500, -32603, "Internal error"),
        _CanonicalSpec("SESSION_NOT_FOUND", "Session id was never issued", 404, -32001, "Session not found"),
        _CanonicalSpec("PAYLOAD_TOO_LARGE", "Body exceeds the configured limit", 413, -32600, "Payload too large"),
        _CanonicalSpec(
            "STREAM_NOT_ACCEPTED",
            "Caller did not accept text/event-stream",
            405,
            -32600,
            "Method not allowed",
        ),
    )

    _BY_CODE: dict[str, _CanonicalSpec] = {spec.code: spec for spec in _SPECS}

    @classmethod
    def codes(cls) -> Sequence[str]:
        return tuple(spec.code for spec in cls._SPECS)

    @classmethod
    def _lookup(cls, code: str) -> _CanonicalSpec:
        if code not in cls._BY_CODE:
            raise KeyError(f"{code} is not a canonical error code")
        return cls._BY_CODE[code]

    @classmethod
    def to_http_status(cls, code: str) -> int:
        return cls._lookup(code).http_status

    @classmethod
    def to_jsonrpc_code(cls, code: str) -> int:
        return cls._lookup(code).jsonrpc_code

    @classmethod
    def default_message(cls, code: str) -> str:
        return cls._lookup(code).message

    @classmethod
    def to_jsonrpc_error(
        cls,
        code: str,
        message: str | None = None,
        *,
        data: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        spec = cls._lookup(code)
        payload: dict[str, Any] = {"code": spec.jsonrpc_code, "message": message or spec.message}
        if data:
            payload["data"] = dict(data)
        return payload

    @classmethod
    def to_transport_body(cls, code: str, message: str | None = None) -> dict[str, Any]:
        """Body for transport-level failures, where no envelope id is available."""

        spec = cls._lookup(code)
        return {
            "ok": False,
            "error": {
                "code": spec.code,
                "message": message or spec.message,
                "jsonrpcCode": spec.jsonrpc_code,
            },
        }


class TransportError(Exception):
    """Pre-dispatch failure rendered as an HTTP status by the transports."""

    def __init__(
        self,
        code: str,
        message: str | None = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message or CanonicalError.default_message(code)
        self.status_code = CanonicalError.to_http_status(code)
        self.headers = dict(headers or {})
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        return CanonicalError.to_transport_body(self.code, self.message)


class MalformedPayloadError(TransportError):
    """Top-level body is neither a JSON object nor an array."""

    def __init__(self, message: str = "Parse error") -> None:
        super().__init__("PARSE_ERROR", message)
