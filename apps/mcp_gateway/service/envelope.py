"""Response models for JSON-RPC envelopes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import CanonicalError

__all__ = ["JsonRpcError", "JsonRpcResponse", "RequestId"]

RequestId = Union[int, float, str, bool]

JSONRPC_VERSION = "2.0"


class JsonRpcError(BaseModel):
    """Error member of a response."""

    model_config = ConfigDict(extra="forbid")

    code: int
    message: str
    data: dict[str, Any] | None = None


class JsonRpcResponse(BaseModel):
    """Exactly one of ``result`` and ``error`` is populated."""

    model_config = ConfigDict(extra="forbid")

    jsonrpc: str = Field(default=JSONRPC_VERSION)
    id: Any
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    @model_validator(mode="after")
    def _check_exclusive(self) -> JsonRpcResponse:
        if (self.result is None) == (self.error is None):
            raise ValueError("response must carry exactly one of result or error")
        return self

    @classmethod
    def success(cls, request_id: Any, result: Mapping[str, Any]) -> JsonRpcResponse:
        return cls(id=request_id, result=dict(result))

    @classmethod
    def failure(
        cls,
        request_id: Any,
        code: str,
        message: str | None = None,
        *,
        data: Mapping[str, Any] | None = None,
    ) -> JsonRpcResponse:
        error = CanonicalError.to_jsonrpc_error(code, message, data=data)
        return cls(id=request_id, error=JsonRpcError(**error))

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result
        return payload
