from __future__ import annotations

import pytest
from jsonschema import Draft202012Validator
from pydantic import ValidationError

from apps.mcp_gateway.service.envelope import JsonRpcResponse
from apps.mcp_gateway.service.errors import CanonicalError, TransportError


@pytest.mark.parametrize(
    ("code", "http_status", "jsonrpc_code"),
    [
        ("PARSE_ERROR", 400, -32700),
        ("INVALID_REQUEST", 400, -32600),
        ("METHOD_NOT_FOUND", 404, -32601),
        ("TOOL_NOT_FOUND", 404, -32601),
        ("INVALID_PARAMS", 400, -32602),
        ("INTERNAL_ERROR", 500, -32603),
        ("SESSION_NOT_FOUND", 404, -32001),
        ("PAYLOAD_TOO_LARGE", 413, -32600),
        ("STREAM_NOT_ACCEPTED", 405, -32600),
    ],
)
def test_canonical_error_mapping(code: str, http_status: int, jsonrpc_code: int) -> None:
    assert CanonicalError.to_http_status(code) == http_status
    assert CanonicalError.to_jsonrpc_code(code) == jsonrpc_code


def test_unknown_code_raises_key_error() -> None:
    with pytest.raises(KeyError):
        CanonicalError.to_http_status("NOPE")


def test_jsonrpc_error_uses_default_message_and_optional_data() -> None:
    assert CanonicalError.to_jsonrpc_error("METHOD_NOT_FOUND") == {
        "code": -32601,
        "message": "Method not found",
    }
    error = CanonicalError.to_jsonrpc_error("INVALID_PARAMS", "bad", data={"field": "name"})
    assert error == {"code": -32602, "message": "bad", "data": {"field": "name"}}


def test_transport_error_body_shape() -> None:
    exc = TransportError("PAYLOAD_TOO_LARGE", headers={"Retry-After": "1"})
    assert exc.status_code == 413
    assert exc.headers == {"Retry-After": "1"}
    assert exc.to_body() == {
        "ok": False,
        "error": {
            "code": "PAYLOAD_TOO_LARGE",
            "message": "Payload too large",
            "jsonrpcCode": -32600,
        },
    }


def test_response_requires_exactly_one_of_result_and_error() -> None:
    with pytest.raises(ValidationError):
        JsonRpcResponse(id=1)
    with pytest.raises(ValidationError):
        JsonRpcResponse(id=1, result={}, error={"code": 1, "message": "x"})


def test_payloads_match_response_schema(response_schema: dict[str, object]) -> None:
    validator = Draft202012Validator(response_schema)
    validator.check_schema(response_schema)

    ok = JsonRpcResponse.success("req-1", {"tools": []})
    failed = JsonRpcResponse.failure(2, "TOOL_NOT_FOUND", "Tool not found: nope")

    validator.validate(ok.to_payload())
    validator.validate(failed.to_payload())
    assert ok.ok and not failed.ok
    assert failed.to_payload()["error"] == {"code": -32601, "message": "Tool not found: nope"}
