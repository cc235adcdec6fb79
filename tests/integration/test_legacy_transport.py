from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import pytest

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient
from jsonschema import Draft202012Validator

from apps.mcp_gateway.config import GatewaySettings
from apps.mcp_gateway.http import create_app
from apps.mcp_gateway.service.gateway import McpGateway
from tests.helpers.asgi import drive_stream, http_scope, make_request, route_endpoint


@pytest.fixture
def client(gateway: McpGateway) -> TestClient:
    return TestClient(create_app(gateway))


def test_root_health_text(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "MCP gateway active"


def test_healthz_reports_counts(client: TestClient) -> None:
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "streams": 0, "sessions": 0, "tools": 2}


def test_single_request_round_trip(client: TestClient, response_schema: dict[str, Any]) -> None:
    response = client.post(
        "/messages",
        json={"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "ping", "arguments": {"text": "hi"}}},
    )
    assert response.status_code == 200
    payload = response.json()
    Draft202012Validator(response_schema).validate(payload)
    assert payload["result"]["content"][0]["text"] == "pong hi"


def test_singular_message_alias(client: TestClient) -> None:
    response = client.post("/message", json={"jsonrpc": "2.0", "id": "x", "method": "ping"})
    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "id": "x", "result": {}}


def test_notification_is_accepted_without_body(client: TestClient) -> None:
    response = client.post("/messages", json={"jsonrpc": "2.0", "method": "notifications/initialized"})
    assert response.status_code == 202
    assert response.content == b""


def test_batch_responses_follow_request_order(client: TestClient, response_schema: dict[str, Any]) -> None:
    response = client.post(
        "/messages",
        json=[
            {"jsonrpc": "2.0", "id": 3, "method": "tools/list"},
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": 1, "method": "nope/nope"},
            {"jsonrpc": "2.0", "id": 2, "method": "tools.call", "params": {"name": "missing"}},
        ],
    )
    assert response.status_code == 200
    payload = response.json()
    validator = Draft202012Validator(response_schema)
    for item in payload:
        validator.validate(item)
    assert [item["id"] for item in payload] == [3, 1, 2]
    assert payload[1]["error"]["code"] == -32601
    assert payload[2]["error"]["code"] == -32601


def test_batch_of_notifications_is_accepted(client: TestClient) -> None:
    response = client.post("/messages", json=[{"method": "notifications/initialized"}])
    assert response.status_code == 202
    assert client.post("/messages", json=[]).status_code == 202


@pytest.mark.parametrize(
    "body",
    [
        b"{not json",
        b"",
        b"42",
        b'"text"',
        b'{"id": NaN, "method": "ping"}',
        b'{"id": 1, "method": "ping", "params": {"n": -Infinity}}',
        b"[" * 100_000 + b"]" * 100_000,
    ],
    ids=["truncated", "empty", "number", "string", "nan", "infinity", "deep-nesting"],
)
def test_parse_errors(client: TestClient, body: bytes) -> None:
    response = client.post("/messages", content=body, headers={"content-type": "application/json"})
    assert response.status_code == 400
    payload = response.json()
    assert payload["ok"] is False
    assert payload["error"]["code"] == "PARSE_ERROR"
    assert payload["error"]["jsonrpcCode"] == -32700


def test_oversized_body_is_rejected(settings: GatewaySettings) -> None:
    gateway = McpGateway.create(settings.with_overrides(max_body_bytes=64))
    client = TestClient(create_app(gateway))
    response = client.post("/messages", json={"id": 1, "method": "ping", "params": {"pad": "x" * 128}})
    assert response.status_code == 413
    assert response.json()["error"]["code"] == "PAYLOAD_TOO_LARGE"


def test_initialize_sets_session_header(client: TestClient, gateway: McpGateway) -> None:
    response = client.post(
        "/messages",
        json={"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2024-11-05"}},
    )
    assert response.status_code == 200
    session_id = response.headers["mcp-session-id"]
    assert gateway.sessions.exists(session_id)
    assert response.json()["result"]["protocolVersion"] == "2024-11-05"


def test_requests_are_logged(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="mcp_gateway.http")
    client.post(
        "/messages",
        json={"id": 1, "method": "ping"},
        headers={"x-forwarded-for": "203.0.113.9, 10.0.0.1", "user-agent": "probe/1.0"},
    )
    messages = [record.getMessage() for record in caplog.records if record.name == "mcp_gateway.http"]
    assert any(
        message.startswith("[REQ] POST /messages -> 200") and "203.0.113.9 probe/1.0" in message
        for message in messages
    )


def test_sse_stream_announces_endpoint(gateway: McpGateway) -> None:
    app = create_app(gateway)
    open_stream = route_endpoint(app, "/sse")

    async def scenario() -> tuple[Any, list[str], int]:
        response = await open_stream(make_request("/sse"))
        frames = [await response.body_iterator.__anext__() for _ in range(2)]
        open_count = len(gateway.streams)
        await response.body_iterator.aclose()
        return response, frames, open_count

    response, frames, open_count = asyncio.run(scenario())
    assert response.media_type == "text/event-stream"
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["connection"] == "keep-alive"
    assert response.headers["x-accel-buffering"] == "no"
    assert frames[0] == "event: endpoint\ndata: http://gateway.test/messages\n\n"
    assert json.loads(frames[1].split("data: ", 1)[1])["ok"] is True
    assert open_count == 1
    assert len(gateway.streams) == 0


def test_sse_stream_uses_public_base_url(settings: GatewaySettings) -> None:
    gateway = McpGateway.create(settings.with_overrides(public_base_url="https://mcp.example.com/"))
    open_stream = route_endpoint(create_app(gateway), "/sse")

    async def scenario() -> str:
        response = await open_stream(make_request("/sse"))
        frame = await response.body_iterator.__anext__()
        await response.body_iterator.aclose()
        return frame

    assert asyncio.run(scenario()) == "event: endpoint\ndata: https://mcp.example.com/messages\n\n"


def test_client_gone_before_body_leaves_no_stream(gateway: McpGateway) -> None:
    app = create_app(gateway)

    async def scenario() -> int:
        for _ in range(20):
            await drive_stream(app, http_scope("/sse"))
        await asyncio.sleep(0.2)
        return len(gateway.streams)

    assert asyncio.run(scenario()) == 0


def test_client_disconnect_mid_stream_closes_connection(gateway: McpGateway) -> None:
    app = create_app(gateway)
    during: list[int] = []

    async def scenario() -> list[dict[str, Any]]:
        sent = await drive_stream(
            app,
            http_scope("/sse"),
            disconnect_after=b"event: ready",
            on_disconnect=lambda: during.append(len(gateway.streams)),
        )
        await asyncio.sleep(0.1)
        return sent

    sent = asyncio.run(scenario())
    assert sent[0]["type"] == "http.response.start"
    assert sent[0]["status"] == 200
    assert during == [1]
    assert len(gateway.streams) == 0
