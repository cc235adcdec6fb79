from __future__ import annotations

import pytest

from apps.mcp_gateway.streams.frames import encode_comment, encode_event


def test_single_line_event() -> None:
    assert encode_event("endpoint", "http://localhost:3000/messages") == (
        "event: endpoint\ndata: http://localhost:3000/messages\n\n"
    )


def test_multi_line_payload_gets_one_data_field_per_line() -> None:
    assert encode_event("message", "a\nb\r\nc") == "event: message\ndata: a\ndata: b\ndata: c\n\n"


def test_empty_payload_still_emits_data_field() -> None:
    assert encode_event("ready", "") == "event: ready\ndata: \n\n"


def test_event_name_must_be_single_line() -> None:
    with pytest.raises(ValueError):
        encode_event("bad\nname", "x")


def test_comment_frame() -> None:
    assert encode_comment("keepalive") == ": keepalive\n\n"


def test_unicode_line_separators_stay_inside_data() -> None:
    payload = "{\"t\": \"a\u2028b\x0bc\"}"
    assert encode_event("message", payload) == f"event: message\ndata: {payload}\n\n"
