from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def run(payload: Mapping[str, Any]) -> str:
    text = payload.get("text")
    if text:
        return f"pong {text}"
    return "pong"
