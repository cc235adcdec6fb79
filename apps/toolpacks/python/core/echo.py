from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def run(payload: Mapping[str, Any]) -> dict[str, Any]:
    text = str(payload.get("text", ""))
    if payload.get("uppercase"):
        text = text.upper()
    return {"content": [{"type": "text", "text": text}], "isError": False}
