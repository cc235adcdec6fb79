"""Server-sent event framing."""

from __future__ import annotations

import re

__all__ = ["encode_comment", "encode_event"]

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def encode_event(event: str, data: str) -> str:
    """Frame ``data`` as a named event; each payload line gets its own ``data:`` field."""

    if _LINE_BREAK.search(event):
        raise ValueError("event name must be a single line")
    body = "".join(f"data: {line}\n" for line in _LINE_BREAK.split(data))
    return f"event: {event}\n{body}\n"


def encode_comment(text: str) -> str:
    """Comment-only frame; peers ignore it, intermediaries see traffic."""

    return "".join(f": {line}\n" for line in _LINE_BREAK.split(text)) + "\n"
