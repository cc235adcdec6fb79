"""Decode raw JSON values into a closed set of message variants."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import MalformedPayloadError

__all__ = [
    "ClassifiedPayload",
    "Malformed",
    "Message",
    "Notification",
    "Request",
    "classify",
    "classify_payload",
]


@dataclass(frozen=True, slots=True)
class Request:
    id: Any
    method: str
    params: Any = None


@dataclass(frozen=True, slots=True)
class Notification:
    method: str
    params: Any = None


@dataclass(frozen=True, slots=True)
class Malformed:
    """An item that is not an envelope.

    ``id`` is kept when the item carried a usable one, so it can still be
    answered with an Invalid Request error.
    """

    reason: str
    id: Any = None


Message = Union[Request, Notification, Malformed]


@dataclass(frozen=True, slots=True)
class ClassifiedPayload:
    items: tuple[Message, ...] = field(default_factory=tuple)
    is_batch: bool = False

    @property
    def requests(self) -> list[Request]:
        return [item for item in self.items if isinstance(item, Request)]

    @property
    def notifications(self) -> list[Notification]:
        return [item for item in self.items if isinstance(item, Notification)]


def classify(raw: Any) -> Message:
    if not isinstance(raw, Mapping):
        return Malformed(reason=f"expected object, got {_json_type(raw)}")

    request_id = raw.get("id")
    method = raw.get("method")
    if not isinstance(method, str) or not method:
        return Malformed(reason="missing or non-string 'method'", id=request_id)

    params = raw.get("params")
    if request_id is None:
        return Notification(method=method, params=params)
    return Request(id=request_id, method=method, params=params)


def classify_payload(raw: Any) -> ClassifiedPayload:
    """Classify a decoded body, treating a batch and a single object alike."""

    if isinstance(raw, list):
        return ClassifiedPayload(items=tuple(classify(item) for item in raw), is_batch=True)
    if isinstance(raw, Mapping):
        return ClassifiedPayload(items=(classify(raw),), is_batch=False)
    raise MalformedPayloadError(f"Parse error: body must be a JSON object or array, got {_json_type(raw)}")


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return type(value).__name__
