from __future__ import annotations

import asyncio
import functools
import importlib
import inspect
import json
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from jsonschema import validators
from jsonschema.exceptions import ValidationError

from apps.toolpacks.loader import Toolpack

__all__ = [
    "CancellationToken",
    "ExecutionStats",
    "Executor",
    "ToolResult",
    "ToolpackExecutionError",
    "ToolpackInputError",
]


class ToolpackExecutionError(Exception):
    """Raised when executing a toolpack fails."""


class ToolpackInputError(ToolpackExecutionError):
    """Raised when tool arguments fail the toolpack input schema."""


class CancellationToken:
    """Cooperative cancellation flag handed to tools that accept one.

    Long-running tools may poll :attr:`cancelled`; the gateway itself never sets it.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()


@dataclass(slots=True)
class ExecutionStats:
    """Metrics recorded for one tool invocation."""

    duration_ms: float
    input_bytes: int
    output_bytes: int


@dataclass(slots=True)
class ToolResult:
    """Content blocks returned by a tool call."""

    content: list[dict[str, Any]]
    is_error: bool = False
    stats: ExecutionStats | None = field(default=None, repr=False)

    @classmethod
    def text(cls, text: str, *, is_error: bool = False) -> ToolResult:
        return cls(content=[{"type": "text", "text": text}], is_error=is_error)

    def to_payload(self) -> dict[str, Any]:
        return {"content": [dict(block) for block in self.content], "isError": self.is_error}


class Executor:
    """Run python toolpacks off the event loop."""

    def __init__(self) -> None:
        self._callables: dict[str, Callable[..., Any]] = {}
        self._lock = threading.Lock()

    async def run(
        self,
        toolpack: Toolpack,
        arguments: Mapping[str, Any],
        *,
        cancellation: CancellationToken | None = None,
    ) -> ToolResult:
        """Validate ``arguments``, invoke the tool and wrap its raw output."""

        start_time = time.perf_counter()
        payload = dict(arguments)
        _validate_arguments(toolpack, payload)

        func = self._resolve_python_callable(toolpack)
        kwargs: dict[str, Any] = {}
        if cancellation is not None and _accepts_cancellation(func):
            kwargs["cancellation"] = cancellation

        try:
            if inspect.iscoroutinefunction(func):
                raw = await func(payload, **kwargs)
            else:
                raw = await asyncio.to_thread(functools.partial(func, payload, **kwargs))
        except ToolpackExecutionError:
            raise
        except Exception as exc:
            raise ToolpackExecutionError(f"Tool {toolpack.name} failed: {exc}") from exc

        result = _wrap_output(raw)
        result.stats = ExecutionStats(
            duration_ms=(time.perf_counter() - start_time) * 1000.0,
            input_bytes=_payload_size(payload),
            output_bytes=_payload_size(result.to_payload()),
        )
        return result

    def _resolve_python_callable(self, toolpack: Toolpack) -> Callable[..., Any]:
        entrypoint = str(toolpack.execution["module"])
        with self._lock:
            cached = self._callables.get(entrypoint)
        if cached is not None:
            return cached

        module_name, _, attr_name = entrypoint.partition(":")
        try:
            module = importlib.import_module(module_name)
        except Exception as exc:  # pragma: no cover - import errors rely on Python
            raise ToolpackExecutionError(
                f"Tool {toolpack.name} failed to import module '{module_name}': {exc}"
            ) from exc

        func = getattr(module, attr_name, None)
        if func is None:
            raise ToolpackExecutionError(
                f"Tool {toolpack.name} module '{module_name}' has no attribute '{attr_name}'"
            )
        if not callable(func):
            raise ToolpackExecutionError(
                f"Tool {toolpack.name} attribute '{attr_name}' is not callable"
            )
        with self._lock:
            self._callables[entrypoint] = func
        return func


def _validate_arguments(toolpack: Toolpack, payload: Mapping[str, Any]) -> None:
    validator_cls = validators.validator_for(toolpack.input_schema)
    try:
        validator_cls(toolpack.input_schema).validate(payload)
    except ValidationError as exc:
        raise ToolpackInputError(
            f"Tool {toolpack.name} arguments failed JSON schema validation: {exc.message}"
        ) from exc


def _accepts_cancellation(func: Callable[..., Any]) -> bool:
    try:
        parameters = inspect.signature(func).parameters
    except (TypeError, ValueError):  # pragma: no cover - builtins without signatures
        return False
    return "cancellation" in parameters or any(
        param.kind is inspect.Parameter.VAR_KEYWORD for param in parameters.values()
    )


def _wrap_output(raw: Any) -> ToolResult:
    if isinstance(raw, ToolResult):
        return raw
    if isinstance(raw, Mapping) and isinstance(raw.get("content"), list):
        return ToolResult(
            content=[dict(block) for block in raw["content"]],
            is_error=bool(raw.get("isError", False)),
        )
    if isinstance(raw, str):
        return ToolResult.text(raw)
    if raw is None:
        return ToolResult.text("")
    return ToolResult.text(json.dumps(raw, indent=2, ensure_ascii=False, default=str))


def _payload_size(payload: Mapping[str, Any]) -> int:
    return len(json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8"))
