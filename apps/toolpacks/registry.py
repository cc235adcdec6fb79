"""Tool registry consumed by the MCP gateway."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from apps.toolpacks.executor import CancellationToken, Executor, ToolResult
from apps.toolpacks.loader import Toolpack, ToolpackLoader

__all__ = ["ToolNotFoundError", "ToolRegistry"]

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


class ToolNotFoundError(LookupError):
    """Raised when a tool name is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool '{name}' not found")
        self.name = name


class ToolRegistry:
    """Named, schema-described tools invocable through a uniform interface."""

    def __init__(
        self,
        toolpacks: Iterable[Toolpack] = (),
        *,
        executor: Executor | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._toolpacks: dict[str, Toolpack] = {}
        self._listeners: list[ChangeListener] = []
        self._executor = executor or Executor()
        for toolpack in toolpacks:
            self._toolpacks[toolpack.name] = toolpack

    @classmethod
    def from_directory(cls, directory: Path | str) -> ToolRegistry:
        loader = ToolpackLoader()
        loader.load_dir(directory)
        registry = cls(loader.list())
        LOGGER.info("Loaded %d toolpack(s) from %s", len(registry), directory)
        return registry

    def __len__(self) -> int:
        with self._lock:
            return len(self._toolpacks)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._toolpacks

    def list_tools(self) -> list[dict[str, Any]]:
        """Return tool descriptors ordered by name."""

        with self._lock:
            toolpacks = sorted(self._toolpacks.values(), key=lambda pack: pack.name)
        return [pack.descriptor() for pack in toolpacks]

    def get(self, name: str) -> Toolpack:
        with self._lock:
            toolpack = self._toolpacks.get(name)
        if toolpack is None:
            raise ToolNotFoundError(name)
        return toolpack

    async def call_tool(
        self,
        name: str,
        arguments: Mapping[str, Any],
        *,
        cancellation: CancellationToken | None = None,
    ) -> ToolResult:
        """Invoke ``name``; the registry lock is released before the tool runs."""

        toolpack = self.get(name)
        return await self._executor.run(toolpack, arguments, cancellation=cancellation)

    def register(self, toolpack: Toolpack) -> None:
        """Add or replace a tool and notify listeners."""

        with self._lock:
            self._toolpacks[toolpack.name] = toolpack
        self._notify()

    def unregister(self, name: str) -> None:
        with self._lock:
            if self._toolpacks.pop(name, None) is None:
                raise ToolNotFoundError(name)
        self._notify()

    def reload(self, directory: Path | str) -> None:
        """Replace every tool with the toolpacks found in ``directory``."""

        loader = ToolpackLoader()
        loader.load_dir(directory)
        with self._lock:
            self._toolpacks = {pack.name: pack for pack in loader.list()}
        self._notify()

    def subscribe(self, listener: ChangeListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:  # pragma: no cover
                LOGGER.exception("Tool list change listener failed")
