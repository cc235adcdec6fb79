"""Toolpack loading, execution and registry."""

from .executor import (
    CancellationToken,
    Executor,
    ToolResult,
    ToolpackExecutionError,
    ToolpackInputError,
)
from .loader import Toolpack, ToolpackLoader, ToolpackValidationError
from .registry import ToolNotFoundError, ToolRegistry

__all__ = [
    "CancellationToken",
    "Executor",
    "Toolpack",
    "ToolpackLoader",
    "ToolpackExecutionError",
    "ToolpackInputError",
    "ToolpackValidationError",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
]
