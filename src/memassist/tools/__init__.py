"""Tool registry and tool implementations."""

from .base import Tool, ToolKind, ToolResult
from .clock import DateTimeTool
from .registry import ToolRegistry

__all__ = [
    "DateTimeTool",
    "Tool",
    "ToolKind",
    "ToolRegistry",
    "ToolResult",
]
