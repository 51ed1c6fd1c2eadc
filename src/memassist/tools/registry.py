"""Tool registry for managing and dispatching tools."""

import logging
from typing import Any

from ..errors import InvalidArguments, NotFoundError, StoreError, ValidationError
from .base import Tool, ToolKind, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for available tools, keyed by ToolKind."""

    def __init__(self) -> None:
        self._tools: dict[ToolKind, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises:
            ValueError: If the tool's kind is not a ToolKind or is already registered.
        """
        if not isinstance(tool.kind, ToolKind):
            raise ValueError(f"Tool {tool!r} has no valid ToolKind")
        if tool.kind in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.kind] = tool

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        try:
            return self._tools.get(ToolKind(name))
        except ValueError:
            return None

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return [kind.value for kind in self._tools]

    def missing(self) -> list[ToolKind]:
        """ToolKinds that have no registered handler."""
        return [kind for kind in ToolKind if kind not in self._tools]

    def get_tools_schema(self) -> list[dict[str, Any]]:
        """Get schemas for all tools (for LLM function calling)."""
        return [tool.get_schema() for tool in self._tools.values()]

    async def dispatch(
        self, tool_name: str, args: dict[str, Any], *, user_id: int
    ) -> ToolResult:
        """Dispatch a tool call by name with arguments on behalf of a user.

        Arguments are validated before the handler runs, so a rejected call
        has no side effects. ``user_id`` is not a model argument; a model
        that sends one is rejected as an unknown argument. Errors are
        returned as typed failures.
        """
        tool = self.get(tool_name)
        if tool is None:
            return ToolResult.failure("unknown_tool", f"Unknown tool: {tool_name}")

        try:
            tool.validate_args(args)
        except InvalidArguments as e:
            return ToolResult.failure("invalid_arguments", str(e))

        try:
            return await tool.execute(user_id=user_id, **args)
        except NotFoundError as e:
            return ToolResult.failure("not_found", str(e))
        except ValidationError as e:
            return ToolResult.failure("validation", str(e))
        except StoreError:
            logger.exception("Store failure in tool %s", tool_name)
            return ToolResult.failure("store_error", "Storage operation failed")
        except Exception:
            logger.exception("Tool %s raised", tool_name)
            return ToolResult.failure("internal", "Tool execution failed")
