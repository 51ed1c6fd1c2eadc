"""Base tool interface and argument validation."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import InvalidArguments


class ToolKind(Enum):
    """The closed set of tools the assistant exposes to the model."""

    MEMORY_SAVE = "memory_save"
    MEMORY_SEARCH = "memory_search"
    MEMORY_LIST = "memory_list"
    MEMORY_DELETE = "memory_delete"
    KNOWLEDGE_SAVE = "knowledge_save"
    KNOWLEDGE_SEARCH = "knowledge_search"
    ENTITY_SEARCH = "entity_search"
    GET_DATETIME = "get_datetime"


@dataclass
class ToolResult:
    """Result from tool execution.

    ``output`` is the text shown to the model; ``data`` is the structured
    payload. Failures carry an ``error_type`` such as ``invalid_arguments``
    or ``not_found``.
    """

    success: bool
    output: str
    error: str | None = None
    error_type: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def failure(cls, error_type: str, error: str) -> "ToolResult":
        return cls(success=False, output="", error=error, error_type=error_type)


_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def _check_type(key: str, value: Any, prop: dict[str, Any]) -> None:
    expected = prop.get("type")
    if expected is None:
        return
    # bool is a subclass of int
    if expected == "integer" and isinstance(value, bool):
        raise InvalidArguments(f"Argument '{key}' must be an integer")
    if not isinstance(value, _JSON_TYPES.get(expected, (object,))):
        article = "an" if expected[0] in "aeiou" else "a"
        raise InvalidArguments(f"Argument '{key}' must be {article} {expected}")

    if expected == "array":
        item_type = prop.get("items", {}).get("type")
        if item_type == "string" and not all(isinstance(v, str) for v in value):
            raise InvalidArguments(f"Argument '{key}' must be a list of strings")

    if "enum" in prop and value not in prop["enum"]:
        raise InvalidArguments(
            f"Argument '{key}' must be one of: {', '.join(map(str, prop['enum']))}"
        )
    if expected == "integer":
        if "minimum" in prop and value < prop["minimum"]:
            raise InvalidArguments(f"Argument '{key}' must be >= {prop['minimum']}")
        if "maximum" in prop and value > prop["maximum"]:
            raise InvalidArguments(f"Argument '{key}' must be <= {prop['maximum']}")
    if expected == "string" and prop.get("minLength") and not value.strip():
        raise InvalidArguments(f"Argument '{key}' cannot be empty")


class Tool(ABC):
    """Base interface for all tools."""

    @property
    @abstractmethod
    def kind(self) -> ToolKind:
        """Which tool this is."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Tool description for LLM."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with validated arguments.

        The registry also passes ``user_id``, the caller whose records the
        tool reads and writes.
        """
        ...

    @property
    def name(self) -> str:
        return self.kind.value

    def get_schema(self) -> dict[str, Any]:
        """Get tool schema for LLM function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_args(self, args: dict[str, Any]) -> None:
        """Validate arguments against the schema.

        Raises:
            InvalidArguments: On a missing, unknown, mistyped or out-of-range argument.
        """
        if not isinstance(args, dict):
            raise InvalidArguments("Arguments must be a JSON object")

        required = self.parameters.get("required", [])
        properties = self.parameters.get("properties", {})

        for field in required:
            if field not in args or args[field] is None:
                raise InvalidArguments(f"Missing required argument: {field}")

        for key, value in args.items():
            if key not in properties:
                raise InvalidArguments(f"Unknown argument: {key}")
            if value is None and key not in required:
                continue
            _check_type(key, value, properties[key])
