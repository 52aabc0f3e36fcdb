"""
Tools System
============

Tools are named units of work the model can ask the Context to run.

Each tool has:
- a name, unique within a registry
- a description shown to the model
- a JSON Schema for its parameters
- an `execute(params)` entry point returning a ToolResult

Anything with those four attributes can be registered (see
ToolCapability). For the common case of "a function plus a schema",
wrap the function in a Tool:

    async def echo(params: dict) -> ToolResult:
        return ToolResult(success=True, data=params)

    registry = ToolRegistry()
    registry.register(Tool(
        name="echo",
        description="Echo the parameters back",
        parameters={"type": "object", "properties": {}},
        execute=echo,
    ))

This module provides:
- ToolResult: standardized tool output
- ToolDescriptor: the name/description/schema triple advertised to the model
- Tool: function-backed tool
- ToolRegistry: ordered name -> tool mapping
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Protocol, runtime_checkable
import json

from agentloop.errors import DuplicateToolError
from agentloop.utils.logger import Logger

logger = Logger("Tools")


@dataclass
class ToolResult:
    """
    Standardized result from tool execution.

    Attributes:
        success: Whether the tool executed successfully
        data: The result data (varies by tool)
        error: Error message if success is False
    """
    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "ToolResult":
        return cls(success=False, data=data, error=error)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error
        }

    def to_message(self) -> str:
        """Format as tool-message content for the model."""
        if self.success:
            if isinstance(self.data, str):
                return self.data
            return json.dumps(self.data, default=str)
        else:
            return f"Error: {self.error}"


@dataclass(frozen=True)
class ToolDescriptor:
    """What the model sees of a tool."""
    name: str
    description: str
    parameters: dict = field(default_factory=dict)

    def to_openai_function(self) -> dict:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}}
            }
        }


@runtime_checkable
class ToolCapability(Protocol):
    """
    The tool contract.

    `execute` may be a plain function or a coroutine function; either
    way it must eventually produce a ToolResult (or raise).
    """
    name: str
    description: str
    parameters: dict

    def execute(self, params: dict) -> "ToolResult | Awaitable[ToolResult]":
        ...


def describe(tool: ToolCapability) -> ToolDescriptor:
    """Build the descriptor for any tool."""
    return ToolDescriptor(
        name=tool.name,
        description=tool.description,
        parameters=dict(tool.parameters or {}),
    )


@dataclass
class Tool:
    """
    A tool backed by a function.

    Attributes:
        name: Unique identifier for the tool
        description: What the tool does (shown to the model)
        parameters: JSON Schema for the parameters
        execute: Function (sync or async) taking the params dict
    """
    name: str
    description: str
    parameters: dict
    execute: Callable[[dict], "ToolResult | Awaitable[ToolResult]"]

    def to_openai_function(self) -> dict:
        return describe(self).to_openai_function()


class ToolRegistry:
    """
    Ordered registry of tools keyed by name.

    Iteration and `list()` follow registration order, so the tool list
    sent to the model is identical across calls on the same registry.

    A registry can be shared by several Contexts; registration is not
    synchronized, so register everything before sharing it.

    Example:
        registry = ToolRegistry()
        registry.register(my_tool)

        tool = registry.get("my_tool")
        descriptors = registry.list()
    """

    def __init__(self, tools: Iterable[ToolCapability] | None = None):
        self._tools: dict[str, ToolCapability] = {}
        if tools:
            self.register_all(tools)

    def register(self, tool: ToolCapability) -> None:
        """
        Register a tool.

        Raises:
            DuplicateToolError: If a tool with this name already exists
        """
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)

        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def register_all(self, tools: Iterable[ToolCapability]) -> None:
        """Register several tools, stopping at the first duplicate."""
        for tool in tools:
            self.register(tool)

    def import_from(self, other: "ToolRegistry") -> None:
        """Register every tool of another registry, in its order."""
        self.register_all(other.get_all())

    def get(self, name: str) -> ToolCapability | None:
        """Get a tool by name, or None if not found."""
        return self._tools.get(name)

    def get_all(self) -> list[ToolCapability]:
        """Get all registered tools."""
        return list(self._tools.values())

    def get_openai_functions(self) -> list[dict]:
        """All tools in OpenAI function format."""
        return [descriptor.to_openai_function() for descriptor in self.list()]

    def list_names(self) -> list[str]:
        """Get list of all tool names."""
        return list(self._tools.keys())

    # Defined after the methods above: inside the class body this name
    # shadows the builtin used in their annotations.
    def list(self) -> list[ToolDescriptor]:
        """Descriptors of all tools, in registration order."""
        return [describe(tool) for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def create_builtin_registry() -> ToolRegistry:
    """
    A fresh registry holding the built-in tools (shell_command, respond).

    Imported lazily: the tool modules import this package.
    """
    from agentloop.tools.respond import create_respond_tool
    from agentloop.tools.shell import create_shell_tool

    registry = ToolRegistry([create_shell_tool(), create_respond_tool()])
    logger.info(f"Registered {len(registry)} built-in tools")
    return registry


__all__ = [
    "Tool",
    "ToolCapability",
    "ToolDescriptor",
    "ToolResult",
    "ToolRegistry",
    "create_builtin_registry",
    "describe",
]
