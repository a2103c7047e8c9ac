"""Tool interface exposed to the host agent."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class ToolDefinition(BaseModel):
    """A tool the host can offer to its model.

    ``parameters`` is a JSON Schema object.
    """

    name: str
    description: str
    parameters: dict[str, Any]

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to the function-calling format most hosts accept."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolResult(BaseModel):
    """Result of a tool call."""

    success: bool
    output: Any
    error: str | None = None

    @classmethod
    def ok(cls, output: Any) -> "ToolResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str, output: Any = None) -> "ToolResult":
        return cls(success=False, output=output, error=error)


class BaseSkill(ABC):
    """A named group of tools.

    Example:
        >>> class EchoSkill(BaseSkill):
        ...     name = "echo"
        ...
        ...     def get_tools(self) -> list[ToolDefinition]:
        ...         return [ToolDefinition(name="echo", description="Echo", parameters={})]
        ...
        ...     async def execute(self, tool_name: str, arguments: dict) -> ToolResult:
        ...         return ToolResult.ok(arguments)
    """

    name: str = "base_skill"
    description: str = "Base skill"

    @abstractmethod
    def get_tools(self) -> list[ToolDefinition]:
        """Return the tools this skill provides."""

    @abstractmethod
    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run one of this skill's tools.

        Args:
            tool_name: Name of the tool to execute
            arguments: Tool arguments

        Returns:
            ToolResult with success status and output
        """

    def get_tool_by_name(self, name: str) -> ToolDefinition | None:
        for tool in self.get_tools():
            if tool.name == name:
                return tool
        return None

    def provides_tool(self, name: str) -> bool:
        return self.get_tool_by_name(name) is not None
