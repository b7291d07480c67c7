"""
Base classes for tools.

Every tool declares a pydantic input model. The registry validates the
model's raw arguments against it before the tool runs, and advertises its
JSON schema in the capability manifest.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from pydantic import BaseModel

if TYPE_CHECKING:
    from ..llm.base import BaseLLM


class NoInput(BaseModel):
    """Input model for tools that take no arguments."""


@dataclass
class ToolResult:
    """Result from a tool execution.

    ``content`` is either plain text or a list of typed content blocks
    (``text`` / ``image``). ``attachment`` carries raw bytes, such as a PNG
    screenshot, to forward to the chat transport.
    """

    content: str | list[dict[str, Any]]
    attachment: bytes | None = None
    is_error: bool = False

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls(content=message, is_error=True)

    def to_block(self, tool_use_id: str) -> dict[str, Any]:
        """Build the tool_result content block for the turn log."""
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            block["is_error"] = True
        return block


@dataclass
class ToolContext:
    """What a tool may see of the running agent turn."""

    llm: "BaseLLM | None" = None
    messages: list[dict[str, Any]] = field(default_factory=list)
    identity: str | None = None


ToolHandler = Callable[[Any, "ToolContext | None"], Coroutine[Any, Any, ToolResult]]


@dataclass
class Tool:
    """
    Simple tool wrapper that can be created from a function.

    This is an alternative to the class-based BaseTool for simpler tools.
    """

    name: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler

    async def execute(self, params: BaseModel, context: ToolContext | None = None) -> ToolResult:
        """Execute the tool handler."""
        return await self.handler(params, context)


class BaseTool(ABC):
    """Base class for all tools."""

    input_model: type[BaseModel] = NoInput

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Get the tool description."""
        pass

    @abstractmethod
    async def execute(self, params: BaseModel, context: ToolContext | None = None) -> ToolResult:
        """Execute the tool with validated input."""
        pass


def input_schema(model: type[BaseModel]) -> dict[str, Any]:
    """JSON schema for an input model, always an object schema."""
    schema = model.model_json_schema()
    schema.setdefault("type", "object")
    schema.setdefault("properties", {})
    return schema
