"""
Base classes for the model endpoint.

Messages and content blocks use the Anthropic Messages API shape
(``{"role": ..., "content": str | list[block]}``) so the agent loop can
append raw assistant responses and tool-result bundles to its turn log.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

TOOL_USE_STOP_REASON = "tool_use"

_OVERLOAD_STATUS_CODES = {429, 529}
_OVERLOAD_PATTERN = re.compile(r"rate[_ ]?limit|overloaded|\b429\b|\b529\b", re.IGNORECASE)


@dataclass
class ToolDefinition:
    """Definition of a tool that the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """A tool call made by the LLM."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class LLMResponse:
    """Response from an LLM."""

    content_blocks: list[dict[str, Any]] = field(default_factory=list)
    stop_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""

    @property
    def text(self) -> str:
        """All text blocks, in order, joined by newlines."""
        return "\n".join(
            block.get("text", "")
            for block in self.content_blocks
            if block.get("type") == "text"
        )

    @property
    def tool_calls(self) -> list[ToolCall]:
        """Tool invocations requested by the model, in emission order."""
        calls = []
        for block in self.content_blocks:
            if block.get("type") != "tool_use":
                continue
            arguments = block.get("input")
            calls.append(ToolCall(
                id=block["id"],
                name=block["name"],
                arguments=dict(arguments) if isinstance(arguments, dict) else {},
            ))
        return calls

    @property
    def wants_tools(self) -> bool:
        return self.stop_reason == TOOL_USE_STOP_REASON and bool(self.tool_calls)


class BaseLLM(ABC):
    """Base class for LLM providers."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 1024,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens

    @abstractmethod
    async def generate(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a response from the LLM.

        ``model`` and ``max_tokens`` override the instance defaults for a
        single request.
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass


def is_overload_error(error: BaseException) -> bool:
    """Check whether an error looks like a rate-limit or overload condition.

    Looks at an HTTP ``status_code`` attribute first, then at the error text.
    """
    status = getattr(error, "status_code", None)
    if status in _OVERLOAD_STATUS_CODES:
        return True
    return bool(_OVERLOAD_PATTERN.search(f"{type(error).__name__} {error}"))
