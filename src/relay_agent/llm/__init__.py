"""
LLM module - the model endpoint boundary.

The agent loop only depends on ``BaseLLM``; ``AnthropicLLM`` is the
production implementation.
"""

from .base import (
    TOOL_USE_STOP_REASON,
    BaseLLM,
    LLMResponse,
    ToolCall,
    ToolDefinition,
    is_overload_error,
)
from .anthropic import AnthropicLLM
from .factory import create_llm

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "ToolCall",
    "ToolDefinition",
    "TOOL_USE_STOP_REASON",
    "is_overload_error",
    "AnthropicLLM",
    "create_llm",
]
