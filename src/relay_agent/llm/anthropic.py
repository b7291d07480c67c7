"""
Anthropic Claude LLM provider.
"""

from typing import Any

import anthropic
import structlog

from .base import BaseLLM, LLMResponse, ToolDefinition

logger = structlog.get_logger()


class AnthropicLLM(BaseLLM):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-haiku-4-5-20251001",
        base_url: str | None = None,
        max_tokens: int = 1024,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        super().__init__(api_key, model, base_url, max_tokens)
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key or None,
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Anthropic format."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in tools
        ]

    @staticmethod
    def _convert_block(block: Any) -> dict[str, Any]:
        """Turn an SDK content block into a plain dict the API accepts back."""
        if block.type == "text":
            return {"type": "text", "text": block.text}
        if block.type == "tool_use":
            return {
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input if isinstance(block.input, dict) else {},
            }
        return block.model_dump(exclude_none=True)

    async def generate(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a response from Claude."""
        kwargs: dict[str, Any] = {
            "model": model or self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": messages,
        }

        if system_prompt:
            kwargs["system"] = system_prompt

        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error("Anthropic API error", error=str(e), model=kwargs["model"])
            raise

        return LLMResponse(
            content_blocks=[self._convert_block(block) for block in response.content],
            stop_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
        )
