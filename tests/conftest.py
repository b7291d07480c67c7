"""
Shared fixtures and fakes for relay-agent tests.
"""

import copy
import os
from typing import Any
from unittest.mock import patch

import pytest

from relay_agent.channels import BaseChannel
from relay_agent.config import Settings
from relay_agent.llm.base import BaseLLM, LLMResponse, ToolDefinition


def text_response(text: str) -> LLMResponse:
    """A final model answer."""
    return LLMResponse(
        content_blocks=[{"type": "text", "text": text}],
        stop_reason="end_turn",
        input_tokens=10,
        output_tokens=5,
    )


def tool_response(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> LLMResponse:
    """A model answer requesting tools, given (id, name, input) triples."""
    blocks: list[dict[str, Any]] = []
    if text:
        blocks.append({"type": "text", "text": text})
    for call_id, name, arguments in calls:
        blocks.append({"type": "tool_use", "id": call_id, "name": name, "input": arguments})
    return LLMResponse(content_blocks=blocks, stop_reason="tool_use", input_tokens=10, output_tokens=5)


class ScriptedLLM(BaseLLM):
    """Returns queued responses in order and records every request.

    A queued exception is raised instead of returned. Once the queue is
    exhausted the last item repeats.
    """

    def __init__(self, *responses: LLMResponse | Exception):
        super().__init__(api_key="test", model="test-model")
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    async def generate(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        self.calls.append({
            "messages": copy.deepcopy(messages),
            "tools": tools,
            "system_prompt": system_prompt,
            "model": model,
            "max_tokens": max_tokens,
        })
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class RecordingChannel(BaseChannel):
    """Records outbound deliveries as ("text" | "image", identity, payload)."""

    def __init__(self, fail_text: bool = False):
        self.sent: list[tuple[str, str, Any]] = []
        self.fail_text = fail_text

    @property
    def name(self) -> str:
        return "recording"

    async def send_text(self, identity: str, text: str) -> None:
        if self.fail_text:
            raise ConnectionError("transport down")
        self.sent.append(("text", identity, text))

    async def send_image(self, identity: str, data: bytes, caption: str = "") -> None:
        self.sent.append(("image", identity, data))


@pytest.fixture
def make_settings(tmp_path):
    """Build Settings isolated from the environment and any .env file."""

    def factory(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "memory_file": str(tmp_path / "conversations.json"),
            "workspace_dir": str(tmp_path / "workspace"),
        }
        values.update(overrides)
        with patch.dict(os.environ, {}, clear=True):
            return Settings(_env_file=None, **values)

    return factory
