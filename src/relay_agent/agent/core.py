"""
Agent loop - the tool-calling exchange with the model.

Given a conversation history, the loop:
1. Converts the history into the model's message format (the turn log)
2. Calls the model with the tool manifest
3. Executes requested tools in order and feeds the results back
4. Stops at the first answer without tool calls, or at the iteration cap
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from ..config import DEFAULT_SYSTEM_PROMPT
from ..llm import BaseLLM, ToolCall
from ..models import Message, MessageRole
from ..tools import ToolContext, ToolRegistry, ToolResult

logger = structlog.get_logger()

DEFAULT_MAX_TOOL_ITERATIONS = 10
MAX_STEPS_MESSAGE = "I reached the maximum number of steps for this request."


@dataclass
class AgentReply:
    """Final outcome of one agent run."""

    text: str
    attachments: list[bytes] = field(default_factory=list)
    iterations: int = 0


def to_turn_log(history: list[Message]) -> list[dict[str, Any]]:
    """Convert stored messages to API messages.

    Leading assistant messages are dropped: the first turn sent to the
    model has to come from the user, and FIFO eviction can leave an
    assistant reply at the head of a history. Messages with blank content
    are skipped because the endpoint rejects empty turns; the store still
    keeps them.
    """
    turn_log: list[dict[str, Any]] = []
    for msg in history:
        if not msg.content.strip():
            continue
        if not turn_log and msg.role != MessageRole.USER:
            continue
        turn_log.append({"role": msg.role.value, "content": msg.content})
    return turn_log


class AgentLoop:
    """Runs one bounded model/tool exchange per inbound message.

    The loop holds no per-conversation state, so one instance serves every
    conversation. Model errors propagate to the caller; tool errors never do.
    """

    def __init__(
        self,
        llm: BaseLLM,
        tool_registry: ToolRegistry,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS,
    ):
        if max_tool_iterations <= 0:
            raise ValueError("max_tool_iterations must be positive")
        self.llm = llm
        self.tool_registry = tool_registry
        self.system_prompt = system_prompt
        self.max_tool_iterations = max_tool_iterations

    async def run(self, history: list[Message], identity: str | None = None) -> AgentReply:
        """Drive the exchange for a conversation history."""
        log = logger.bind(conversation=identity)
        turn_log = to_turn_log(history)
        attachments: list[bytes] = []
        tools = self.tool_registry.get_definitions()

        for iteration in range(1, self.max_tool_iterations + 1):
            response = await self.llm.generate(
                messages=turn_log,
                tools=tools or None,
                system_prompt=self.system_prompt,
            )
            log.info(
                "Model response",
                iteration=iteration,
                stop_reason=response.stop_reason,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            )

            if not response.wants_tools:
                return AgentReply(text=response.text, attachments=attachments, iterations=iteration)

            turn_log.append({"role": "assistant", "content": response.content_blocks})

            context = ToolContext(llm=self.llm, messages=turn_log, identity=identity)
            results = []
            for call in response.tool_calls:
                result = await self._execute_tool(call, context, log)
                if result.attachment is not None:
                    attachments.append(result.attachment)
                results.append(result.to_block(call.id))

            turn_log.append({"role": "user", "content": results})

        log.warning("Tool iteration limit reached", max_tool_iterations=self.max_tool_iterations)
        return AgentReply(
            text=MAX_STEPS_MESSAGE,
            attachments=attachments,
            iterations=self.max_tool_iterations,
        )

    async def _execute_tool(self, call: ToolCall, context: ToolContext, log: Any) -> ToolResult:
        log.info("Executing tool", tool=call.name, arguments=call.arguments)
        try:
            return await self.tool_registry.execute(call.name, call.arguments, context)
        except Exception as e:
            log.error("Tool raised", tool=call.name, error=str(e))
            return ToolResult.error(f"Error: {call.name} failed: {e}")
