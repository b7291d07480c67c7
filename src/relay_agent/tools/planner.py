"""
Plan tool - escalate to a stronger model for planning and analysis.

The planner sees a plain-text transcript of the recent turn log rather than
the raw messages: the turn log ends with the assistant's pending tool_use
block, which the API would reject without its matching result.
"""

from typing import Any

import structlog
from pydantic import BaseModel, Field

from .base import BaseTool, ToolContext, ToolResult

logger = structlog.get_logger()

PLAN_SYSTEM_PROMPT = """You are a senior research strategist. A research assistant needs help planning or analyzing something complex.

Review the conversation context and the specific task, then provide a clear, actionable plan.

Be specific about:
- What searches to perform and what terms to use
- What to look for in results
- How to organize findings
- What files to create and their structure in the workspace
- The order of operations

The assistant has these tools: web_search, browse_webpage, read_file, write_file, shell, screenshot, open_path.

Give concrete search queries, file names, and structure. No vague advice."""

RECENT_TURNS = 20
MAX_TRANSCRIPT_CHARS_PER_BLOCK = 2000


class PlanInput(BaseModel):
    task: str = Field(
        description=(
            "What you need planned or analyzed. Be specific about the research question, "
            "what you have found so far, and what decisions you need help with."
        )
    )


def render_transcript(messages: list[dict[str, Any]], limit: int = RECENT_TURNS) -> str:
    """Render the last ``limit`` turn-log entries as plain text."""
    lines = []
    for message in messages[-limit:]:
        role = "User" if message.get("role") == "user" else "Assistant"
        content = message.get("content")
        if isinstance(content, str):
            lines.append(f"{role}: {content[:MAX_TRANSCRIPT_CHARS_PER_BLOCK]}")
            continue
        for block in content or []:
            kind = block.get("type")
            if kind == "text":
                lines.append(f"{role}: {block.get('text', '')[:MAX_TRANSCRIPT_CHARS_PER_BLOCK]}")
            elif kind == "tool_use":
                lines.append(f"{role} called {block.get('name')}: {block.get('input')}")
            elif kind == "tool_result":
                result = block.get("content")
                text = result if isinstance(result, str) else "[non-text result]"
                lines.append(f"Tool result: {text[:MAX_TRANSCRIPT_CHARS_PER_BLOCK]}")
    return "\n".join(lines)


class PlanTool(BaseTool):
    """Delegates planning to a stronger model through the turn's model endpoint."""

    input_model = PlanInput

    def __init__(self, model: str, max_tokens: int = 4096):
        self.model = model
        self.max_tokens = max_tokens

    @property
    def name(self) -> str:
        return "plan"

    @property
    def description(self) -> str:
        return (
            "Escalate to a stronger reasoning model for strategic planning, complex analysis, "
            "or important decisions. Use this when starting a complex research task, "
            "synthesizing findings from multiple sources, or when the user explicitly asks you "
            "to plan. Returns a detailed plan you should follow."
        )

    async def execute(self, params: PlanInput, context: ToolContext | None = None) -> ToolResult:
        if context is None or context.llm is None:
            return ToolResult.error("Error: plan tool requires model access.")

        transcript = render_transcript(context.messages)
        prompt = f"Create a plan for the following task:\n\n{params.task}"
        if transcript:
            prompt = f"Recent conversation:\n{transcript}\n\n{prompt}"

        logger.info("Escalating to planner model", model=self.model, conversation=context.identity)
        try:
            response = await context.llm.generate(
                messages=[{"role": "user", "content": prompt}],
                system_prompt=PLAN_SYSTEM_PROMPT,
                model=self.model,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.error("Plan failed", error=str(e))
            return ToolResult.error(f"Plan failed: {e}")

        logger.info(
            "Plan received",
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )
        return ToolResult(content=f"[PLAN]\n\n{response.text}")
