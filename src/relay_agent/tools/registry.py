"""
Tool registry for managing available tools.

The registry is built once at the process boundary
(``create_tool_registry``) and injected into the agent loop, so tests can
supply stub capabilities.
"""

from typing import Any, Union

import structlog
from pydantic import ValidationError

from ..config import Settings
from ..llm.base import ToolDefinition
from .base import BaseTool, Tool, ToolContext, ToolResult, input_schema

logger = structlog.get_logger()

AnyTool = Union[BaseTool, Tool]


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "input"
        problems.append(f"{location}: {item['msg']}")
    return "; ".join(problems)


class ToolRegistry:
    """Registry for managing tools."""

    def __init__(self, tools: list[AnyTool] | None = None):
        self._tools: dict[str, AnyTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: AnyTool) -> None:
        """Register a tool."""
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def get(self, name: str) -> AnyTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get the capability manifest advertised to the model."""
        return [
            ToolDefinition(
                name=tool.name,
                description=tool.description,
                parameters=input_schema(tool.input_model),
            )
            for tool in self._tools.values()
        ]

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolContext | None = None,
    ) -> ToolResult:
        """Execute a tool by name. Never raises."""
        tool = self.get(name)
        if tool is None:
            logger.warning("Unknown tool requested", tool_name=name)
            return ToolResult.error(f"Unknown tool: {name}")

        try:
            params = tool.input_model.model_validate(arguments or {})
        except ValidationError as e:
            logger.warning("Tool input rejected", tool_name=name, error=str(e))
            return ToolResult.error(f"Invalid input for {name}: {_format_validation_error(e)}")

        try:
            logger.info("Executing tool", tool_name=name, arguments=arguments)
            result = await tool.execute(params, context)
            logger.info("Tool executed", tool_name=name, is_error=result.is_error)
            return result
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e))
            return ToolResult.error(f"Tool {name} failed: {e}")


def create_tool_registry(settings: Settings | None = None) -> ToolRegistry:
    """Build the registry of default tools based on settings."""
    if settings is None:
        from ..config import get_settings
        settings = get_settings()

    registry = ToolRegistry()

    if settings.enable_screenshot:
        from .screenshot_tool import ScreenshotTool
        registry.register(ScreenshotTool(
            command=settings.screenshot_command,
            timeout_seconds=settings.tool_timeout_seconds,
        ))

    if settings.enable_shell:
        from .shell_tool import create_shell_tools
        for tool in create_shell_tools(settings):
            registry.register(tool)

    if settings.enable_file_operations:
        from .file_tool import create_file_tools
        for tool in create_file_tools(settings.workspace_dir):
            registry.register(tool)

    if settings.enable_web_search:
        from .web_search import WebSearchTool
        registry.register(WebSearchTool(brave_api_key=settings.brave_search_api_key))

    if settings.enable_browser:
        from .browser import BrowserTool
        registry.register(BrowserTool())

    if settings.enable_planner:
        from .planner import PlanTool
        registry.register(PlanTool(
            model=settings.planner_model,
            max_tokens=settings.planner_max_tokens,
        ))

    logger.info("Tool registry ready", tools=registry.list_tools())
    return registry
