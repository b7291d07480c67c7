"""
Tools module for agent capabilities.
"""

from .base import BaseTool, NoInput, Tool, ToolContext, ToolResult
from .registry import ToolRegistry, create_tool_registry
from .browser import BrowserTool
from .planner import PlanTool
from .screenshot_tool import ScreenshotTool
from .web_search import WebSearchTool

__all__ = [
    "BaseTool",
    "NoInput",
    "Tool",
    "ToolContext",
    "ToolResult",
    "ToolRegistry",
    "create_tool_registry",
    "BrowserTool",
    "PlanTool",
    "ScreenshotTool",
    "WebSearchTool",
]
