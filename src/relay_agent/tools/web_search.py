"""
Web search tool using Brave Search or DuckDuckGo.
"""

from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, field_validator

from .base import BaseTool, ToolContext, ToolResult

logger = structlog.get_logger()

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
MAX_SEARCH_RESULTS = 8


class WebSearchInput(BaseModel):
    query: str = Field(description="The search query. Use specific academic terms when searching for papers.")
    count: int = Field(
        default=MAX_SEARCH_RESULTS,
        description=f"Number of results (1-20, default {MAX_SEARCH_RESULTS}).",
    )

    @field_validator("count")
    @classmethod
    def clamp_count(cls, v: int) -> int:
        return min(max(v, 1), 20)


def _format_results(results: list[dict[str, str]]) -> str:
    return "\n\n".join(
        f"{i}. {r['title']}\n   {r['url']}\n   {r['description']}"
        for i, r in enumerate(results, start=1)
    )


class WebSearchTool(BaseTool):
    """Tool for searching the web."""

    input_model = WebSearchInput

    def __init__(self, brave_api_key: str = ""):
        self.brave_api_key = brave_api_key

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return (
            "Search the web. Returns titles, URLs, and snippets for top results. Use for "
            "finding papers, articles, documentation, and any web research."
        )

    async def execute(self, params: WebSearchInput, context: ToolContext | None = None) -> ToolResult:
        """Execute web search."""
        logger.info("Web search", query=params.query, count=params.count)
        try:
            if self.brave_api_key:
                results = await self._brave_search(params.query, params.count)
            else:
                results = self._duckduckgo_search(params.query, params.count)
        except Exception as e:
            logger.error("Web search error", error=str(e))
            return ToolResult.error(f"Search failed: {e}")

        if not results:
            return ToolResult(content=f'No results found for: "{params.query}"')

        logger.info("Web search results", count=len(results))
        return ToolResult(content=_format_results(results))

    async def _brave_search(self, query: str, count: int) -> list[dict[str, str]]:
        """Search using the Brave Search API."""
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.get(
                BRAVE_SEARCH_URL,
                params={"q": query, "count": count},
                headers={
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip",
                    "X-Subscription-Token": self.brave_api_key,
                },
            )
            response.raise_for_status()
            data: dict[str, Any] = response.json()

        return [
            {
                "title": r.get("title", ""),
                "url": r.get("url", ""),
                "description": r.get("description", ""),
            }
            for r in (data.get("web") or {}).get("results", [])[:count]
        ]

    def _duckduckgo_search(self, query: str, count: int) -> list[dict[str, str]]:
        """Search using DuckDuckGo."""
        from duckduckgo_search import DDGS

        with DDGS() as ddgs:
            return [
                {"title": r["title"], "url": r["href"], "description": r["body"][:500]}
                for r in ddgs.text(query, max_results=count)
            ]
