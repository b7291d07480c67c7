"""
Browser tool for web page reading.
"""

import httpx
import structlog
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from .base import BaseTool, ToolContext, ToolResult

logger = structlog.get_logger()

MAX_CONTENT_LENGTH = 16_000
NAV_TIMEOUT_SECONDS = 30.0


class BrowseInput(BaseModel):
    url: str = Field(description="The URL of the webpage to visit.")


def extract_text(html: str) -> tuple[str, str]:
    """Extract (title, readable text) from an HTML document."""
    soup = BeautifulSoup(html, "html.parser")

    for element in soup(["script", "style", "nav", "footer", "header", "aside", "noscript"]):
        element.decompose()

    title = soup.title.get_text(strip=True) if soup.title else "No title"

    main_content = soup.find("main") or soup.find("article") or soup.find("body") or soup
    text = main_content.get_text(separator="\n", strip=True)
    text = "\n".join(line.strip() for line in text.split("\n") if line.strip())

    if len(text) > MAX_CONTENT_LENGTH:
        text = text[:MAX_CONTENT_LENGTH] + "\n...(truncated)"
    return title, text


class BrowserTool(BaseTool):
    """Tool for browsing web pages."""

    input_model = BrowseInput

    def __init__(self, timeout_seconds: float = NAV_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return "browse_webpage"

    @property
    def description(self) -> str:
        return (
            "Visit a webpage and extract its readable text. Use this to read articles, "
            "documentation, or papers found through web_search."
        )

    async def execute(self, params: BrowseInput, context: ToolContext | None = None) -> ToolResult:
        """Fetch a page and return its title, final URL and text."""
        logger.info("Browsing", url=params.url)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                headers={
                    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
                },
            ) as client:
                response = await client.get(params.url)
                response.raise_for_status()
        except Exception as e:
            logger.error("Browser error", url=params.url, error=str(e))
            return ToolResult.error(f"Failed to browse {params.url}: {e}")

        title, text = extract_text(response.text)
        logger.info("Page read", title=title, chars=len(text))
        return ToolResult(content=f"Title: {title}\nURL: {response.url}\n\n{text}")
