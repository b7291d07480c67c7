"""
File Operations Tool - read and write files for research work.

Relative paths resolve against the workspace directory. Absolute paths are
accepted, except for a few credential locations that are always refused.
"""

from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from .base import Tool, ToolContext, ToolResult

logger = structlog.get_logger()

MAX_FILE_READ_LENGTH = 50_000

BLOCKED_PATH_PARTS = {".ssh", ".gnupg", ".aws", ".gcloud", "credentials"}


class FileManager:
    """File operations rooted at a workspace directory."""

    def __init__(self, workspace_dir: str | Path):
        self.workspace_dir = Path(workspace_dir).expanduser().resolve()

    def resolve(self, path: str) -> Path:
        """Resolve a path relative to the workspace.

        Raises:
            PermissionError: If the path points into a blocked location.
        """
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = self.workspace_dir / p
        resolved = p.resolve()

        lowered = {part.lower() for part in resolved.parts}
        if lowered & BLOCKED_PATH_PARTS:
            logger.warning("Blocked path", path=str(resolved))
            raise PermissionError(f"Access denied: {path}")
        return resolved

    def read_file(self, path: str, max_length: int = MAX_FILE_READ_LENGTH) -> str:
        """Read a file, truncating long content."""
        file_path = self.resolve(path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        if not file_path.is_file():
            raise IsADirectoryError(f"Path is a directory: {file_path}")

        content = file_path.read_text(encoding="utf-8", errors="replace")
        if len(content) > max_length:
            return content[:max_length] + f"\n\n...(truncated at {max_length} chars, total {len(content)})"
        return content or "(empty file)"

    def write_file(self, path: str, content: str, append: bool = False) -> str:
        """Write content to a file, creating parent directories."""
        file_path = self.resolve(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        mode = "a" if append else "w"
        with open(file_path, mode, encoding="utf-8") as f:
            f.write(content)

        action = "appended" if append else "written"
        return f"File {action}: {file_path} ({len(content)} chars)"


class ReadFileInput(BaseModel):
    path: str = Field(description="File path (relative to the workspace, or absolute).")
    max_length: int = Field(
        default=MAX_FILE_READ_LENGTH,
        gt=0,
        description=f"Max characters to return (default {MAX_FILE_READ_LENGTH}).",
    )


class WriteFileInput(BaseModel):
    path: str = Field(description="File path (relative to the workspace, or absolute).")
    content: str = Field(description="The content to write.")
    append: bool = Field(default=False, description="If true, append instead of overwrite.")


def create_file_tools(workspace_dir: str | Path) -> list[Tool]:
    """Create file operation tools."""
    manager = FileManager(workspace_dir)

    async def read_file_handler(params: ReadFileInput, context: ToolContext | None) -> ToolResult:
        logger.info("Reading file", path=params.path)
        try:
            return ToolResult(content=manager.read_file(params.path, params.max_length))
        except OSError as e:
            return ToolResult.error(f"Error reading file: {e}")

    async def write_file_handler(params: WriteFileInput, context: ToolContext | None) -> ToolResult:
        logger.info("Writing file", path=params.path, append=params.append)
        try:
            return ToolResult(content=manager.write_file(params.path, params.content, params.append))
        except OSError as e:
            return ToolResult.error(f"Error writing file: {e}")

    read_file = Tool(
        name="read_file",
        description=(
            "Read a file. Paths are relative to the workspace unless absolute. Use to review "
            "research notes, read papers, or check existing work."
        ),
        input_model=ReadFileInput,
        handler=read_file_handler,
    )

    write_file = Tool(
        name="write_file",
        description=(
            "Write content to a file, creating directories as needed. Paths are relative to the "
            "workspace unless absolute. Use to save research notes and findings."
        ),
        input_model=WriteFileInput,
        handler=write_file_handler,
    )

    return [read_file, write_file]
