"""
Shell Command Tool - run commands on the host machine.

Commands run through the platform shell with a timeout, a small set of
blocked destructive patterns, and output truncation so results stay within
the model's context.
"""

import asyncio
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from ..config import Settings
from .base import Tool, ToolContext, ToolResult

logger = structlog.get_logger()


@dataclass
class ShellConfig:
    """Configuration for shell command execution."""

    timeout_seconds: int = 30
    max_output_chars: int = 10_000
    workspace_dir: str = "~/.relay-agent/workspace"

    blocked_patterns: list[str] = field(default_factory=lambda: [
        r"rm\s+-rf\s+/(\s|$)",
        r"rm\s+-rf\s+~",
        r"mkfs",
        r"dd\s+if=.*of=/dev/",
        r":\(\)\s*\{\s*:\|:&\s*\};:",
        r"Format-Volume",
    ])


class ShellExecutor:
    """Executes shell commands with safety controls."""

    def __init__(self, config: ShellConfig | None = None):
        self.config = config or ShellConfig()
        self.workspace = Path(self.config.workspace_dir).expanduser()

    def _blocked_reason(self, command: str) -> str | None:
        if not command.strip():
            return "Empty command"
        for pattern in self.config.blocked_patterns:
            if re.search(pattern, command, re.IGNORECASE):
                return "Command contains a blocked pattern"
        return None

    def _truncate_output(self, output: str) -> str:
        limit = self.config.max_output_chars
        if len(output) > limit:
            return output[:limit] + "\n...(truncated)"
        return output

    async def run(self, argv: list[str] | None = None, command: str | None = None) -> tuple[int, str, str]:
        """Run either an argv list or a shell command string.

        Returns:
            Tuple of (return_code, stdout, stderr). Timeouts are reported as
            return code -1 with an explanatory stderr.
        """
        self.workspace.mkdir(parents=True, exist_ok=True)

        if argv is not None:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.workspace),
            )
        else:
            process = await asyncio.create_subprocess_shell(
                command or "",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.workspace),
                env=os.environ.copy(),
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return -1, "", f"Command timed out after {self.config.timeout_seconds} seconds"

        return (
            process.returncode if process.returncode is not None else -1,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def execute(self, command: str) -> ToolResult:
        """Execute a shell command and build the tool result."""
        reason = self._blocked_reason(command)
        if reason:
            logger.warning("Shell command blocked", command=command, reason=reason)
            return ToolResult.error(f"Command blocked: {reason}")

        logger.info("Running shell command", command=command)
        return_code, stdout, stderr = await self.run(command=command)

        if return_code != 0:
            message = stderr or stdout or "Command failed"
            logger.warning("Shell command failed", return_code=return_code, error=message[:200])
            return ToolResult.error(f"Error (exit code {return_code}): {self._truncate_output(message)}")

        output = self._truncate_output(stdout or stderr or "(no output)")
        logger.info("Shell command finished", output_chars=len(output))
        return ToolResult(content=output)


class ShellInput(BaseModel):
    command: str = Field(description="The shell command to execute.")


class OpenPathInput(BaseModel):
    path: str = Field(description="Absolute path to the file or directory to open.")


def _open_argv(path: str) -> list[str]:
    if sys.platform == "win32":
        return ["cmd", "/c", "start", "", path]
    if sys.platform == "darwin":
        return ["open", path]
    return ["xdg-open", path]


def create_shell_tools(settings: Settings | None = None) -> list[Tool]:
    """Create shell-related tools."""
    config = ShellConfig()
    if settings is not None:
        config.timeout_seconds = settings.tool_timeout_seconds
        config.workspace_dir = settings.workspace_dir
    executor = ShellExecutor(config)

    async def shell_handler(params: ShellInput, context: ToolContext | None) -> ToolResult:
        return await executor.execute(params.command)

    async def open_path_handler(params: OpenPathInput, context: ToolContext | None) -> ToolResult:
        target = Path(params.path).expanduser()
        if not target.exists():
            return ToolResult.error(f"Failed to open path: {params.path} does not exist")

        return_code, _, stderr = await executor.run(argv=_open_argv(str(target)))
        if return_code != 0:
            return ToolResult.error(f"Failed to open path: {stderr or f'exit code {return_code}'}")
        return ToolResult(content=f"Opened: {target}")

    shell = Tool(
        name="shell",
        description=(
            "Run a shell command on the host machine and return its output. Use this for "
            "file operations, system commands, window management, and anything else the shell can do."
        ),
        input_model=ShellInput,
        handler=shell_handler,
    )

    open_path = Tool(
        name="open_path",
        description=(
            "Open a file or directory using the default application. Directories open in the "
            "file manager. Files open with their associated program."
        ),
        input_model=OpenPathInput,
        handler=open_path_handler,
    )

    return [shell, open_path]
