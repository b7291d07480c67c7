"""
Screenshot tool - capture the whole screen as a PNG.

The capture itself is delegated to an external command that writes a PNG
to a path. The image goes back to the model as an image block and to the
chat as an attachment.
"""

import asyncio
import base64
import shlex
import sys
import tempfile
from pathlib import Path

import structlog

from .base import BaseTool, NoInput, ToolContext, ToolResult

logger = structlog.get_logger()

# Captures the whole virtual desktop (all monitors), DPI aware.
WINDOWS_SCREENSHOT_SCRIPT = (
    "Add-Type -TypeDefinition 'using System.Runtime.InteropServices; public class DPI "
    "{ [DllImport(\"user32.dll\")] public static extern bool SetProcessDPIAware(); }'; "
    "[void][DPI]::SetProcessDPIAware(); "
    "Add-Type -AssemblyName System.Windows.Forms,System.Drawing; "
    "$vs = [System.Windows.Forms.SystemInformation]::VirtualScreen; "
    "$bitmap = New-Object System.Drawing.Bitmap($vs.Width, $vs.Height); "
    "$g = [System.Drawing.Graphics]::FromImage($bitmap); "
    "$g.CopyFromScreen($vs.Left, $vs.Top, 0, 0, $vs.Size); "
    "$bitmap.Save('{path}', [System.Drawing.Imaging.ImageFormat]::Png); "
    "$g.Dispose(); $bitmap.Dispose()"
)


def default_screenshot_argv(path: str) -> list[str]:
    """Platform default capture command writing a PNG to ``path``."""
    if sys.platform == "win32":
        script = WINDOWS_SCREENSHOT_SCRIPT.replace("{path}", path)
        return ["powershell", "-NoProfile", "-NonInteractive", "-Command", script]
    if sys.platform == "darwin":
        return ["screencapture", "-x", path]
    return ["scrot", "--overwrite", path]


class ScreenshotTool(BaseTool):
    """Tool for capturing the screen."""

    input_model = NoInput

    def __init__(self, command: str = "", timeout_seconds: int = 30):
        self.command = command
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return "screenshot"

    @property
    def description(self) -> str:
        return (
            "Take a screenshot of the entire screen. Returns the screenshot as an image "
            "so you can see what is currently displayed."
        )

    def _argv(self, path: str) -> list[str]:
        if self.command:
            return [part.replace("{path}", path) for part in shlex.split(self.command)]
        return default_screenshot_argv(path)

    async def capture(self) -> bytes:
        """Run the capture command and return the PNG bytes."""
        with tempfile.TemporaryDirectory(prefix="relay-agent-") as tmp:
            path = str(Path(tmp) / "screenshot.png")
            process = await asyncio.create_subprocess_exec(
                *self._argv(path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise TimeoutError(f"capture timed out after {self.timeout_seconds} seconds")

            if process.returncode != 0:
                raise RuntimeError(stderr.decode("utf-8", errors="replace").strip() or "capture command failed")

            return Path(path).read_bytes()

    async def execute(self, params: NoInput, context: ToolContext | None = None) -> ToolResult:
        """Capture the screen."""
        try:
            data = await self.capture()
        except Exception as e:
            logger.error("Screenshot failed", error=str(e))
            return ToolResult.error(f"Screenshot failed: {e}")

        logger.info("Screenshot captured", bytes=len(data))
        return ToolResult(
            content=[
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": "image/png",
                        "data": base64.b64encode(data).decode("ascii"),
                    },
                }
            ],
            attachment=data,
        )
