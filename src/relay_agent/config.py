"""
Configuration management for relay-agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = """You are a collaborative research assistant reached through a chat app.
Keep responses concise and conversational: this is a chat, not an essay.
Use short paragraphs and light formatting.
Be technical when appropriate. If you don't know something, say so honestly.

You can act on the host machine through tools: take screenshots, run shell commands,
open files and folders, read and write files in the workspace, search the web,
read web pages, and ask a stronger model for a plan on complex tasks.
Explain what you are about to do before running commands that change things."""


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Telegram
    telegram_bot_token: str = Field(default="", description="Telegram Bot API token")
    telegram_webhook_url: str = Field(default="", description="Public URL for webhook")
    telegram_webhook_secret: str = Field(default="", description="Webhook secret for validation")
    allowed_users: str = Field(default="", description="Comma-separated Telegram user IDs or usernames")

    # Model endpoint
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    default_model: str = "claude-haiku-4-5-20251001"
    planner_model: str = Field(
        default="claude-opus-4-1-20250805",
        description="Stronger model used by the plan tool",
    )
    max_tokens: int = 1024
    planner_max_tokens: int = 4096
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Conversation store
    memory_file: str = Field(
        default="./data/conversations.json",
        description="JSON snapshot of all conversations",
    )
    max_messages: int = Field(default=30, description="Max messages retained per conversation")
    keep_recent: int = Field(default=10, description="Messages kept verbatim when compacting")
    compact_threshold: int = Field(
        default=60_000,
        description="Character count above which a conversation is compacted",
    )
    summary_chars_per_message: int = 200

    # Agent loop
    max_tool_iterations: int = Field(default=10, description="Model calls allowed per turn")
    overload_cooldown_seconds: float = Field(
        default=5.0,
        description="Wait before retrying after a rate-limit or overload error",
    )
    tool_timeout_seconds: int = 30

    # Tools
    workspace_dir: str = Field(default="~/.relay-agent/workspace", description="Base directory for file tools")
    brave_search_api_key: str = Field(default="", description="Brave Search API key")
    screenshot_command: str = Field(
        default="",
        description="Command that writes a PNG to {path}; platform default when empty",
    )
    enable_shell: bool = True
    enable_screenshot: bool = True
    enable_file_operations: bool = True
    enable_web_search: bool = True
    enable_browser: bool = True
    enable_planner: bool = True

    @field_validator("allowed_users", mode="before")
    @classmethod
    def parse_allowed_users(cls, v: str) -> str:
        return v.strip() if v else ""

    @field_validator("max_messages", "max_tool_iterations", "compact_threshold")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @model_validator(mode="after")
    def check_keep_recent(self) -> "Settings":
        if self.keep_recent < 0 or self.keep_recent >= self.max_messages:
            raise ValueError("keep_recent must be between 0 and max_messages - 1")
        return self

    @property
    def allowed_users_list(self) -> list[str]:
        """Get list of allowed users."""
        if not self.allowed_users:
            return []
        return [u.strip().lstrip("@") for u in self.allowed_users.split(",") if u.strip()]

    def is_user_allowed(self, user_id: int | str, username: str | None = None) -> bool:
        """Single allow-list check. An empty list allows everyone."""
        allowed = self.allowed_users_list
        if not allowed:
            return True
        if str(user_id) in allowed:
            return True
        return bool(username) and username.lstrip("@") in allowed


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
