"""
Command-line interface for relay-agent.
"""

import argparse
import logging
import sys
from pathlib import Path

import structlog
import uvicorn

from .config import Settings, get_settings


def configure_logging(level: str = "INFO") -> None:
    """Route structlog through stdlib logging at the configured level."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="relay-agent",
        description="relay-agent - a research assistant you talk to over Telegram",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the bot server")
    serve_parser.add_argument("--host", default=None, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    subparsers.add_parser("init", help="Create a .env template and the data directory")

    clear_parser = subparsers.add_parser("clear", help="Clear stored conversations")
    clear_parser.add_argument("identity", nargs="?", help="Conversation to clear (all when omitted)")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "init":
        init_bot()
        return

    settings = get_settings()
    configure_logging(settings.log_level)

    if args.command == "serve":
        run_server(settings, args.host, args.port, args.reload)
    elif args.command == "config":
        ok = show_config(settings, args.check)
        if not ok:
            sys.exit(1)
    elif args.command == "clear":
        clear_conversations(settings, args.identity)


def run_server(settings: Settings, host: str | None, port: int | None, reload: bool) -> None:
    """Run the FastAPI server."""
    host = host or settings.host
    port = port or settings.port
    logger.info("Starting relay-agent server", host=host, port=port)

    uvicorn.run(
        "relay_agent.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        log_level=settings.log_level.lower(),
    )


def check_config(settings: Settings) -> tuple[list[str], list[str]]:
    """Return (errors, warnings) for a configuration."""
    errors = []
    warnings = []

    if not settings.telegram_bot_token:
        errors.append("TELEGRAM_BOT_TOKEN is required")
    if not settings.anthropic_api_key:
        errors.append("ANTHROPIC_API_KEY is required")
    if not settings.allowed_users_list:
        warnings.append("ALLOWED_USERS is empty - anyone who finds the bot can use it")
    if settings.enable_shell:
        warnings.append("Shell tool is enabled - the model can run commands on this machine")
    if settings.telegram_webhook_url and not settings.telegram_webhook_secret:
        warnings.append("Webhook mode without TELEGRAM_WEBHOOK_SECRET")

    return errors, warnings


def show_config(settings: Settings, check: bool) -> bool:
    """Show current configuration. Returns False when the check finds errors."""

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== relay-agent Configuration ===\n")

    print("Server:")
    print(f"  Host: {settings.host}")
    print(f"  Port: {settings.port}")
    print(f"  Log level: {settings.log_level}")

    print("\nTelegram:")
    print(f"  Bot Token: {mask(settings.telegram_bot_token)}")
    print(f"  Webhook URL: {settings.telegram_webhook_url or '(polling mode)'}")
    print(f"  Allowed Users: {settings.allowed_users or '(everyone)'}")

    print("\nModel:")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  Default Model: {settings.default_model}")
    print(f"  Planner Model: {settings.planner_model}")
    print(f"  Max tool iterations: {settings.max_tool_iterations}")

    print("\nConversations:")
    print(f"  File: {settings.memory_file}")
    print(f"  Max messages: {settings.max_messages}")
    print(f"  Keep recent on compaction: {settings.keep_recent}")
    print(f"  Compaction threshold: {settings.compact_threshold} chars")

    print("\nTools:")
    print(f"  Shell: {settings.enable_shell}")
    print(f"  Screenshot: {settings.enable_screenshot}")
    print(f"  File Operations: {settings.enable_file_operations}")
    print(f"  Web Search: {settings.enable_web_search}")
    print(f"  Browser: {settings.enable_browser}")
    print(f"  Planner: {settings.enable_planner}")
    print(f"  Workspace: {settings.workspace_dir}")

    if not check:
        return True

    print("\n=== Configuration Check ===\n")
    errors, warnings = check_config(settings)

    if errors:
        print("Errors:")
        for e in errors:
            print(f"   - {e}")

    if warnings:
        print("Warnings:")
        for w in warnings:
            print(f"   - {w}")

    if not errors and not warnings:
        print("Configuration looks good!")
    elif not errors:
        print("\nConfiguration is valid (with warnings)")
    else:
        print("\nConfiguration has errors - fix them before starting")

    return not errors


def clear_conversations(settings: Settings, identity: str | None) -> None:
    """Clear one stored conversation, or all of them."""
    from .memory import ConversationStore, JsonFileStorage

    store = ConversationStore(
        storage=JsonFileStorage(settings.memory_file),
        max_messages=settings.max_messages,
        keep_recent=settings.keep_recent,
    )
    if identity:
        store.clear(identity)
        print(f"Cleared conversation {identity}")
    else:
        store.clear_all()
        print("Cleared all conversations")


ENV_TEMPLATE = """# relay-agent Configuration

# === REQUIRED ===

# Telegram Bot Token (get from @BotFather)
TELEGRAM_BOT_TOKEN=

# Anthropic API key
ANTHROPIC_API_KEY=

# === OPTIONAL ===

# Who may talk to the bot (comma separated ids or usernames; empty = everyone)
# ALLOWED_USERS=123456789,yourname

# Models
# DEFAULT_MODEL=claude-haiku-4-5-20251001
# PLANNER_MODEL=claude-opus-4-1-20250805

# Webhook (leave empty for polling mode)
# TELEGRAM_WEBHOOK_URL=https://your-domain.com/webhook/telegram
# TELEGRAM_WEBHOOK_SECRET=your-secret

# Conversations
MEMORY_FILE=./data/conversations.json
# MAX_MESSAGES=30
# KEEP_RECENT=10
# COMPACT_THRESHOLD=60000

# Tools
# WORKSPACE_DIR=~/.relay-agent/workspace
# BRAVE_SEARCH_API_KEY=
# SCREENSHOT_COMMAND=
# ENABLE_SHELL=true

# Server
HOST=0.0.0.0
PORT=8080
LOG_LEVEL=INFO
"""


def init_bot(root: Path | None = None) -> None:
    """Create a .env template and the data directory."""
    root = root or Path(".")
    env_file = root / ".env"
    data_dir = root / "data"

    data_dir.mkdir(parents=True, exist_ok=True)

    if not env_file.exists():
        env_file.write_text(ENV_TEMPLATE)
        print(f"Created {env_file}")
    else:
        print(f"{env_file} already exists")

    print(f"Created {data_dir}")
    print("\n=== Next Steps ===")
    print("1. Edit .env and add your TELEGRAM_BOT_TOKEN")
    print("2. Add your ANTHROPIC_API_KEY")
    print("3. Run: relay-agent serve")
    print("4. Talk to your bot on Telegram!")


if __name__ == "__main__":
    main()
