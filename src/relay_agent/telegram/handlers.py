"""
Telegram message handlers.

Commands: /start, /help, /clear, /status. Plain text in a private chat is
handed to the turn dispatcher keyed by chat id.
"""

from typing import TYPE_CHECKING

import structlog
from telegram import Update
from telegram.constants import ChatType, ParseMode
from telegram.error import BadRequest
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .bot import split_message

if TYPE_CHECKING:
    from .bot import TelegramChannel

logger = structlog.get_logger()

HELP_TEXT = (
    "**Commands:**\n"
    "`/start` - Introduction\n"
    "`/help` - Show this help\n"
    "`/clear` - Clear conversation history\n"
    "`/status` - System status\n\n"
    "**What I can do:**\n"
    "- Search the web and read pages\n"
    "- Read and write files in my workspace\n"
    "- Run shell commands and open files\n"
    "- Take screenshots of the host screen\n"
    "- Plan larger research tasks"
)


async def _safe_reply(message, text: str) -> None:
    """Reply with fallback to plain text if Markdown parsing fails."""
    for chunk in split_message(text):
        try:
            await message.reply_text(chunk, parse_mode=ParseMode.MARKDOWN)
        except BadRequest:
            await message.reply_text(chunk)


def _is_allowed(channel: "TelegramChannel", update: Update) -> bool:
    user = update.effective_user
    if user is None:
        return False
    allowed = channel.settings.is_user_allowed(user.id, user.username)
    if not allowed:
        logger.warning("Ignoring message from user not on allow-list", user_id=user.id, username=user.username)
    return allowed


def _is_private(update: Update) -> bool:
    return update.effective_chat is not None and update.effective_chat.type == ChatType.PRIVATE


def setup_handlers(app: Application, channel: "TelegramChannel") -> None:
    """Set up all message handlers."""

    async def start_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /start command."""
        if not update.message or not _is_allowed(channel, update):
            return
        await _safe_reply(
            update.message,
            "Hello! I'm your research assistant, running on your own machine.\n\n"
            + HELP_TEXT
            + "\n\nJust send me a message to get started!",
        )

    async def help_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /help command."""
        if not update.message or not _is_allowed(channel, update):
            return
        await _safe_reply(update.message, HELP_TEXT)

    async def clear_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /clear command."""
        if not update.message or not update.effective_chat or not _is_allowed(channel, update):
            return
        if channel.dispatcher is not None:
            await channel.dispatcher.clear(str(update.effective_chat.id))
        await _safe_reply(update.message, "Conversation cleared! Send a new message to start fresh.")

    async def status_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /status command."""
        if not update.message or not update.effective_chat or not _is_allowed(channel, update):
            return

        settings = channel.settings
        features = []
        if settings.enable_web_search:
            features.append("Web Search")
        if settings.enable_browser:
            features.append("Browser")
        if settings.enable_shell:
            features.append("Shell")
        if settings.enable_screenshot:
            features.append("Screenshot")
        if settings.enable_file_operations:
            features.append("File Operations")
        if settings.enable_planner:
            features.append("Planner")

        stored = 0
        if channel.store is not None:
            stored = len(channel.store.history(str(update.effective_chat.id)))

        await _safe_reply(
            update.message,
            "**System Status**\n\n"
            f"**Model:** `{settings.default_model}`\n"
            f"**Planner:** `{settings.planner_model}`\n"
            f"**Features:** {', '.join(features) if features else 'None'}\n"
            f"**Context Window:** {stored}/{settings.max_messages} messages\n",
        )

    async def message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle regular text messages."""
        if not update.message or not update.message.text or not update.effective_chat:
            return
        if not _is_private(update):
            logger.debug("Ignoring non-private chat", chat_id=update.effective_chat.id)
            return
        if not _is_allowed(channel, update):
            return
        if channel.dispatcher is None:
            logger.error("Message received before dispatcher was attached")
            return

        identity = str(update.effective_chat.id)
        try:
            await channel.send_typing_indicator(identity)
        except Exception as e:
            logger.debug("Typing indicator failed", error=str(e))

        await channel.dispatcher.handle(identity, update.message.text)

    app.add_handler(CommandHandler("start", start_handler))
    app.add_handler(CommandHandler("help", help_handler))
    app.add_handler(CommandHandler("clear", clear_handler))
    app.add_handler(CommandHandler("status", status_handler))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, message_handler))

    logger.info("Telegram handlers set up")
