"""
Telegram bot implementation.
"""

from typing import TYPE_CHECKING, Any

import structlog
from telegram import Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest
from telegram.ext import Application

from ..channels import BaseChannel
from ..config import Settings, get_settings

if TYPE_CHECKING:
    from ..agent import TurnDispatcher
    from ..memory import ConversationStore

logger = structlog.get_logger()

MAX_MESSAGE_LENGTH = 4000


def split_message(text: str, max_len: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a long message into chunks, trying to break at newlines."""
    if len(text) <= max_len:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_len:
            chunks.append(text)
            break
        split_at = text.rfind("\n", 0, max_len)
        if split_at < max_len // 2:
            split_at = max_len
        chunks.append(text[:split_at])
        text = text[split_at:].lstrip("\n")

    return chunks


class TelegramChannel(BaseChannel):
    """Telegram transport: receives updates and delivers replies by chat id.

    The dispatcher and store are attached after construction because the
    dispatcher itself needs the channel to reply through.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.application: Application | None = None
        self.dispatcher: "TurnDispatcher | None" = None
        self.store: "ConversationStore | None" = None
        self._connected = False

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def attach(self, dispatcher: "TurnDispatcher", store: "ConversationStore") -> None:
        self.dispatcher = dispatcher
        self.store = store

    async def initialize(self) -> None:
        """Initialize the bot application."""
        if not self.settings.telegram_bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required")

        self.application = (
            Application.builder()
            .token(self.settings.telegram_bot_token)
            .concurrent_updates(True)
            .build()
        )

        from .handlers import setup_handlers
        setup_handlers(self.application, self)

        await self.application.initialize()
        logger.info("Telegram bot initialized")

    async def connect(self) -> None:
        """Start receiving updates, by webhook if configured, otherwise polling."""
        if self.application is None:
            await self.initialize()

        await self.application.start()  # type: ignore
        if self.settings.telegram_webhook_url:
            await self.set_webhook(self.settings.telegram_webhook_url)
        else:
            await self.application.updater.start_polling(drop_pending_updates=True)  # type: ignore
            logger.info("Telegram bot started polling")
        self._connected = True

    async def disconnect(self) -> None:
        """Stop the bot."""
        if self.application:
            if self.application.updater and self.application.updater.running:
                await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()
            logger.info("Telegram bot stopped")
        self._connected = False

    async def set_webhook(self, webhook_url: str) -> None:
        """Set the webhook URL for receiving updates."""
        if self.application is None:
            await self.initialize()

        await self.application.bot.set_webhook(  # type: ignore
            url=webhook_url,
            secret_token=self.settings.telegram_webhook_secret or None,
        )
        logger.info("Webhook set", url=webhook_url)

    async def process_update(self, update_data: dict[str, Any]) -> None:
        """Process an incoming webhook update."""
        if self.application is None:
            raise RuntimeError("Bot not initialized")

        update = Update.de_json(update_data, self.application.bot)
        await self.application.process_update(update)

    def _require_application(self) -> Application:
        if self.application is None:
            raise RuntimeError("Bot not initialized")
        return self.application

    async def send_text(self, identity: str, text: str) -> None:
        """Send text, split into Telegram-sized chunks.

        A chunk Telegram cannot parse as Markdown is re-sent as plain text.
        """
        bot = self._require_application().bot
        for chunk in split_message(text):
            try:
                await bot.send_message(chat_id=identity, text=chunk, parse_mode=ParseMode.MARKDOWN)
            except BadRequest as e:
                logger.debug("Markdown rejected, sending plain text", conversation=identity, error=str(e))
                await bot.send_message(chat_id=identity, text=chunk)

    async def send_image(self, identity: str, data: bytes, caption: str = "") -> None:
        bot = self._require_application().bot
        await bot.send_photo(chat_id=identity, photo=data, caption=caption or None)

    async def send_typing_indicator(self, identity: str) -> None:
        bot = self._require_application().bot
        await bot.send_chat_action(chat_id=identity, action=ChatAction.TYPING)
