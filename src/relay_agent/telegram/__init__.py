"""
Telegram channel.
"""

from .bot import TelegramChannel, split_message

__all__ = ["TelegramChannel", "split_message"]
