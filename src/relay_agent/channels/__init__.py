"""
Channel abstraction layer.

Telegram is the shipped channel; other platforms implement BaseChannel.
"""

from .base import BaseChannel

__all__ = ["BaseChannel"]
