"""Telegram transport."""

from .bot import TelegramBot
from .formatter import MAX_MESSAGE_LENGTH, split_message

__all__ = ["MAX_MESSAGE_LENGTH", "TelegramBot", "split_message"]
