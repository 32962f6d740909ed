"""Chat platform adapters."""
from opencode_bridge.adapters.base import ChatAdapter
from opencode_bridge.adapters.telegram import TelegramAdapter, TelegramBotApi

__all__ = ["ChatAdapter", "TelegramAdapter", "TelegramBotApi"]
