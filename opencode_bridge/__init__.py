"""Chat bridge between Telegram and OpenCode agent sessions."""
__version__ = "0.1.0"
