"""WakeAssist — remote escalating alarm over a Telegram bot."""

__version__ = "1.0.0"
