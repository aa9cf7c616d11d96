"""Telegram Bot API channel."""

from wakeassist.channels.telegram.provider import TelegramChannel, WakeRateLimiter
from wakeassist.channels.telegram.transport import TelegramTransport, TransportResult

__all__ = ["TelegramChannel", "TelegramTransport", "TransportResult", "WakeRateLimiter"]
