"""Core channel abstractions."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class InboundMessage:
    """Normalized inbound message from the bot API."""

    sender_id: int
    update_id: int
    text: str
    username: str = "unknown"
    message_id: int | None = None
    sent_at: int | None = None


class ChannelState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONNECTING = "connecting"
    ONLINE = "online"
    OFFLINE = "offline"


class ChannelHook(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNAUTHORIZED = "unauthorized"


class PendingMessageQueue:
    """Bounded FIFO of inbound messages that evicts the oldest entry when full."""

    def __init__(self, capacity: int = 10) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items: deque[InboundMessage] = deque()
        self.dropped = 0

    def push(self, message: InboundMessage) -> InboundMessage | None:
        """Append a message; returns the evicted message if the queue was full."""
        evicted = None
        if len(self._items) >= self.capacity:
            evicted = self._items.popleft()
            self.dropped += 1
            logger.warning(
                "channels.queue.dropped_oldest",
                update_id=evicted.update_id,
                capacity=self.capacity,
            )
        self._items.append(message)
        return evicted

    def pop(self) -> InboundMessage | None:
        if not self._items:
            return None
        return self._items.popleft()

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[InboundMessage]:
        return iter(list(self._items))
