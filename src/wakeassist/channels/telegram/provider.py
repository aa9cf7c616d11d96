"""Telegram channel provider (long-polling)."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog

from wakeassist.channels.base import (
    ChannelHook,
    ChannelState,
    InboundMessage,
    PendingMessageQueue,
)
from wakeassist.channels.commands import (
    COMMANDS,
    CommandId,
    command_token,
    resolve_command,
    unknown_command_reply,
)
from wakeassist.channels.telegram.transport import TelegramTransport
from wakeassist.config import TelegramChannelConfig
from wakeassist.connectivity import ConnectivityProvider
from wakeassist.storage import ChannelCredentials

logger = structlog.get_logger()

CommandHandler = Callable[[CommandId, InboundMessage], Awaitable[None]]
Clock = Callable[[], float]

MSG_UNAUTHORIZED = "⛔ Unauthorized. This device is registered to another user."


class WakeRateLimiter:
    """Single cooldown window for the wake command."""

    def __init__(self, cooldown_s: float, clock: Clock = time.monotonic) -> None:
        self.cooldown_s = cooldown_s
        self.clock = clock
        self._last_accepted: float | None = None

    def is_limited(self) -> bool:
        if self._last_accepted is None:
            return False
        return self.clock() - self._last_accepted < self.cooldown_s

    def remaining_s(self) -> int:
        if not self.is_limited() or self._last_accepted is None:
            return 0
        return int(self.cooldown_s - (self.clock() - self._last_accepted))

    def accept(self) -> None:
        self._last_accepted = self.clock()


class TelegramChannel:
    def __init__(
        self,
        *,
        config: TelegramChannelConfig,
        transport: TelegramTransport,
        connectivity: ConnectivityProvider,
        command_handler: CommandHandler,
        credentials: ChannelCredentials | None = None,
        commands: Mapping[str, CommandId] = COMMANDS,
        clock: Clock = time.monotonic,
    ) -> None:
        self.config = config
        self.transport = transport
        self.connectivity = connectivity
        self.command_handler = command_handler
        self.commands = commands
        self.clock = clock

        self.queue = PendingMessageQueue(config.queue_size)
        self.wake_limiter = WakeRateLimiter(config.wake_cooldown_s, clock)

        self._credentials: ChannelCredentials | None = None
        self._state = ChannelState.UNCONFIGURED
        self._last_update_id = 0
        self._last_poll_at: float | None = None
        self._last_error: str | None = None
        self._bot_username: str | None = None
        self._hooks: dict[ChannelHook, list[Callable[..., Awaitable[None]]]] = {
            hook: [] for hook in ChannelHook
        }

        if credentials is not None:
            self.configure(credentials)

    # Configuration

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def configured(self) -> bool:
        return self._credentials is not None and self._credentials.valid

    @property
    def authorized_user_id(self) -> int | None:
        return self._credentials.authorized_user_id if self._credentials else None

    def configure(self, credentials: ChannelCredentials) -> bool:
        if not credentials.valid:
            logger.warning("channels.telegram.invalid_credentials")
            return False
        self._credentials = credentials
        self.transport.set_token(credentials.bot_token)
        if self._state is ChannelState.UNCONFIGURED:
            self._state = ChannelState.CONNECTING
        logger.info("channels.telegram.configured", user_id=credentials.authorized_user_id)
        return True

    async def clear_credentials(self) -> None:
        self._credentials = None
        self.transport.set_token("")
        self.queue.clear()
        await self._set_state(ChannelState.UNCONFIGURED)
        logger.info("channels.telegram.credentials_cleared")

    # Hooks

    def on(self, hook: ChannelHook, callback: Callable[..., Awaitable[None]]) -> None:
        """Register a callback. UNAUTHORIZED callbacks receive (sender_id, text)."""
        self._hooks[hook].append(callback)

    async def _fire(self, hook: ChannelHook, *args: Any) -> None:
        for callback in self._hooks[hook]:
            try:
                await callback(*args)
            except Exception as exc:
                logger.warning("channels.telegram.hook_failed", hook=hook.value, error=str(exc))

    # Status

    @property
    def state(self) -> ChannelState:
        return self._state

    def is_online(self) -> bool:
        return self._state is ChannelState.ONLINE

    @property
    def last_update_id(self) -> int:
        return self._last_update_id

    @property
    def bot_username(self) -> str | None:
        return self._bot_username

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def status_string(self) -> str:
        if self._state is ChannelState.ONLINE:
            text = f"Online - polling every {int(self.config.poll_interval_s)}s"
            if self._bot_username:
                text += f" (@{self._bot_username})"
            return text
        if self._state is ChannelState.UNCONFIGURED:
            return "No token configured"
        if self._state is ChannelState.CONNECTING:
            return "Connecting..."
        return "Offline"

    async def _set_state(self, state: ChannelState) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        logger.info("channels.telegram.state_changed", previous=previous.value, state=state.value)
        if state is ChannelState.ONLINE:
            await self._fire(ChannelHook.ONLINE)
        elif previous is ChannelState.ONLINE:
            await self._fire(ChannelHook.OFFLINE)

    # Polling

    def poll_due(self) -> bool:
        if self._last_poll_at is None:
            return True
        return self.clock() - self._last_poll_at >= self.config.poll_interval_s

    async def poll(self) -> bool:
        """Run one poll cycle. Returns True when updates were processed."""
        self._last_poll_at = self.clock()

        if not self.configured:
            await self._set_state(ChannelState.UNCONFIGURED)
            return False
        if not self.connectivity.is_connected:
            return False

        outcome = await self.transport.get(
            "getUpdates",
            params={
                "offset": self._last_update_id + 1,
                "limit": self.config.poll_limit,
                "timeout": self.config.poll_timeout_s,
            },
            read_timeout_s=self.config.poll_timeout_s + self.config.http_timeout_s,
        )
        if not outcome.ok or not isinstance(outcome.result, list):
            self._last_error = outcome.error or "malformed result"
            logger.warning("channels.telegram.poll_failed", error=self._last_error)
            await self._set_state(ChannelState.OFFLINE)
            return False

        self._last_error = None
        updates = [item for item in outcome.result if isinstance(item, dict)]
        if not updates:
            await self._set_state(ChannelState.ONLINE)
            return False

        logger.info("channels.telegram.updates_received", count=len(updates))
        await self._set_state(ChannelState.ONLINE)
        for update in updates:
            await self._process_update(update)
        return True

    async def _process_update(self, update: dict[str, Any]) -> None:
        update_id = update.get("update_id")
        if not isinstance(update_id, int) or isinstance(update_id, bool):
            logger.warning("channels.telegram.update_without_id")
            return
        if update_id <= self._last_update_id:
            logger.debug("channels.telegram.update_replayed", update_id=update_id)
            return
        self._last_update_id = update_id

        message = _parse_message(update_id, update.get("message"))
        if message is None:
            return

        if message.sender_id != self.authorized_user_id:
            logger.warning(
                "channels.telegram.message_blocked",
                reason="sender_not_allowed",
                sender_id=message.sender_id,
            )
            await self._fire(ChannelHook.UNAUTHORIZED, message.sender_id, message.text)
            await self.send_message(MSG_UNAUTHORIZED, chat_id=message.sender_id)
            return

        self.queue.push(message)
        await self.dispatch(message)

    async def dispatch(self, message: InboundMessage) -> None:
        token = command_token(message.text)
        if token is None:
            return
        command = resolve_command(token, self.commands)
        if command is None:
            logger.info("channels.telegram.unknown_command", command=token)
            await self.send_message(unknown_command_reply())
            return
        logger.info("channels.telegram.command", command=command.value, update_id=message.update_id)
        await self.command_handler(command, message)

    async def identify(self) -> str | None:
        """Look up the bot's username via getMe."""
        if not self.configured:
            return None
        outcome = await self.transport.get("getMe")
        if not outcome.ok or not isinstance(outcome.result, dict):
            logger.warning("channels.telegram.identify_failed", error=outcome.error)
            return None
        username = outcome.result.get("username")
        if isinstance(username, str) and username.strip():
            self._bot_username = username.strip()
        return self._bot_username

    async def skip_backlog(self) -> bool:
        """Fast-forward past updates that arrived while the device was off."""
        if not self.configured:
            return False
        outcome = await self.transport.get("getUpdates", params={"offset": -1, "limit": 1})
        if not outcome.ok or not isinstance(outcome.result, list):
            logger.warning("channels.telegram.skip_backlog_failed", error=outcome.error)
            return False
        for item in outcome.result:
            update_id = item.get("update_id") if isinstance(item, dict) else None
            if isinstance(update_id, int) and update_id > self._last_update_id:
                self._last_update_id = update_id
        logger.info("channels.telegram.backlog_skipped", last_update_id=self._last_update_id)
        return True

    # Outbound

    async def send_message(self, text: str, chat_id: int | None = None) -> bool:
        """Send one message. Best effort: failures are logged, never retried."""
        if not self.configured:
            logger.debug("channels.telegram.send_skipped", reason="not_configured")
            return False
        target = chat_id if chat_id is not None else self.authorized_user_id
        payload: dict[str, Any] = {"chat_id": target, "text": text}
        if self.config.parse_mode:
            payload["parse_mode"] = self.config.parse_mode

        outcome = await self.transport.post("sendMessage", payload)
        if not outcome.ok:
            logger.warning(
                "channels.telegram.send_failed",
                chat_id=target,
                status_code=outcome.status_code,
                error=outcome.error,
            )
            return False
        return True

    async def notify(self, text: str) -> None:
        """Operator notification; dropped unless the channel is online."""
        if not self.is_online():
            logger.info("channels.telegram.notify_dropped", state=self._state.value, text=text)
            return
        await self.send_message(text)

    async def aclose(self) -> None:
        await self.transport.aclose()


def _parse_message(update_id: int, raw: Any) -> InboundMessage | None:
    if not isinstance(raw, dict):
        return None
    chat = raw.get("chat")
    chat_id = chat.get("id") if isinstance(chat, dict) else None
    if not isinstance(chat_id, int):
        return None
    sender = raw.get("from")
    username = sender.get("username") if isinstance(sender, dict) else None
    message_id = raw.get("message_id")
    sent_at = raw.get("date")
    text = raw.get("text")
    return InboundMessage(
        sender_id=chat_id,
        update_id=update_id,
        text=text if isinstance(text, str) else "",
        username=username if isinstance(username, str) and username else "unknown",
        message_id=message_id if isinstance(message_id, int) else None,
        sent_at=sent_at if isinstance(sent_at, int) else None,
    )
