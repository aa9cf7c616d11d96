"""Device runtime — the single cooperative task that drives the appliance."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from wakeassist import __version__
from wakeassist.alarm.controller import AlarmController, Clock
from wakeassist.alarm.models import StopCause
from wakeassist.channels.base import ChannelHook, InboundMessage
from wakeassist.channels.commands import HELP_LINES, CommandId
from wakeassist.channels.telegram.provider import TelegramChannel
from wakeassist.channels.telegram.transport import TelegramTransport
from wakeassist.config import WakeAssistConfig
from wakeassist.connectivity import ConnectivityProvider, LinkEvent
from wakeassist.hardware.base import Button, HardwareInterface, Led, LedPattern
from wakeassist.storage import (
    ChannelCredentials,
    CredentialStore,
    InvalidCredentialsError,
    clear_credentials,
    load_credentials,
    make_credentials,
)

logger = structlog.get_logger()

MSG_DEVICE_ONLINE = "🟢 WakeAssist connected! Send /wake to test."
MSG_LINK_LOST = "⚠️ WiFi lost - alarm continuing offline"
MSG_ALREADY_ACTIVE = "⚠️ Alarm already active!"
MSG_START_FAILED = "❌ Failed to start alarm"
MSG_NOTHING_TO_STOP = "ℹ️ No active alarm to stop"
MSG_STOP_FAILED = "❌ Failed to stop alarm"
MSG_TEST_WHILE_ACTIVE = "⚠️ Cannot test while alarm is active"


class HardwareInitError(RuntimeError):
    """The hardware interface failed to initialize; the device cannot sound an alarm."""


class IntervalGate:
    """True at most once per ``interval_s``; the first call is always due."""

    def __init__(self, interval_s: float, clock: Clock = time.monotonic) -> None:
        self.interval_s = interval_s
        self.clock = clock
        self._last: float | None = None

    def due(self) -> bool:
        now = self.clock()
        if self._last is not None and now - self._last < self.interval_s:
            return False
        self._last = now
        return True


@dataclass
class DeviceContext:
    """Explicitly owned objects shared by the runtime's step functions."""

    config: WakeAssistConfig
    hardware: HardwareInterface
    connectivity: ConnectivityProvider
    store: CredentialStore
    controller: AlarmController
    channel: TelegramChannel
    clock: Clock = time.monotonic
    booted_at: float = field(default=0.0)


def resolve_credentials(config: WakeAssistConfig, store: CredentialStore) -> ChannelCredentials | None:
    """Config/env values win over the credential store when both are set."""
    telegram = config.telegram
    if telegram.bot_token.strip() and telegram.authorized_user_id:
        try:
            return make_credentials(telegram.bot_token, telegram.authorized_user_id)
        except InvalidCredentialsError as exc:
            logger.warning("runtime.credentials.config_invalid", error=str(exc))
    return load_credentials(store)


class DeviceRuntime:
    def __init__(
        self,
        *,
        config: WakeAssistConfig,
        hardware: HardwareInterface,
        connectivity: ConnectivityProvider,
        store: CredentialStore,
        transport: TelegramTransport | None = None,
        clock: Clock = time.monotonic,
        sleep: Callable = asyncio.sleep,
    ) -> None:
        transport = transport or TelegramTransport(
            api_base=config.telegram.api_base,
            timeout_s=config.telegram.http_timeout_s,
        )
        channel = TelegramChannel(
            config=config.telegram,
            transport=transport,
            connectivity=connectivity,
            command_handler=self.handle_command,
            clock=clock,
        )
        controller = AlarmController(
            config=config.alarm,
            hardware=hardware,
            notifier=channel.notify,
            clock=clock,
            sleep=sleep,
        )
        self.ctx = DeviceContext(
            config=config,
            hardware=hardware,
            connectivity=connectivity,
            store=store,
            controller=controller,
            channel=channel,
            clock=clock,
            booted_at=clock(),
        )
        self.sleep = sleep
        self._connectivity_gate = IntervalGate(config.connectivity.check_interval_s, clock)
        self._status_gate = IntervalGate(config.status_report_interval_s, clock)
        self._running = False

        channel.on(ChannelHook.ONLINE, self._on_channel_online)
        channel.on(ChannelHook.OFFLINE, self._on_channel_offline)
        channel.on(ChannelHook.UNAUTHORIZED, self._on_unauthorized)
        connectivity.on(LinkEvent.CONNECTED, self._on_link_up)
        connectivity.on(LinkEvent.DISCONNECTED, self._on_link_down)

    @property
    def controller(self) -> AlarmController:
        return self.ctx.controller

    @property
    def channel(self) -> TelegramChannel:
        return self.ctx.channel

    # Boot

    async def boot(self) -> None:
        ctx = self.ctx
        logger.info("wakeassist.starting", version=__version__)

        if not ctx.hardware.begin():
            raise HardwareInitError("hardware initialization failed")
        ctx.hardware.set_led(Led.STATUS, LedPattern.ON)

        report = ctx.hardware.check_continuity()
        if report.ok:
            logger.info("wakeassist.hardware.diagnostics_passed")
        else:
            logger.warning(
                "wakeassist.hardware.diagnostics_failed",
                failed=[channel.value for channel in report.failed],
            )

        if not await ctx.connectivity.connect():
            logger.error("wakeassist.link.connect_failed")

        credentials = resolve_credentials(ctx.config, ctx.store)
        if credentials is None:
            logger.warning("wakeassist.telegram.not_configured")
        else:
            ctx.channel.configure(credentials)
            if ctx.connectivity.is_connected:
                await ctx.channel.identify()
                if ctx.config.telegram.skip_backlog_on_start:
                    await ctx.channel.skip_backlog()

        ctx.booted_at = ctx.clock()
        logger.info("wakeassist.ready", telegram=ctx.channel.state.value)

    async def halt(self) -> None:
        """Fatal wait state: blink the status LED until cancelled."""
        logger.error("wakeassist.halted")
        self.ctx.hardware.set_led(Led.STATUS, LedPattern.BLINK_FAST)
        while True:
            self.ctx.hardware.update()
            await self.sleep(0.1)

    # Loop

    async def step(self) -> None:
        """One pass over every duty, in a fixed order."""
        ctx = self.ctx
        ctx.hardware.update()
        await self._handle_buttons()
        await ctx.controller.update()

        if ctx.channel.configured and ctx.connectivity.is_connected and ctx.channel.poll_due():
            await ctx.channel.poll()

        if self._connectivity_gate.due():
            await ctx.connectivity.maintain()

        if self._status_gate.due():
            self._log_status()

    async def run(self) -> None:
        try:
            await self.boot()
        except HardwareInitError:
            await self.halt()
            return

        self._running = True
        try:
            while self._running:
                try:
                    await self.step()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.warning("wakeassist.step_failed", error=str(exc), error_type=type(exc).__name__)
                await self.sleep(self.ctx.config.tick_interval_s)
        finally:
            self.ctx.hardware.stop_all_outputs()
            await self.ctx.channel.aclose()
            await self.ctx.connectivity.aclose()
            logger.info("wakeassist.stopped")

    def request_stop(self) -> None:
        self._running = False

    # Remote commands

    async def handle_command(self, command: CommandId, message: InboundMessage) -> None:
        handlers = {
            CommandId.START: self._cmd_start,
            CommandId.WAKE: self._cmd_wake,
            CommandId.STOP: self._cmd_stop,
            CommandId.STATUS: self._cmd_status,
            CommandId.TEST: self._cmd_test,
        }
        await handlers[command](message)

    async def _cmd_start(self, message: InboundMessage) -> None:
        logger.info("runtime.command.start", username=message.username)
        text = "🔔 WakeAssist Remote Alarm\n\nAvailable commands:\n" + "\n".join(HELP_LINES)
        await self.channel.send_message(text)

    async def _cmd_wake(self, message: InboundMessage) -> None:
        limiter = self.channel.wake_limiter
        if limiter.is_limited():
            remaining = limiter.remaining_s()
            logger.info("runtime.command.wake_rate_limited", remaining_s=remaining)
            await self.channel.send_message(f"⏰ Please wait {remaining} more seconds before next /wake")
            return
        if self.controller.is_active():
            await self.channel.send_message(MSG_ALREADY_ACTIVE)
            return
        if await self.controller.start():
            limiter.accept()
            logger.info("runtime.command.wake_started")
        else:
            await self.channel.send_message(MSG_START_FAILED)

    async def _cmd_stop(self, message: InboundMessage) -> None:
        if not self.controller.is_active():
            await self.channel.send_message(MSG_NOTHING_TO_STOP)
            return
        if not await self.controller.stop(StopCause.REMOTE_COMMAND):
            await self.channel.send_message(MSG_STOP_FAILED)

    async def _cmd_status(self, message: InboundMessage) -> None:
        await self.channel.send_message(self.status_text())

    async def _cmd_test(self, message: InboundMessage) -> None:
        if self.controller.is_active():
            await self.channel.send_message(MSG_TEST_WHILE_ACTIVE)
            return
        await self.controller.test_alarm()

    def status_text(self) -> str:
        ctx = self.ctx
        uptime = int(ctx.clock() - ctx.booted_at)
        hours, minutes = uptime // 3600, (uptime // 60) % 60
        link = ctx.connectivity.describe()
        report = ctx.hardware.check_continuity()

        lines = [
            "📊 Device Status",
            "",
            f"⏱ Uptime: {hours}h {minutes}m",
            f"📡 Link: {'Connected' if ctx.connectivity.is_connected else 'Disconnected'}"
            f" ({link.get('provider', 'unknown')})",
            f"💬 Telegram: {'Online' if ctx.channel.is_online() else 'Offline'}",
            f"🔔 Alarm: {ctx.controller.get_state_string()}",
            "🔧 Hardware:",
            f"   Small Buzzer: {'OK' if report.small_ok else 'Issue'}",
            f"   Large Buzzer: {'OK' if report.large_ok else 'Issue'}",
        ]
        stats = ctx.controller.get_statistics()
        if stats is not None:
            lines.append(
                f"🕘 Last alarm: {stats.duration_s}s, stopped by {stats.stop_cause.label}"
                f" at {stats.finished_at:%Y-%m-%d %H:%M} UTC"
            )
        return "\n".join(lines)

    # Physical inputs

    async def _handle_buttons(self) -> None:
        ctx = self.ctx
        if ctx.hardware.consume_press(Button.SILENCE):
            logger.info("runtime.button.silence")
            if ctx.controller.is_active():
                await ctx.controller.stop(StopCause.PHYSICAL_BUTTON)

        if ctx.hardware.consume_press(Button.TEST):
            logger.info("runtime.button.test")
            if ctx.controller.is_active():
                logger.info("runtime.button.test_ignored", reason="alarm_active")
            else:
                await ctx.controller.test_alarm()

        if ctx.hardware.factory_reset_requested():
            await self.factory_reset()

    async def factory_reset(self) -> None:
        ctx = self.ctx
        logger.warning("runtime.factory_reset")
        if ctx.controller.is_active():
            await ctx.controller.stop(StopCause.PHYSICAL_BUTTON)
        clear_credentials(ctx.store)
        await ctx.channel.clear_credentials()
        ctx.controller.reset()

    # Hooks

    async def _on_channel_online(self) -> None:
        logger.info("runtime.telegram.online")
        await self.channel.send_message(MSG_DEVICE_ONLINE)

    async def _on_channel_offline(self) -> None:
        logger.warning("runtime.telegram.offline", error=self.channel.last_error)

    async def _on_unauthorized(self, sender_id: int, text: str) -> None:
        logger.warning("runtime.telegram.unauthorized", sender_id=sender_id, text=text[:100])

    async def _on_link_up(self) -> None:
        self.ctx.hardware.set_led(Led.WIFI, LedPattern.ON)
        if self.controller.is_active() and self.channel.configured:
            await self.channel.send_message(
                f"✅ WiFi reconnected - alarm at {self.controller.get_state_string()} stage"
            )

    async def _on_link_down(self) -> None:
        self.ctx.hardware.set_led(Led.WIFI, LedPattern.BLINK_FAST)
        if self.controller.is_active() and self.channel.configured:
            await self.channel.send_message(MSG_LINK_LOST)

    def _log_status(self) -> None:
        ctx = self.ctx
        logger.info(
            "wakeassist.status",
            uptime_s=int(ctx.clock() - ctx.booted_at),
            link=ctx.connectivity.is_connected,
            telegram=ctx.channel.status_string(),
            alarm=ctx.controller.get_state_string(),
            queue=len(ctx.channel.queue),
        )
