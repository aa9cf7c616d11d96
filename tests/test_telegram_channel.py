from __future__ import annotations

import pytest

from wakeassist.channels.base import ChannelHook, ChannelState, InboundMessage
from wakeassist.channels.commands import CommandId
from wakeassist.channels.telegram.provider import MSG_UNAUTHORIZED, TelegramChannel, WakeRateLimiter
from wakeassist.channels.telegram.transport import TransportResult
from wakeassist.config import TelegramChannelConfig
from wakeassist.connectivity import StaticConnectivity


class _Handler:
    def __init__(self) -> None:
        self.calls: list[tuple[CommandId, InboundMessage]] = []

    async def __call__(self, command: CommandId, message: InboundMessage) -> None:
        self.calls.append((command, message))


async def _channel(transport, clock, credentials=None, *, connected: bool = True, **config):
    connectivity = StaticConnectivity(connected=connected)
    await connectivity.connect()
    handler = _Handler()
    channel = TelegramChannel(
        config=TelegramChannelConfig(**config),
        transport=transport,
        connectivity=connectivity,
        command_handler=handler,
        credentials=credentials,
        clock=clock,
    )
    return channel, handler, connectivity


@pytest.mark.asyncio
async def test_poll_is_noop_without_credentials(transport, clock) -> None:
    channel, _handler, _link = await _channel(transport, clock)

    assert await channel.poll() is False

    assert transport.gets == []
    assert channel.state is ChannelState.UNCONFIGURED


@pytest.mark.asyncio
async def test_poll_is_noop_while_link_down(transport, clock, credentials) -> None:
    channel, _handler, _link = await _channel(transport, clock, credentials, connected=False)

    assert await channel.poll() is False

    assert transport.gets == []
    assert channel.state is ChannelState.CONNECTING


@pytest.mark.asyncio
async def test_empty_poll_goes_online_and_fires_hook_once(transport, clock, credentials) -> None:
    channel, _handler, _link = await _channel(transport, clock, credentials)
    online_calls: list[str] = []

    async def on_online() -> None:
        online_calls.append("online")

    channel.on(ChannelHook.ONLINE, on_online)

    await channel.poll()
    await channel.poll()

    assert channel.is_online()
    assert online_calls == ["online"]
    method, params = transport.gets[0]
    assert method == "getUpdates"
    assert params == {"offset": 1, "limit": 10, "timeout": 5}


@pytest.mark.asyncio
async def test_transport_failure_marks_offline_and_keeps_offset(
    transport, clock, credentials, make_update, updates_result
) -> None:
    channel, handler, _link = await _channel(transport, clock, credentials)
    offline_calls: list[str] = []

    async def on_offline() -> None:
        offline_calls.append("offline")

    channel.on(ChannelHook.OFFLINE, on_offline)
    transport.updates.append(updates_result(make_update(7, "/status")))
    await channel.poll()
    assert channel.last_update_id == 7

    transport.updates.append(TransportResult.failure("malformed response", 200))
    await channel.poll()

    assert channel.state is ChannelState.OFFLINE
    assert channel.last_update_id == 7
    assert offline_calls == ["offline"]

    await channel.poll()
    assert transport.poll_offsets() == [1, 8, 8]
    assert channel.is_online()
    assert len(handler.calls) == 1


@pytest.mark.asyncio
async def test_non_list_result_is_treated_as_failure(transport, clock, credentials) -> None:
    channel, _handler, _link = await _channel(transport, clock, credentials)
    transport.updates.append(TransportResult(ok=True, result={"unexpected": True}))

    await channel.poll()

    assert channel.state is ChannelState.OFFLINE
    assert channel.last_update_id == 0


@pytest.mark.asyncio
async def test_authorized_command_is_queued_and_dispatched(
    transport, clock, credentials, make_update, updates_result
) -> None:
    channel, handler, _link = await _channel(transport, clock, credentials)
    transport.updates.append(updates_result(make_update(11, "/WAKE now please")))

    assert await channel.poll() is True

    assert channel.last_update_id == 11
    assert len(channel.queue) == 1
    command, message = handler.calls[0]
    assert command is CommandId.WAKE
    assert message.text == "/WAKE now please"
    assert message.username == "operator"
    assert message.sender_id == credentials.authorized_user_id
    assert message.message_id == 110


@pytest.mark.asyncio
async def test_unauthorized_sender_is_rejected_but_offset_advances(
    transport, clock, credentials, make_update, updates_result
) -> None:
    channel, handler, _link = await _channel(transport, clock, credentials)
    blocked: list[tuple[int, str]] = []

    async def on_unauthorized(sender_id: int, text: str) -> None:
        blocked.append((sender_id, text))

    channel.on(ChannelHook.UNAUTHORIZED, on_unauthorized)
    transport.updates.append(updates_result(make_update(20, "/wake", chat_id=999)))

    await channel.poll()

    assert channel.last_update_id == 20
    assert handler.calls == []
    assert len(channel.queue) == 0
    assert blocked == [(999, "/wake")]
    assert transport.posts[-1] == ("sendMessage", {"chat_id": 999, "text": MSG_UNAUTHORIZED})


@pytest.mark.asyncio
async def test_replayed_update_ids_are_not_redelivered(
    transport, clock, credentials, make_update, updates_result
) -> None:
    channel, handler, _link = await _channel(transport, clock, credentials)
    transport.updates.append(updates_result(make_update(30, "/status")))
    transport.updates.append(
        updates_result(make_update(29, "/stop"), make_update(30, "/status"), make_update(31, "/test"))
    )

    await channel.poll()
    await channel.poll()

    assert [command for command, _ in handler.calls] == [CommandId.STATUS, CommandId.TEST]
    assert channel.last_update_id == 31


@pytest.mark.asyncio
async def test_update_without_message_still_advances_offset(
    transport, clock, credentials, updates_result
) -> None:
    channel, handler, _link = await _channel(transport, clock, credentials)
    transport.updates.append(updates_result({"update_id": 40, "edited_message": {}}, {"no_id": True}))

    await channel.poll()

    assert channel.last_update_id == 40
    assert handler.calls == []


@pytest.mark.asyncio
async def test_unknown_command_gets_generic_reply(
    transport, clock, credentials, make_update, updates_result
) -> None:
    channel, handler, _link = await _channel(transport, clock, credentials)
    transport.updates.append(updates_result(make_update(50, "/dance"), make_update(51, "good morning")))

    await channel.poll()

    assert handler.calls == []
    assert len(transport.sent_texts) == 1
    assert transport.sent_texts[0].startswith("❓ Unknown command.")
    assert len(channel.queue) == 2


@pytest.mark.asyncio
async def test_queue_keeps_most_recent_messages(transport, clock, credentials, make_update, updates_result) -> None:
    channel, _handler, _link = await _channel(transport, clock, credentials, queue_size=3)
    transport.updates.append(updates_result(*[make_update(60 + i, "note") for i in range(5)]))

    await channel.poll()

    assert [message.update_id for message in channel.queue] == [62, 63, 64]
    assert channel.queue.dropped == 2


@pytest.mark.asyncio
async def test_notify_is_dropped_while_not_online(transport, clock, credentials) -> None:
    channel, _handler, _link = await _channel(transport, clock, credentials)

    await channel.notify("hello")
    assert transport.posts == []

    await channel.poll()
    await channel.notify("hello")
    assert transport.posts == [("sendMessage", {"chat_id": credentials.authorized_user_id, "text": "hello"})]


@pytest.mark.asyncio
async def test_send_failure_is_reported_not_raised(transport, clock, credentials) -> None:
    channel, _handler, _link = await _channel(transport, clock, credentials, parse_mode="Markdown")
    transport.send_ok = False

    assert await channel.send_message("*hi*") is False
    assert transport.posts[0][1]["parse_mode"] == "Markdown"
    assert channel.state is ChannelState.CONNECTING


@pytest.mark.asyncio
async def test_skip_backlog_fast_forwards_offset(transport, clock, credentials, make_update, updates_result) -> None:
    channel, _handler, _link = await _channel(transport, clock, credentials)
    transport.updates.append(updates_result(make_update(900, "/wake")))

    assert await channel.skip_backlog() is True

    assert transport.gets[0] == ("getUpdates", {"offset": -1, "limit": 1})
    assert channel.last_update_id == 900
    await channel.poll()
    assert transport.gets[-1][1]["offset"] == 901


@pytest.mark.asyncio
async def test_identify_records_bot_username(transport, clock, credentials) -> None:
    channel, _handler, _link = await _channel(transport, clock, credentials)

    assert await channel.identify() == "wake_bot"
    await channel.poll()
    assert channel.status_string() == "Online - polling every 5s (@wake_bot)"


@pytest.mark.asyncio
async def test_clear_credentials_unconfigures_channel(transport, clock, credentials) -> None:
    channel, _handler, _link = await _channel(transport, clock, credentials)
    await channel.poll()

    await channel.clear_credentials()

    assert channel.configured is False
    assert channel.state is ChannelState.UNCONFIGURED
    assert transport.token == ""


def test_poll_due_respects_interval(transport, clock, credentials) -> None:
    channel = TelegramChannel(
        config=TelegramChannelConfig(poll_interval_s=5),
        transport=transport,
        connectivity=StaticConnectivity(),
        command_handler=_Handler(),
        credentials=credentials,
        clock=clock,
    )
    assert channel.poll_due() is True
    channel._last_poll_at = clock.now
    clock.advance(4.9)
    assert channel.poll_due() is False
    clock.advance(0.1)
    assert channel.poll_due() is True


def test_wake_rate_limiter_reports_remaining_seconds(clock) -> None:
    limiter = WakeRateLimiter(300, clock)
    assert limiter.is_limited() is False

    limiter.accept()
    clock.advance(60)

    assert limiter.is_limited() is True
    assert limiter.remaining_s() == 240

    clock.advance(240)
    assert limiter.is_limited() is False
    assert limiter.remaining_s() == 0


@pytest.mark.asyncio
async def test_message_text_is_kept_raw_and_leading_space_is_not_a_command(
    transport, clock, credentials, make_update, updates_result
) -> None:
    channel, handler, _link = await _channel(transport, clock, credentials)
    transport.updates.append(updates_result(make_update(70, "  /wake"), make_update(71, "/status  ")))

    await channel.poll()

    assert [message.text for message in channel.queue] == ["  /wake", "/status  "]
    assert [command for command, _ in handler.calls] == [CommandId.STATUS]
    assert transport.sent_texts == []
