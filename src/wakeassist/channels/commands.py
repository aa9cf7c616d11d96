"""Remote command table."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

COMMAND_MARKER = "/"


class CommandId(str, Enum):
    START = "start"
    WAKE = "wake"
    STOP = "stop"
    STATUS = "status"
    TEST = "test"


COMMANDS: Mapping[str, CommandId] = MappingProxyType(
    {
        "/start": CommandId.START,
        "/help": CommandId.START,
        "/wake": CommandId.WAKE,
        "/stop": CommandId.STOP,
        "/status": CommandId.STATUS,
        "/test": CommandId.TEST,
    }
)

HELP_LINES = (
    "/wake - Start alarm sequence",
    "/stop - Stop active alarm",
    "/test - Test buzzer hardware",
    "/status - Show device status",
    "/help - Show this message",
)


def command_token(text: str) -> str | None:
    """Return the command word of ``text`` or None for ordinary text."""
    if not text or not text.startswith(COMMAND_MARKER):
        return None
    return text.split(maxsplit=1)[0]


def resolve_command(token: str, table: Mapping[str, CommandId] = COMMANDS) -> CommandId | None:
    return table.get(token.lower())


def unknown_command_reply() -> str:
    return "❓ Unknown command. Try:\n" + "\n".join(HELP_LINES[:4])
