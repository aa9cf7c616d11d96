from __future__ import annotations

from collections import deque
from typing import Any

import pytest

from wakeassist.channels.telegram.transport import TransportResult
from wakeassist.storage import ChannelCredentials

TOKEN = "123456789:ABCdefGhIJKlmnoPQRstuVWxyz"
OPERATOR_ID = 4242


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Stands in for TelegramTransport; getUpdates answers come from ``updates``."""

    def __init__(self) -> None:
        self.token = ""
        self.gets: list[tuple[str, dict[str, Any]]] = []
        self.posts: list[tuple[str, dict[str, Any]]] = []
        self.updates: deque[TransportResult] = deque()
        self.send_ok = True

    def set_token(self, token: str) -> None:
        self.token = token

    async def get(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        read_timeout_s: float | None = None,
    ) -> TransportResult:
        self.gets.append((method, dict(params or {})))
        if method == "getMe":
            return TransportResult(ok=True, result={"username": "wake_bot"})
        if method == "getUpdates" and self.updates:
            return self.updates.popleft()
        return TransportResult(ok=True, result=[])

    async def post(self, method: str, body: dict[str, Any]) -> TransportResult:
        self.posts.append((method, body))
        if not self.send_ok:
            return TransportResult.failure("send failed", 500)
        return TransportResult(ok=True, result={"message_id": len(self.posts)})

    async def aclose(self) -> None:
        return None

    @property
    def sent_texts(self) -> list[str]:
        return [body["text"] for method, body in self.posts if method == "sendMessage"]

    def poll_offsets(self) -> list[int]:
        return [
            params["offset"]
            for method, params in self.gets
            if method == "getUpdates" and params.get("offset", 0) >= 0
        ]


class MemoryStore:
    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data = dict(data or {})

    def get(self, key: str) -> Any | None:
        return self.data.get(key)

    def put(self, key: str, value: Any) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


def message_update(update_id: int, text: str, chat_id: int = OPERATOR_ID) -> dict[str, Any]:
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id * 10,
            "chat": {"id": chat_id, "type": "private"},
            "from": {"id": chat_id, "username": "operator"},
            "text": text,
            "date": 1_760_000_000,
        },
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def credentials() -> ChannelCredentials:
    return ChannelCredentials(bot_token=TOKEN, authorized_user_id=OPERATOR_ID)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_update():
    return message_update


@pytest.fixture
def updates_result():
    def _build(*updates: dict[str, Any]) -> TransportResult:
        return TransportResult(ok=True, result=list(updates))

    return _build
