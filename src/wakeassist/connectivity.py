"""Network link supervision."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol

import httpx
import structlog

from wakeassist.config import ConnectivityConfig

logger = structlog.get_logger()

LinkHook = Callable[[], Awaitable[None]]


class LinkEvent(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ConnectivityProvider(Protocol):
    @property
    def is_connected(self) -> bool:
        ...

    async def connect(self) -> bool:
        ...

    async def maintain(self) -> None:
        """Re-check the link and reconnect if it dropped."""
        ...

    def on(self, event: LinkEvent, callback: LinkHook) -> None:
        ...

    def describe(self) -> dict[str, Any]:
        ...

    async def aclose(self) -> None:
        ...


class _LinkHooks:
    def __init__(self) -> None:
        self._hooks: dict[LinkEvent, list[LinkHook]] = {event: [] for event in LinkEvent}
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def on(self, event: LinkEvent, callback: LinkHook) -> None:
        self._hooks[event].append(callback)

    async def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        event = LinkEvent.CONNECTED if connected else LinkEvent.DISCONNECTED
        logger.info("connectivity.link.changed", link_event=event.value)
        for callback in self._hooks[event]:
            await callback()


class StaticConnectivity(_LinkHooks):
    """Link state set by the caller. Used for tests and wired installs."""

    def __init__(self, *, connected: bool = True, label: str = "static") -> None:
        super().__init__()
        self._target = connected
        self.label = label

    async def connect(self) -> bool:
        await self._set_connected(self._target)
        return self.is_connected

    async def maintain(self) -> None:
        await self._set_connected(self._target)

    async def set_link(self, connected: bool) -> None:
        self._target = connected
        await self._set_connected(connected)

    async def aclose(self) -> None:
        return None

    def describe(self) -> dict[str, Any]:
        return {"provider": self.label, "connected": self.is_connected}


class ProbeConnectivity(_LinkHooks):
    """Treats the link as up when an HTTP probe gets any response."""

    def __init__(
        self,
        config: ConnectivityConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._last_error: str | None = None
        self.reconnect_attempts = 0

    async def _probe(self) -> bool:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.config.probe_timeout_s))
        try:
            await self._client.head(self.config.probe_url)
        except httpx.HTTPError as exc:
            self._last_error = str(exc) or type(exc).__name__
            return False
        self._last_error = None
        return True

    async def connect(self) -> bool:
        for attempt in range(1, self.config.max_reconnect_attempts + 1):
            if await self._probe():
                self.reconnect_attempts = 0
                await self._set_connected(True)
                return True
            logger.warning(
                "connectivity.probe_failed",
                attempt=attempt,
                error=self._last_error,
            )
        await self._set_connected(False)
        return False

    async def maintain(self) -> None:
        """One probe per call; the retry loop in ``connect()`` is for boot only."""
        if await self._probe():
            if self.reconnect_attempts:
                logger.info("connectivity.reconnected", attempts=self.reconnect_attempts)
            self.reconnect_attempts = 0
            await self._set_connected(True)
            return

        if self.is_connected:
            logger.warning("connectivity.link_lost", error=self._last_error)
            await self._set_connected(False)
            return

        self.reconnect_attempts += 1
        if self.reconnect_attempts == self.config.max_reconnect_attempts:
            logger.error("connectivity.reconnect_exhausted", attempts=self.reconnect_attempts)
        elif self.reconnect_attempts < self.config.max_reconnect_attempts:
            logger.warning(
                "connectivity.reconnect_failed",
                attempt=self.reconnect_attempts,
                error=self._last_error,
            )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def describe(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "provider": "probe",
            "connected": self.is_connected,
            "probe_url": self.config.probe_url,
            "reconnect_attempts": self.reconnect_attempts,
        }
        if self._last_error:
            info["last_error"] = self._last_error
        return info
