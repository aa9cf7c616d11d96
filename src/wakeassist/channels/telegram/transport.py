"""Telegram Bot API transport.

Every call returns a :class:`TransportResult`; connection errors, timeouts,
non-JSON bodies and ``"ok": false`` replies all come back as failures rather
than exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class TransportResult:
    ok: bool
    result: Any = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def failure(cls, error: str, status_code: int | None = None) -> TransportResult:
        return cls(ok=False, error=error, status_code=status_code)


class TelegramTransport:
    def __init__(
        self,
        *,
        api_base: str = "https://api.telegram.org",
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None
        self._token = ""

    def set_token(self, token: str) -> None:
        self._token = token.strip()

    @property
    def has_token(self) -> bool:
        return bool(self._token)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=self.timeout_s,
                    read=self.timeout_s,
                    write=self.timeout_s,
                    pool=self.timeout_s,
                )
            )
        return self._client

    def _url(self, method: str) -> str:
        return f"{self.api_base}/bot{self._token}/{method}"

    async def get(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        read_timeout_s: float | None = None,
    ) -> TransportResult:
        return await self._request("GET", method, params=params, read_timeout_s=read_timeout_s)

    async def post(self, method: str, body: dict[str, Any]) -> TransportResult:
        return await self._request("POST", method, body=body)

    async def _request(
        self,
        http_method: str,
        method: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        read_timeout_s: float | None = None,
    ) -> TransportResult:
        if not self._token:
            return TransportResult.failure("no bot token configured")

        timeout = None
        if read_timeout_s is not None:
            timeout = httpx.Timeout(
                connect=self.timeout_s,
                read=read_timeout_s,
                write=self.timeout_s,
                pool=self.timeout_s,
            )

        client = self._get_client()
        try:
            if http_method == "GET":
                if timeout is not None:
                    resp = await client.get(self._url(method), params=params, timeout=timeout)
                else:
                    resp = await client.get(self._url(method), params=params)
            else:
                resp = await client.post(self._url(method), json=body)
        except httpx.TimeoutException:
            logger.warning("channels.telegram.transport.timeout", method=method)
            return TransportResult.failure("request timed out")
        except httpx.HTTPError as exc:
            logger.warning(
                "channels.telegram.transport.error",
                method=method,
                error=type(exc).__name__,
            )
            return TransportResult.failure(f"{type(exc).__name__}: {exc}")

        try:
            payload = resp.json()
        except ValueError:
            logger.warning(
                "channels.telegram.transport.malformed",
                method=method,
                status_code=resp.status_code,
                body=resp.text[:300],
            )
            return TransportResult.failure("malformed response", resp.status_code)

        if not isinstance(payload, dict) or payload.get("ok") is not True:
            description = payload.get("description") if isinstance(payload, dict) else None
            logger.warning(
                "channels.telegram.transport.api_error",
                method=method,
                status_code=resp.status_code,
                description=description,
            )
            return TransportResult.failure(str(description or "api error"), resp.status_code)

        return TransportResult(ok=True, result=payload.get("result"), status_code=resp.status_code)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
