"""Credential store and channel credentials."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import structlog
import yaml

logger = structlog.get_logger()

KEY_TELEGRAM_TOKEN = "telegram_token"
KEY_TELEGRAM_USER_ID = "telegram_user_id"

MIN_TOKEN_LENGTH = 20


class InvalidCredentialsError(ValueError):
    """Raised when a bot token or operator id is malformed."""


@dataclass(frozen=True)
class ChannelCredentials:
    """Bot token plus the single chat id allowed to command the device."""

    bot_token: str
    authorized_user_id: int

    @property
    def valid(self) -> bool:
        return validate_token(self.bot_token) and self.authorized_user_id != 0

    def masked_token(self) -> str:
        token = self.bot_token
        if len(token) <= 8:
            return "***"
        return f"{token[:4]}...{token[-4:]}"


def validate_token(token: str) -> bool:
    token = (token or "").strip()
    return ":" in token and len(token) >= MIN_TOKEN_LENGTH


def make_credentials(bot_token: str, authorized_user_id: Any) -> ChannelCredentials:
    """Build credentials, raising InvalidCredentialsError when malformed."""
    token = (bot_token or "").strip()
    if not validate_token(token):
        raise InvalidCredentialsError(
            "Bot token must contain ':' and be at least "
            f"{MIN_TOKEN_LENGTH} characters long"
        )
    try:
        user_id = int(str(authorized_user_id).strip())
    except ValueError as exc:
        raise InvalidCredentialsError("Authorized user id must be an integer") from exc
    if user_id == 0:
        raise InvalidCredentialsError("Authorized user id must be non-zero")
    return ChannelCredentials(bot_token=token, authorized_user_id=user_id)


class CredentialStore(Protocol):
    """Persistent key-value storage."""

    def get(self, key: str) -> Any | None:
        ...

    def put(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class FileCredentialStore:
    """YAML file backed key-value store."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning("storage.credentials.malformed", path=str(self.path))
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=True)
        tmp.chmod(0o600)
        tmp.replace(self.path)

    def get(self, key: str) -> Any | None:
        return self._read().get(key)

    def put(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


def load_credentials(store: CredentialStore) -> ChannelCredentials | None:
    """Return stored credentials, or None when missing or malformed."""
    token = store.get(KEY_TELEGRAM_TOKEN)
    user_id = store.get(KEY_TELEGRAM_USER_ID)
    if not token or not user_id:
        logger.info("storage.credentials.missing")
        return None
    try:
        return make_credentials(str(token), user_id)
    except InvalidCredentialsError as exc:
        logger.warning("storage.credentials.invalid", error=str(exc))
        return None


def save_credentials(store: CredentialStore, credentials: ChannelCredentials) -> None:
    store.put(KEY_TELEGRAM_TOKEN, credentials.bot_token)
    store.put(KEY_TELEGRAM_USER_ID, credentials.authorized_user_id)
    logger.info("storage.credentials.saved", user_id=credentials.authorized_user_id)


def clear_credentials(store: CredentialStore) -> None:
    store.delete(KEY_TELEGRAM_TOKEN)
    store.delete(KEY_TELEGRAM_USER_ID)
    logger.info("storage.credentials.cleared")
