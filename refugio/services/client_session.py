"""Client-side session persistence: a durable JSON key-value file holding the active session."""

import json
import logging
import os
import tempfile
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from refugio.models.base import utcnow
from refugio.schemas.auth import AuthResult, AuthUser

logger = logging.getLogger(__name__)

SESSION_KEY = "auth_session"


class JsonFileStore:
    """Tiny durable key-value store: one JSON object in one file, rewritten atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read_all(self) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Client session file is not valid JSON; ignoring", extra={"path": str(self.path)})
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


class StoredSession(BaseModel):
    """Wire shape under SESSION_KEY: {access_token, expires_at (epoch ms), user}."""

    access_token: str
    expires_at: int
    user: AuthUser

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at / 1000, tz=UTC)

    @classmethod
    def from_result(cls, result: AuthResult) -> "StoredSession":
        return cls(
            access_token=result.session.token,
            expires_at=int(result.session.expires_at.timestamp() * 1000),
            user=result.user,
        )


class PersistedSessionStore:
    """Reads and writes the active session under one well-known key; expired entries are discarded on load."""

    def __init__(
        self,
        store: JsonFileStore,
        key: str = SESSION_KEY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.key = key
        self.clock = clock

    def save(self, session: StoredSession) -> None:
        self.store.set(self.key, session.model_dump_json())

    def load(self) -> StoredSession | None:
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            session = StoredSession.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable client session")
            self.store.remove(self.key)
            return None
        if session.expires_at_datetime <= self.clock():
            self.store.remove(self.key)
            return None
        return session

    def clear(self) -> None:
        self.store.remove(self.key)
