"""Session Store (bearer token -> user, expiry) and Session Issuer with lazy expiry."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Literal, Protocol

from pydantic import BaseModel
from sqlalchemy.orm import Session

from refugio.core.security import generate_session_token, hash_token
from refugio.models import AuthSession
from refugio.models.base import utcnow
from refugio.schemas.auth import SessionRecord

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(days=7)

LookupStatus = Literal["active", "expired", "not_found"]


class _HasId(Protocol):
    id: str


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class SessionLookup(BaseModel):
    """Result of SessionIssuer.lookup. session is set only for status='active'."""

    status: LookupStatus
    session: SessionRecord | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class SessionStore:
    """Durable token_hash -> (user_id, expiry) mapping over the sessions table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def insert(self, token: str, user_id: str, issued_at: datetime, expires_at: datetime) -> None:
        self.db.add(
            AuthSession(
                token_hash=hash_token(token),
                user_id=user_id,
                issued_at=issued_at,
                expires_at=expires_at,
            )
        )
        self.db.commit()

    def get(self, token: str) -> AuthSession | None:
        # Always hit the database; rows removed by bulk deletes may linger in the identity map.
        return (
            self.db.query(AuthSession)
            .filter(AuthSession.token_hash == hash_token(token))
            .first()
        )

    def delete(self, token: str) -> int:
        """Delete one session by token. Returns the number of rows removed (0 or 1)."""
        deleted = (
            self.db.query(AuthSession)
            .filter(AuthSession.token_hash == hash_token(token))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def delete_for_user(
        self,
        user_id: str,
        keep_token: str | None = None,
        *,
        commit: bool = True,
    ) -> int:
        """
        Delete every session of user_id in one statement, optionally sparing keep_token.

        A single DELETE ... WHERE user_id = ? means a session inserted concurrently
        is either deleted by it or committed after it; there is no read-then-delete gap.
        """
        query = self.db.query(AuthSession).filter(AuthSession.user_id == user_id)
        if keep_token is not None:
            query = query.filter(AuthSession.token_hash != hash_token(keep_token))
        deleted = query.delete(synchronize_session=False)
        if commit:
            self.db.commit()
        return deleted

    def purge_expired(self, now: datetime) -> int:
        """Delete sessions whose expiry has passed. Lazy expiry does not depend on this."""
        deleted = (
            self.db.query(AuthSession)
            .filter(AuthSession.expires_at <= now)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted


class SessionIssuer:
    """Mints, resolves and revokes sessions. Sessions go Active -> Revoked or Active -> Expired, never back."""

    def __init__(
        self,
        store: SessionStore,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if ttl <= timedelta(0):
            raise ValueError("session ttl must be positive")
        self.store = store
        self.ttl = ttl
        self.clock = clock

    def issue(self, user: _HasId) -> SessionRecord:
        issued_at = ensure_utc(self.clock())
        expires_at = issued_at + self.ttl
        token = generate_session_token()
        self.store.insert(token, user.id, issued_at, expires_at)
        logger.info(
            "Session issued",
            extra={"event": "session_issued", "user_id": user.id, "expires_at": expires_at.isoformat()},
        )
        return SessionRecord(
            token=token,
            user_id=user.id,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def lookup(self, token: str) -> SessionLookup:
        if not token:
            return SessionLookup(status="not_found")
        row = self.store.get(token)
        if row is None:
            return SessionLookup(status="not_found")
        expires_at = ensure_utc(row.expires_at)
        if expires_at <= ensure_utc(self.clock()):
            user_id = row.user_id
            self.store.delete(token)
            logger.info(
                "Session expired",
                extra={"event": "session_expired", "user_id": user_id},
            )
            return SessionLookup(status="expired")
        return SessionLookup(
            status="active",
            session=SessionRecord(
                token=token,
                user_id=row.user_id,
                issued_at=ensure_utc(row.issued_at),
                expires_at=expires_at,
            ),
        )

    def revoke(self, token: str) -> None:
        """Idempotent: revoking an unknown or already revoked token is not an error."""
        if not token:
            return
        deleted = self.store.delete(token)
        if deleted:
            logger.info("Session revoked", extra={"event": "session_revoked"})

    def revoke_all_for_user(self, user_id: str, except_token: str | None = None) -> int:
        deleted = self.store.delete_for_user(user_id, keep_token=except_token)
        logger.info(
            "Sessions revoked for user",
            extra={"event": "sessions_revoked", "user_id": user_id, "count": deleted},
        )
        return deleted
