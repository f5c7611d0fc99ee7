"""
Authentication Facade: sign-in, sign-up, sign-out, current user and password change.

AuthService is the one interface the HTTP layer and AuthContext talk to. Each
deployment picks one implementation: LocalAuthService (credentials hashed
here, sessions in our own table) or ManagedAuthService (hosted provider).
Everything below the facade is translated into refugio.core.exceptions
before it escapes.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from functools import lru_cache
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from refugio.core.exceptions import (
    AuthError,
    Conflict,
    InvalidCredentials,
    InvalidResetToken,
    StoreUnavailable,
    UserNotFound,
)
from refugio.core.security import hash_password, validate_password, verify_password
from refugio.models.base import utcnow
from refugio.schemas.auth import AuthResult, AuthUser, PasswordResetGrant
from refugio.schemas.roles import DEFAULT_ROLE
from refugio.services.credentials import CredentialStore, normalize_email
from refugio.services.password_reset import ResetTokenStore
from refugio.services.sessions import SessionIssuer, SessionStore, ensure_utc

if TYPE_CHECKING:
    from refugio.core.config import Settings

logger = logging.getLogger(__name__)

# Delivers a reset token to its owner: (email, token, expires_at).
ResetSender = Callable[[str, str, datetime], None]


class AuthService(ABC):
    """Capability set shared by every authentication backend."""

    backend_name: str = "abstract"

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Verify the credential and open a session. Raises InvalidCredentials."""

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: str | None = None,
    ) -> AuthResult:
        """Create a member account and open a session. Raises Conflict or WeakPassword."""

    @abstractmethod
    async def sign_out(self, token: str | None) -> None:
        """Revoke the session behind token. Idempotent."""

    @abstractmethod
    async def current_user(self, token: str | None) -> AuthUser | None:
        """Resolve token to its user; None means anonymous."""

    @abstractmethod
    async def change_password(
        self,
        user_id: str,
        old_password: str,
        new_password: str,
        current_token: str | None = None,
    ) -> int:
        """Rotate the password and revoke every other session. Returns sessions revoked (-1 if unknown)."""

    @abstractmethod
    async def request_password_reset(self, email: str) -> None:
        """Start a password reset for email. Returns normally whether or not the address is registered."""

    @abstractmethod
    async def resend_confirmation(self, email: str) -> None:
        """Send the sign-up confirmation again. Returns normally whether or not the address is registered."""

    @abstractmethod
    async def complete_password_reset(self, token: str, new_password: str) -> int:
        """Redeem a reset token, set the new password and revoke every session. Raises InvalidResetToken."""


@lru_cache
def _timing_pad_hash(rounds: int) -> str:
    # Verified against when the email is unknown so both failure paths cost one bcrypt check.
    return hash_password("refugio-timing-pad-0", rounds=rounds)


class LocalAuthService(AuthService):
    """Self-managed backend: bcrypt credentials in `users`, opaque tokens in `sessions`."""

    backend_name = "local"

    def __init__(
        self,
        db: Session,
        settings: "Settings",
        clock: Callable[[], datetime] = utcnow,
        reset_sender: ResetSender | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.rounds = settings.BCRYPT_ROUNDS
        self.reset_ttl = timedelta(minutes=settings.PASSWORD_RESET_TTL_MINUTES)
        self.reset_sender = reset_sender
        self.credentials = CredentialStore(db)
        self.resets = ResetTokenStore(db)
        self.sessions = SessionIssuer(
            SessionStore(db),
            ttl=timedelta(days=settings.SESSION_TTL_DAYS),
            clock=clock,
        )

    @contextmanager
    def _store_call(self, action: str) -> Iterator[None]:
        """Roll back on any failure inside the block; database failures become StoreUnavailable."""
        try:
            yield
        except AuthError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Credential/session store call failed",
                extra={"event": "store_unavailable", "action": action, "backend": self.backend_name},
            )
            raise StoreUnavailable(cause=e) from e

    async def sign_in(self, email: str, password: str) -> AuthResult:
        with self._store_call("sign_in"):
            user = self.credentials.find_by_email(email)
        if user is None or not user.password_hash:
            verify_password(password, _timing_pad_hash(self.rounds))
            logger.info("Sign-in rejected", extra={"event": "sign_in_failed"})
            raise InvalidCredentials()
        if not verify_password(password, user.password_hash):
            logger.info("Sign-in rejected", extra={"event": "sign_in_failed", "user_id": user.id})
            raise InvalidCredentials()

        with self._store_call("issue_session"):
            session = self.sessions.issue(user)
        try:
            self.credentials.touch_last_login(user)
        except SQLAlchemyError:
            # The session already exists; a stale last_login_at is not worth failing sign-in.
            self.db.rollback()
            logger.warning("Could not record last login", extra={"user_id": user.id})

        logger.info("Signed in", extra={"event": "signed_in", "user_id": user.id})
        return AuthResult(user=AuthUser.model_validate(user), session=session)

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: str | None = None,
    ) -> AuthResult:
        normalized = normalize_email(email)
        with self._store_call("sign_up_check"):
            if self.credentials.find_by_email(normalized) is not None:
                raise Conflict()
        validate_password(password)
        password_hash = hash_password(password, rounds=self.rounds)

        # User row is committed first; the session only ever references an existing user.
        with self._store_call("create_user"):
            user = self.credentials.create(
                normalized,
                password_hash,
                display_name=display_name,
                role=DEFAULT_ROLE,
            )
        try:
            with self._store_call("issue_session"):
                session = self.sessions.issue(user)
        except StoreUnavailable:
            logger.warning(
                "User created without a session; they can sign in once the store recovers",
                extra={"event": "sign_up_partial", "user_id": user.id},
            )
            raise

        logger.info("Signed up", extra={"event": "signed_up", "user_id": user.id})
        return AuthResult(user=AuthUser.model_validate(user), session=session)

    async def sign_out(self, token: str | None) -> None:
        if not token:
            return
        with self._store_call("sign_out"):
            self.sessions.revoke(token)

    async def current_user(self, token: str | None) -> AuthUser | None:
        if not token:
            return None
        with self._store_call("current_user"):
            lookup = self.sessions.lookup(token)
            if not lookup.is_active or lookup.session is None:
                return None
            user = self.credentials.find_by_id(lookup.session.user_id)
        if user is None:
            return None
        return AuthUser.model_validate(user)

    async def change_password(
        self,
        user_id: str,
        old_password: str,
        new_password: str,
        current_token: str | None = None,
    ) -> int:
        with self._store_call("change_password_load"):
            user = self.credentials.find_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if not verify_password(old_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect.")
        validate_password(new_password)
        new_hash = hash_password(new_password, rounds=self.rounds)

        with self._store_call("change_password"):
            revoked = self._rotate_password(user_id, new_hash, keep_token=current_token)
        logger.info(
            "Password changed",
            extra={"event": "password_changed", "user_id": user_id, "sessions_revoked": revoked},
        )
        return revoked

    def _rotate_password(self, user_id: str, new_hash: str, keep_token: str | None = None) -> int:
        # New hash and session revocation commit together; neither is visible without the other.
        self.credentials.set_password_hash(user_id, new_hash, commit=False)
        revoked = self.sessions.store.delete_for_user(user_id, keep_token=keep_token, commit=False)
        self.db.commit()
        return revoked

    def issue_password_reset(self, user_id: str) -> PasswordResetGrant:
        """Mint a reset token for user_id (admin route and reset_password CLI). Raises UserNotFound."""
        with self._store_call("issue_password_reset"):
            user = self.credentials.find_by_id(user_id)
            if user is None:
                raise UserNotFound()
            grant = self.resets.issue(user.id, ensure_utc(self.clock()), self.reset_ttl)
        logger.info(
            "Password reset issued",
            extra={
                "event": "password_reset_issued",
                "user_id": user.id,
                "expires_at": grant.expires_at.isoformat(),
            },
        )
        return grant

    async def request_password_reset(self, email: str) -> None:
        with self._store_call("request_password_reset"):
            user = self.credentials.find_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email", extra={"event": "password_reset_ignored"})
            return
        if self.reset_sender is None:
            logger.warning(
                "Password reset requested but no reset sender is configured",
                extra={"event": "password_reset_undeliverable", "user_id": user.id},
            )
            return
        grant = self.issue_password_reset(user.id)
        self.reset_sender(user.email, grant.token, grant.expires_at)

    async def resend_confirmation(self, email: str) -> None:
        # Local accounts are usable as soon as they are created; there is nothing to confirm.
        return None

    async def complete_password_reset(self, token: str, new_password: str) -> int:
        # Validate first so a rejected password does not spend the token.
        validate_password(new_password)
        new_hash = hash_password(new_password, rounds=self.rounds)
        with self._store_call("complete_password_reset"):
            user_id = self.resets.claim(token, ensure_utc(self.clock()))
            if user_id is None:
                raise InvalidResetToken()
            revoked = self._rotate_password(user_id, new_hash)
        logger.info(
            "Password reset completed",
            extra={"event": "password_reset_completed", "user_id": user_id, "sessions_revoked": revoked},
        )
        return revoked
