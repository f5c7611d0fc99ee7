"""Credential Store: user records keyed by id and by case-insensitive email."""

import logging
from collections import Counter

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from refugio.core.exceptions import Conflict, UserNotFound
from refugio.models import User
from refugio.models.base import utcnow
from refugio.schemas.roles import DEFAULT_ROLE, validate_role
from refugio.services.sessions import SessionStore

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class CredentialStore:
    """Owns User rows. Knows nothing about sessions except that deleting a user revokes them."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_email(self, email: str) -> User | None:
        normalized = normalize_email(email)
        if not normalized:
            return None
        # Rows written before emails were lower-cased on insert still match.
        return self.db.query(User).filter(func.lower(User.email) == normalized).first()

    def find_by_id(self, user_id: str) -> User | None:
        if not user_id:
            return None
        return self.db.query(User).filter(User.id == user_id).first()

    def create(
        self,
        email: str,
        password_hash: str | None,
        display_name: str | None = None,
        role: str = DEFAULT_ROLE,
    ) -> User:
        """Insert a user. Raises Conflict if the email is taken, ValueError for an unknown role."""
        normalized = normalize_email(email)
        canonical_role = validate_role(role)
        if self.find_by_email(normalized) is not None:
            raise Conflict()
        user = User(
            email=normalized,
            password_hash=password_hash,
            display_name=(display_name or normalized.split("@")[0]).strip(),
            role=canonical_role,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as e:
            # Lost a race against a concurrent sign-up with the same email.
            self.db.rollback()
            raise Conflict() from e
        logger.info(
            "User created",
            extra={"event": "user_created", "user_id": user.id, "role": canonical_role},
        )
        return user

    def delete(self, user_id: str) -> bool:
        """
        Delete a user and every session they own in one transaction.

        Returns False if no such user exists.
        """
        user = self.find_by_id(user_id)
        if user is None:
            return False
        revoked = SessionStore(self.db).delete_for_user(user_id, commit=False)
        self.db.delete(user)
        self.db.commit()
        logger.info(
            "User deleted",
            extra={"event": "user_deleted", "user_id": user_id, "sessions_revoked": revoked},
        )
        return True

    def list_users(self) -> list[User]:
        return self.db.query(User).order_by(User.created_at, User.email).all()

    def counts_by_role(self) -> dict[str, int]:
        rows = self.db.query(User.role).all()
        return dict(Counter(role for (role,) in rows))

    def _require(self, user_id: str) -> User:
        user = self.find_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def update_role(self, user_id: str, role: str) -> User:
        user = self._require(user_id)
        user.role = validate_role(role)
        user.updated_at = utcnow()
        self.db.commit()
        logger.info(
            "User role updated",
            extra={"event": "role_updated", "user_id": user_id, "role": user.role},
        )
        return user

    def update_profile(self, user_id: str, display_name: str) -> User:
        user = self._require(user_id)
        user.display_name = display_name.strip()
        user.updated_at = utcnow()
        self.db.commit()
        return user

    def set_password_hash(self, user_id: str, password_hash: str, *, commit: bool = True) -> User:
        """Store a new hash. With commit=False the caller commits, e.g. together with session revocation."""
        user = self._require(user_id)
        user.password_hash = password_hash
        user.updated_at = utcnow()
        if commit:
            self.db.commit()
        return user

    def touch_last_login(self, user: User) -> None:
        user.last_login_at = utcnow()
        self.db.commit()
