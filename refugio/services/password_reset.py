"""One-time password reset tokens for the self-managed backend."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from refugio.core.security import generate_session_token, hash_token
from refugio.models import PasswordResetToken
from refugio.schemas.auth import PasswordResetGrant

logger = logging.getLogger(__name__)

DEFAULT_RESET_TTL = timedelta(hours=1)


class ResetTokenStore:
    """Issues and redeems reset tokens. A user has at most one redeemable token at a time."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def issue(self, user_id: str, now: datetime, ttl: timedelta = DEFAULT_RESET_TTL) -> PasswordResetGrant:
        # Issuing a new token withdraws any earlier one that was never redeemed.
        (
            self.db.query(PasswordResetToken)
            .filter(PasswordResetToken.user_id == user_id, PasswordResetToken.used_at.is_(None))
            .delete(synchronize_session=False)
        )
        token = generate_session_token()
        expires_at = now + ttl
        self.db.add(
            PasswordResetToken(
                token_hash=hash_token(token),
                user_id=user_id,
                created_at=now,
                expires_at=expires_at,
            )
        )
        self.db.commit()
        return PasswordResetGrant(user_id=user_id, token=token, expires_at=expires_at)

    def claim(self, token: str, now: datetime) -> str | None:
        """
        Mark token used and return its user_id, or None if it cannot be redeemed.

        The caller commits. The conditional UPDATE means two concurrent redemptions
        of one token cannot both succeed.
        """
        if not token:
            return None
        token_hash = hash_token(token)
        claimed = (
            self.db.query(PasswordResetToken)
            .filter(
                PasswordResetToken.token_hash == token_hash,
                PasswordResetToken.used_at.is_(None),
                PasswordResetToken.expires_at > now,
            )
            .update({PasswordResetToken.used_at: now}, synchronize_session=False)
        )
        if claimed != 1:
            return None
        row = (
            self.db.query(PasswordResetToken.user_id)
            .filter(PasswordResetToken.token_hash == token_hash)
            .first()
        )
        return row.user_id if row is not None else None

    def purge(self, now: datetime) -> int:
        """Delete tokens that are spent or expired."""
        deleted = (
            self.db.query(PasswordResetToken)
            .filter(or_(PasswordResetToken.used_at.is_not(None), PasswordResetToken.expires_at <= now))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
