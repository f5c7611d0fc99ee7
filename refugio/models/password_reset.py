"""ORM model for one-time password reset tokens."""

from sqlalchemy import Column, DateTime, ForeignKey, String

from refugio.models.base import Base, utcnow


class PasswordResetToken(Base):
    """
    Outstanding or spent reset token. Only the SHA-256 of the token is stored.

    used_at is set exactly once, when the token is redeemed; a row with used_at
    set or expires_at in the past can never be redeemed again.
    """

    __tablename__ = "password_reset_tokens"

    token_hash = Column(String(64), primary_key=True)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
