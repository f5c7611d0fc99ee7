"""ORM model for persisted bearer-token sessions."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String

from refugio.models.base import Base


class AuthSession(Base):
    """
    One row per issued bearer token.

    token_hash is the SHA-256 of the token handed to the client; user_id is a
    back-reference only, and rows disappear with their user (ON DELETE CASCADE).
    """

    __tablename__ = "sessions"
    __table_args__ = (CheckConstraint("expires_at > issued_at", name="ck_sessions_expiry_after_issue"),)

    token_hash = Column(String(64), primary_key=True)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
