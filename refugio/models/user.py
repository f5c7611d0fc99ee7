"""ORM model for application users (credentials and role)."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, String

from refugio.models.base import Base, utcnow


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    User account for self-managed authentication and role-based access control.

    email is stored lower-cased so the unique index enforces case-insensitive uniqueness.
    role: 'admin', 'pastor', 'editor' or 'member' (never null).
    password_hash is null for accounts whose credential lives with the managed provider.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'pastor', 'editor', 'member')",
            name="ck_users_role_canonical",
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_user_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)
    display_name = Column(String(255), nullable=False, default="")
    role = Column(String(32), nullable=False, default="member")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
