"""SQLAlchemy ORM models."""

from refugio.models.base import Base
from refugio.models.password_reset import PasswordResetToken
from refugio.models.session import AuthSession
from refugio.models.user import User

__all__ = ["AuthSession", "Base", "PasswordResetToken", "User"]
