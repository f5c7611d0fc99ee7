"""Declarative base and the UTC clock used for column defaults."""

from datetime import UTC, datetime

from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base for User and AuthSession; Base.metadata drives create_all in tests and alembic autogenerate."""

    pass
