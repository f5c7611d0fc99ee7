"""Engine and sessions for the credential and session tables."""

from collections.abc import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from refugio.core.config import settings


def build_engine(url: str, echo: bool = False) -> Engine:
    # pre_ping drops pooled connections the server closed while idle.
    return create_engine(url, pool_pre_ping=True, pool_recycle=1800, echo=echo)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Stores read attributes back after commit (new user id, session expiry); rows must not expire.
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    """Request-scoped session. A failed transaction is rolled back before the session closes."""
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


def check_db_connected(db: Session) -> bool:
    """True if the store answers SELECT 1."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db.rollback()
        return False
    return True
