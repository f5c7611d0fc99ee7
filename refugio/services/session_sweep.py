"""Session sweep: delete session rows whose expiry has passed, and spent or expired reset tokens."""

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from refugio.services.password_reset import ResetTokenStore
from refugio.services.sessions import SessionStore

if TYPE_CHECKING:
    from refugio.core.config import Settings

logger = logging.getLogger(__name__)


def run_session_sweep(session: Session, settings: "Settings", now: datetime | None = None) -> int:
    """
    Delete expired sessions and dead reset tokens; return how many rows were removed.

    Lookups already reject and delete expired tokens on their own, so this only
    keeps the tables small. Idempotent: safe to run repeatedly.
    """
    if not settings.SESSION_SWEEP_ENABLED:
        logger.info("Session sweep is disabled (SESSION_SWEEP_ENABLED=false); skipping.")
        return 0

    cutoff = now or datetime.now(UTC)
    sessions_deleted = SessionStore(session).purge_expired(cutoff)
    resets_deleted = ResetTokenStore(session).purge(cutoff)

    if sessions_deleted or resets_deleted:
        logger.info(
            "Session sweep: cutoff=%s, sessions_deleted=%s, reset_tokens_deleted=%s",
            cutoff.isoformat(),
            sessions_deleted,
            resets_deleted,
        )
    return sessions_deleted + resets_deleted
