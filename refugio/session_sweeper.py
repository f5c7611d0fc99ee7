"""
CLI entrypoint for the expired-session sweep. Run from cron, e.g.:

  python -m refugio.session_sweeper

Or hourly: 0 * * * * cd /path/to/refugio && .venv/bin/python -m refugio.session_sweeper
"""

import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from refugio.core.config import get_settings
from refugio.core.database import SessionLocal
from refugio.services.session_sweep import run_session_sweep

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Run the sweep: delete sessions whose expires_at has passed."""
    settings = get_settings()
    db = SessionLocal()
    try:
        sessions_deleted = run_session_sweep(db, settings)
        logger.info("Session sweep completed: sessions_deleted=%s", sessions_deleted)
        return 0
    except SQLAlchemyError as e:
        logger.exception("Session sweep failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
