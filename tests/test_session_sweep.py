"""Unit tests for refugio.services.session_sweep.run_session_sweep."""

import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from refugio.models import AuthSession, Base, PasswordResetToken, User
from refugio.services.password_reset import ResetTokenStore
from refugio.services.session_sweep import run_session_sweep
from refugio.services.sessions import SessionIssuer, SessionStore
from refugio.session_sweeper import main as sweeper_main

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def _make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()


class TestRunSessionSweep(unittest.TestCase):
    def test_disabled_returns_zero_without_touching_db(self) -> None:
        session = MagicMock()
        settings = MagicMock()
        settings.SESSION_SWEEP_ENABLED = False
        self.assertEqual(run_session_sweep(session, settings), 0)
        session.query.assert_not_called()

    def test_deletes_only_expired_sessions(self) -> None:
        db = _make_session()
        try:
            user = User(email="a@example.org", display_name="a", role="member")
            db.add(user)
            db.commit()
            issuer = SessionIssuer(SessionStore(db), ttl=timedelta(days=1), clock=lambda: T0)
            issuer.issue(user)
            issuer.issue(user)
            later = SessionIssuer(SessionStore(db), ttl=timedelta(days=1), clock=lambda: T0 + timedelta(days=2))
            kept = later.issue(user)

            settings = MagicMock()
            settings.SESSION_SWEEP_ENABLED = True
            self.assertEqual(run_session_sweep(db, settings, now=T0 + timedelta(days=1, hours=1)), 2)
            self.assertEqual(db.query(AuthSession).count(), 1)
            self.assertTrue(later.lookup(kept.token).is_active)
            self.assertEqual(run_session_sweep(db, settings, now=T0 + timedelta(days=1, hours=1)), 0)
        finally:
            db.close()

    def test_removes_dead_reset_tokens(self) -> None:
        db = _make_session()
        try:
            alice = User(email="alice@example.org", display_name="alice", role="member")
            bob = User(email="bob@example.org", display_name="bob", role="member")
            db.add_all([alice, bob])
            db.commit()
            resets = ResetTokenStore(db)
            spent = resets.issue(alice.id, T0, timedelta(hours=1))
            resets.claim(spent.token, T0 + timedelta(minutes=5))
            db.commit()
            resets.issue(bob.id, T0, timedelta(hours=1))
            live = resets.issue(alice.id, T0 + timedelta(hours=2), timedelta(hours=1))

            settings = MagicMock()
            settings.SESSION_SWEEP_ENABLED = True
            # The spent token and bob's expired one go; alice's fresh token stays.
            self.assertEqual(run_session_sweep(db, settings, now=T0 + timedelta(hours=2, minutes=30)), 2)
            remaining = db.query(PasswordResetToken).all()
            self.assertEqual([r.user_id for r in remaining], [alice.id])
            self.assertEqual(resets.claim(live.token, T0 + timedelta(hours=2, minutes=31)), alice.id)
        finally:
            db.close()


class TestSessionSweeperMain(unittest.TestCase):
    @patch("refugio.session_sweeper.run_session_sweep", return_value=3)
    @patch("refugio.session_sweeper.SessionLocal")
    def test_main_closes_session(self, mock_session_local: MagicMock, mock_sweep: MagicMock) -> None:
        self.assertEqual(sweeper_main(), 0)
        mock_sweep.assert_called_once()
        mock_session_local.return_value.close.assert_called_once()

    @patch("refugio.session_sweeper.run_session_sweep", side_effect=OperationalError("DELETE", {}, Exception("down")))
    @patch("refugio.session_sweeper.SessionLocal")
    def test_main_reports_database_failure(self, mock_session_local: MagicMock, _sweep: MagicMock) -> None:
        self.assertEqual(sweeper_main(), 1)
        mock_session_local.return_value.close.assert_called_once()
