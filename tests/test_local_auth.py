"""Unit tests for LocalAuthService (self-managed credentials and sessions)."""

import asyncio
import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from refugio.core.exceptions import (
    Conflict,
    InvalidCredentials,
    InvalidResetToken,
    StoreUnavailable,
    UserNotFound,
    WeakPassword,
)
from refugio.core.security import hash_password
from refugio.models import Base
from refugio.services.auth import LocalAuthService
from refugio.services.credentials import CredentialStore

FAST_ROUNDS = 4
T0 = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def _make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()


def _settings():
    s = MagicMock()
    s.BCRYPT_ROUNDS = FAST_ROUNDS
    s.SESSION_TTL_DAYS = 7
    s.PASSWORD_RESET_TTL_MINUTES = 60
    return s


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class LocalAuthTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = _make_session()
        self.clock = FakeClock(T0)
        self.service = LocalAuthService(self.db, _settings(), clock=self.clock)
        self.store = CredentialStore(self.db)
        self.ana = self.store.create(
            "ana@example.org",
            hash_password("correct1horse", rounds=FAST_ROUNDS),
            display_name="Ana",
            role="editor",
        )

    def tearDown(self) -> None:
        self.db.close()


class TestSignIn(LocalAuthTestCase):
    def test_sign_in_then_current_user(self) -> None:
        result = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        self.assertEqual(result.user.id, self.ana.id)
        self.assertEqual(result.user.role, "editor")
        self.assertEqual(result.session.expires_at, T0 + timedelta(days=7))
        current = asyncio.run(self.service.current_user(result.session.token))
        self.assertEqual(current.id, self.ana.id)
        self.assertEqual(current.email, "ana@example.org")

    def test_email_is_case_insensitive(self) -> None:
        result = asyncio.run(self.service.sign_in("  ANA@Example.ORG", "correct1horse"))
        self.assertEqual(result.user.id, self.ana.id)

    def test_sign_in_records_last_login(self) -> None:
        asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        self.assertIsNotNone(self.store.find_by_id(self.ana.id).last_login_at)

    def test_unknown_email_and_wrong_password_are_indistinguishable(self) -> None:
        with self.assertRaises(InvalidCredentials) as unknown:
            asyncio.run(self.service.sign_in("nobody@example.org", "correct1horse"))
        with self.assertRaises(InvalidCredentials) as wrong:
            asyncio.run(self.service.sign_in("ana@example.org", "wrong1horse"))
        self.assertEqual(unknown.exception.message, wrong.exception.message)
        self.assertEqual(str(unknown.exception), str(wrong.exception))

    def test_account_without_local_credential_cannot_sign_in(self) -> None:
        self.store.create("sso@example.org", None)
        with self.assertRaises(InvalidCredentials):
            asyncio.run(self.service.sign_in("sso@example.org", "anything1"))

    def test_store_failure_is_store_unavailable(self) -> None:
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
        service = LocalAuthService(db, _settings())
        with self.assertRaises(StoreUnavailable):
            asyncio.run(service.sign_in("ana@example.org", "correct1horse"))
        db.rollback.assert_called()


class TestSignUp(LocalAuthTestCase):
    def test_sign_up_creates_member_with_session(self) -> None:
        result = asyncio.run(self.service.sign_up("New@Example.org", "fresh1start", "Nuevo"))
        self.assertEqual(result.user.email, "new@example.org")
        self.assertEqual(result.user.role, "member")
        self.assertEqual(result.user.display_name, "Nuevo")
        current = asyncio.run(self.service.current_user(result.session.token))
        self.assertEqual(current.id, result.user.id)

    def test_sign_up_with_existing_email_in_other_case(self) -> None:
        with self.assertRaises(Conflict):
            asyncio.run(self.service.sign_up("ANA@EXAMPLE.ORG", "fresh1start"))

    def test_weak_passwords_rejected(self) -> None:
        for weak in ("short1", "lettersonly", "1234567890", "x1" * 65):
            with self.assertRaises(WeakPassword):
                asyncio.run(self.service.sign_up("weak@example.org", weak))
        self.assertIsNone(self.store.find_by_email("weak@example.org"))

    def test_new_user_can_sign_in_afterwards(self) -> None:
        created = asyncio.run(self.service.sign_up("b@example.org", "fresh1start"))
        result = asyncio.run(self.service.sign_in("b@example.org", "fresh1start"))
        self.assertEqual(result.user.id, created.user.id)
        current = asyncio.run(self.service.current_user(result.session.token))
        self.assertEqual(current.id, created.user.id)


class TestSignOutAndCurrentUser(LocalAuthTestCase):
    def test_sign_out_revokes(self) -> None:
        result = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        asyncio.run(self.service.sign_out(result.session.token))
        self.assertIsNone(asyncio.run(self.service.current_user(result.session.token)))

    def test_sign_out_is_idempotent(self) -> None:
        result = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        asyncio.run(self.service.sign_out(result.session.token))
        asyncio.run(self.service.sign_out(result.session.token))
        asyncio.run(self.service.sign_out("never-issued"))
        asyncio.run(self.service.sign_out(None))

    def test_current_user_anonymous_cases(self) -> None:
        self.assertIsNone(asyncio.run(self.service.current_user(None)))
        self.assertIsNone(asyncio.run(self.service.current_user("")))
        self.assertIsNone(asyncio.run(self.service.current_user("garbage")))

    def test_expired_session_is_anonymous(self) -> None:
        result = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        self.clock.now = T0 + timedelta(days=7)
        self.assertIsNone(asyncio.run(self.service.current_user(result.session.token)))

    def test_current_user_reflects_role_change(self) -> None:
        result = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        self.store.update_role(self.ana.id, "pastor")
        current = asyncio.run(self.service.current_user(result.session.token))
        self.assertEqual(current.role, "pastor")

    def test_deleted_user_is_anonymous(self) -> None:
        result = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        self.store.delete(self.ana.id)
        self.assertIsNone(asyncio.run(self.service.current_user(result.session.token)))


class TestChangePassword(LocalAuthTestCase):
    def test_change_password_keeps_current_and_revokes_others(self) -> None:
        current = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        other = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        revoked = asyncio.run(
            self.service.change_password(
                self.ana.id,
                "correct1horse",
                "battery2staple",
                current_token=current.session.token,
            )
        )
        self.assertEqual(revoked, 1)
        self.assertIsNotNone(asyncio.run(self.service.current_user(current.session.token)))
        self.assertIsNone(asyncio.run(self.service.current_user(other.session.token)))
        with self.assertRaises(InvalidCredentials):
            asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        asyncio.run(self.service.sign_in("ana@example.org", "battery2staple"))

    def test_change_password_requires_old_password(self) -> None:
        with self.assertRaises(InvalidCredentials):
            asyncio.run(self.service.change_password(self.ana.id, "wrong1horse", "battery2staple"))

    def test_change_password_validates_new_password(self) -> None:
        with self.assertRaises(WeakPassword):
            asyncio.run(self.service.change_password(self.ana.id, "correct1horse", "weak"))

    def test_change_password_unknown_user(self) -> None:
        with self.assertRaises(UserNotFound):
            asyncio.run(self.service.change_password("missing", "correct1horse", "battery2staple"))

    def test_failed_session_revocation_keeps_old_password(self) -> None:
        current = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        other = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        with patch.object(
            self.service.sessions.store,
            "delete_for_user",
            side_effect=OperationalError("DELETE", {}, Exception("connection reset")),
        ):
            with self.assertRaises(StoreUnavailable):
                asyncio.run(
                    self.service.change_password(
                        self.ana.id,
                        "correct1horse",
                        "battery2staple",
                        current_token=current.session.token,
                    )
                )
        asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        with self.assertRaises(InvalidCredentials):
            asyncio.run(self.service.sign_in("ana@example.org", "battery2staple"))
        self.assertIsNotNone(asyncio.run(self.service.current_user(other.session.token)))


class TestPasswordReset(LocalAuthTestCase):
    def test_reset_sets_password_and_revokes_every_session(self) -> None:
        first = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        second = asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        grant = self.service.issue_password_reset(self.ana.id)
        self.assertEqual(grant.expires_at, T0 + timedelta(minutes=60))

        revoked = asyncio.run(self.service.complete_password_reset(grant.token, "battery2staple"))

        self.assertEqual(revoked, 2)
        self.assertIsNone(asyncio.run(self.service.current_user(first.session.token)))
        self.assertIsNone(asyncio.run(self.service.current_user(second.session.token)))
        with self.assertRaises(InvalidCredentials):
            asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))
        asyncio.run(self.service.sign_in("ana@example.org", "battery2staple"))

    def test_token_works_once(self) -> None:
        grant = self.service.issue_password_reset(self.ana.id)
        asyncio.run(self.service.complete_password_reset(grant.token, "battery2staple"))
        with self.assertRaises(InvalidResetToken):
            asyncio.run(self.service.complete_password_reset(grant.token, "another3secret"))
        asyncio.run(self.service.sign_in("ana@example.org", "battery2staple"))

    def test_expired_token_rejected(self) -> None:
        grant = self.service.issue_password_reset(self.ana.id)
        self.clock.now = T0 + timedelta(minutes=60)
        with self.assertRaises(InvalidResetToken):
            asyncio.run(self.service.complete_password_reset(grant.token, "battery2staple"))
        asyncio.run(self.service.sign_in("ana@example.org", "correct1horse"))

    def test_weak_password_does_not_spend_token(self) -> None:
        grant = self.service.issue_password_reset(self.ana.id)
        with self.assertRaises(WeakPassword):
            asyncio.run(self.service.complete_password_reset(grant.token, "weak"))
        asyncio.run(self.service.complete_password_reset(grant.token, "battery2staple"))
        asyncio.run(self.service.sign_in("ana@example.org", "battery2staple"))

    def test_unknown_token_rejected(self) -> None:
        for token in ("", "never-issued"):
            with self.assertRaises(InvalidResetToken):
                asyncio.run(self.service.complete_password_reset(token, "battery2staple"))

    def test_new_token_replaces_unused_one(self) -> None:
        old = self.service.issue_password_reset(self.ana.id)
        new = self.service.issue_password_reset(self.ana.id)
        with self.assertRaises(InvalidResetToken):
            asyncio.run(self.service.complete_password_reset(old.token, "battery2staple"))
        asyncio.run(self.service.complete_password_reset(new.token, "battery2staple"))

    def test_issue_for_unknown_user(self) -> None:
        with self.assertRaises(UserNotFound):
            self.service.issue_password_reset("missing")

    def test_request_hands_token_to_sender(self) -> None:
        sender = MagicMock()
        service = LocalAuthService(self.db, _settings(), clock=self.clock, reset_sender=sender)
        asyncio.run(service.request_password_reset("ANA@example.org"))
        sender.assert_called_once()
        email, token, expires_at = sender.call_args.args
        self.assertEqual(email, "ana@example.org")
        self.assertEqual(expires_at, T0 + timedelta(minutes=60))
        asyncio.run(service.complete_password_reset(token, "battery2staple"))

    def test_request_for_unknown_email_is_silent(self) -> None:
        sender = MagicMock()
        service = LocalAuthService(self.db, _settings(), clock=self.clock, reset_sender=sender)
        asyncio.run(service.request_password_reset("nobody@example.org"))
        sender.assert_not_called()

    def test_request_without_sender_issues_nothing(self) -> None:
        asyncio.run(self.service.request_password_reset("ana@example.org"))
        with self.assertRaises(InvalidResetToken):
            asyncio.run(self.service.complete_password_reset("anything", "battery2staple"))

    def test_resend_confirmation_is_a_no_op(self) -> None:
        self.assertIsNone(asyncio.run(self.service.resend_confirmation("ana@example.org")))
