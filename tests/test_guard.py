"""Unit tests for refugio.services.guard.evaluate_access and login redirects."""

import unittest
from urllib.parse import parse_qs, urlsplit

from pydantic import ValidationError

from refugio.schemas.access import AuthState
from refugio.schemas.auth import AuthUser
from refugio.services.guard import evaluate_access, login_redirect


def _state(role: str) -> AuthState:
    return AuthState.authenticated(AuthUser(id="u-1", email="u@example.org", role=role))


def _next_param(url: str) -> str:
    return parse_qs(urlsplit(url).query)["next"][0]


class TestAuthState(unittest.TestCase):
    def test_authenticated_requires_user(self) -> None:
        with self.assertRaises(ValidationError):
            AuthState(status="authenticated")

    def test_anonymous_must_not_carry_user(self) -> None:
        with self.assertRaises(ValidationError):
            AuthState(status="anonymous", user=AuthUser(id="u", email="u@example.org"))

    def test_from_user(self) -> None:
        self.assertEqual(AuthState.from_user(None).status, "anonymous")
        self.assertEqual(AuthState.from_user(AuthUser(id="u", email="u@example.org")).status, "authenticated")


class TestLoginRedirect(unittest.TestCase):
    def test_carries_requested_path(self) -> None:
        url = login_redirect("/admin/users?tab=roles")
        self.assertTrue(url.startswith("/login?"))
        self.assertEqual(_next_param(url), "/admin/users?tab=roles")

    def test_custom_login_path(self) -> None:
        self.assertTrue(login_redirect("/x", "/auth/sign-in").startswith("/auth/sign-in?"))

    def test_foreign_targets_resume_at_root(self) -> None:
        for target in ("https://evil.example", "//evil.example/x", "/\\evil", "", None, "relative"):
            self.assertEqual(_next_param(login_redirect(target)), "/")


class TestEvaluateAccess(unittest.TestCase):
    def test_loading_waits(self) -> None:
        decision = evaluate_access(AuthState.loading(), admin_only=True, path="/admin")
        self.assertEqual(decision.outcome, "wait")
        self.assertFalse(decision.allowed)

    def test_anonymous_is_redirected_with_resume_path(self) -> None:
        decision = evaluate_access(AuthState.anonymous(), path="/sermons/new")
        self.assertEqual(decision.outcome, "redirect")
        self.assertEqual(_next_param(decision.redirect_to), "/sermons/new")

    def test_anonymous_redirect_precedes_every_other_check(self) -> None:
        decision = evaluate_access(
            AuthState.anonymous(),
            required_permission="manage_users",
            required_roles=["admin"],
            admin_only=True,
            path="/admin",
        )
        self.assertEqual(decision.outcome, "redirect")

    def test_admin_only(self) -> None:
        denied = evaluate_access(_state("pastor"), admin_only=True)
        self.assertEqual(denied.outcome, "access_denied")
        self.assertEqual(denied.required_roles, ["admin"])
        self.assertEqual(denied.actual_role, "pastor")
        self.assertIn("pastor", denied.message)
        self.assertTrue(evaluate_access(_state("admin"), admin_only=True).allowed)

    def test_missing_permission(self) -> None:
        decision = evaluate_access(_state("editor"), required_permission="manage_events")
        self.assertEqual(decision.outcome, "insufficient_permissions")
        self.assertEqual(decision.required_permission, "manage_events")
        self.assertEqual(decision.actual_role, "editor")
        self.assertIn("manage_events", decision.message)

    def test_permission_granted(self) -> None:
        self.assertTrue(evaluate_access(_state("pastor"), required_permission="manage_events").allowed)
        self.assertTrue(evaluate_access(_state("member"), required_permission="read").allowed)

    def test_admin_passes_any_permission_and_role(self) -> None:
        self.assertTrue(evaluate_access(_state("admin"), required_permission="launch_rockets").allowed)
        self.assertTrue(evaluate_access(_state("admin"), required_roles=["pastor"]).allowed)

    def test_required_roles_membership(self) -> None:
        self.assertTrue(evaluate_access(_state("pastor"), required_roles=["pastor", "editor"]).allowed)
        self.assertTrue(evaluate_access(_state("editor"), required_roles="leader").allowed)
        denied = evaluate_access(_state("member"), required_roles=["pastor", "leader"])
        self.assertEqual(denied.outcome, "access_denied")
        self.assertEqual(denied.required_roles, ["pastor", "editor"])
        self.assertEqual(denied.actual_role, "member")

    def test_permission_checked_before_roles(self) -> None:
        decision = evaluate_access(
            _state("member"),
            required_permission="manage_blog",
            required_roles=["editor"],
        )
        self.assertEqual(decision.outcome, "insufficient_permissions")

    def test_unknown_role_is_denied(self) -> None:
        state = _state("deacon")
        self.assertEqual(evaluate_access(state, required_permission="read").outcome, "insufficient_permissions")
        self.assertEqual(evaluate_access(state, required_roles=["member"]).outcome, "access_denied")
        self.assertEqual(evaluate_access(state, admin_only=True).outcome, "access_denied")

    def test_no_requirements_allows_any_signed_in_user(self) -> None:
        decision = evaluate_access(_state("member"))
        self.assertEqual(decision.outcome, "allow")
        self.assertEqual(decision.actual_role, "member")

    def test_outcome_is_total_over_inputs(self) -> None:
        states = [AuthState.loading(), AuthState.anonymous()] + [
            _state(r) for r in ("admin", "pastor", "editor", "member", "deacon")
        ]
        for state in states:
            for perm in (None, "read", "manage_users", "bogus"):
                for roles in (None, [], ["admin"], ["member", "editor"]):
                    for admin_only in (False, True):
                        decision = evaluate_access(
                            state,
                            required_permission=perm,
                            required_roles=roles,
                            admin_only=admin_only,
                        )
                        self.assertIn(
                            decision.outcome,
                            {"wait", "redirect", "access_denied", "insufficient_permissions", "allow"},
                        )
