"""Route/feature guard: decide between waiting, redirecting to sign-in, denying, or rendering."""

from collections.abc import Iterable
from urllib.parse import urlencode

from refugio.schemas.access import AccessDecision, AuthState
from refugio.schemas.roles import normalize_role
from refugio.services.permissions import has_permission, is_admin

DEFAULT_LOGIN_PATH = "/login"


def _safe_next(path: str | None) -> str:
    """Keep only local paths as the resume target; anything else resumes at '/'."""
    if not path or not path.startswith("/") or path.startswith("//") or "\\" in path:
        return "/"
    return path


def login_redirect(path: str | None, login_path: str = DEFAULT_LOGIN_PATH) -> str:
    """Sign-in URL that carries the originally requested path for resumption."""
    return f"{login_path}?{urlencode({'next': _safe_next(path)})}"


def _required_role_list(required_roles: str | Iterable[str] | None) -> list[str]:
    if required_roles is None:
        return []
    if isinstance(required_roles, str):
        required_roles = [required_roles]
    roles: list[str] = []
    for value in required_roles:
        canonical = normalize_role(value)
        # Unknown names stay in the list (lower-cased) so the denial view can show them.
        name = canonical or (value or "").strip().lower()
        if name and name not in roles:
            roles.append(name)
    return roles


def evaluate_access(
    state: AuthState,
    *,
    required_permission: str | None = None,
    required_roles: str | Iterable[str] | None = None,
    admin_only: bool = False,
    path: str | None = "/",
    login_path: str = DEFAULT_LOGIN_PATH,
) -> AccessDecision:
    """
    Decide what a guarded route renders. Total over its input; never raises.

    Checks run in order: loading, anonymous, admin_only, required_permission,
    required_roles. admin passes the permission and role checks regardless of
    the permission table.
    """
    if state.status == "loading":
        return AccessDecision(
            outcome="wait",
            title="Checking access",
            message="Verifying your session.",
        )

    if state.status != "authenticated" or state.user is None:
        return AccessDecision(
            outcome="redirect",
            redirect_to=login_redirect(path, login_path),
            title="Sign in required",
            message="Sign in to continue.",
        )

    role = state.user.role
    admin = is_admin(role)

    if admin_only and not admin:
        return AccessDecision(
            outcome="access_denied",
            required_roles=["admin"],
            actual_role=role,
            title="Restricted access",
            message=f"This section is only available to administrators. Your role is {role or 'unknown'}.",
        )

    if required_permission and not admin and not has_permission(role, required_permission):
        return AccessDecision(
            outcome="insufficient_permissions",
            required_permission=required_permission,
            actual_role=role,
            title="Insufficient permissions",
            message=(
                f"You need the '{required_permission}' permission to use this feature. "
                "Contact an administrator if you think you should have access."
            ),
        )

    roles = _required_role_list(required_roles)
    if roles and not admin and normalize_role(role) not in roles:
        return AccessDecision(
            outcome="access_denied",
            required_roles=roles,
            actual_role=role,
            title="Role required",
            message=(
                f"This section is available to: {', '.join(roles)}. "
                f"Your role is {role or 'unknown'}."
            ),
        )

    return AccessDecision(outcome="allow", actual_role=role)
