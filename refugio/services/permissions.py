"""Role hierarchy and role -> permission mapping. Pure functions, no I/O; unknown input is denied."""

from refugio.schemas.roles import RoleName, normalize_role

# Permission constants consumed by the guard and the HTTP layer.
MANAGE_USERS = "manage_users"
MANAGE_EVENTS = "manage_events"
MANAGE_SERMONS = "manage_sermons"
MANAGE_BLOG = "manage_blog"
READ = "read"
WRITE = "write"
DELETE = "delete"
VIEW_DONATIONS = "view_donations"

ALL_PERMISSIONS: frozenset[str] = frozenset(
    {
        MANAGE_USERS,
        MANAGE_EVENTS,
        MANAGE_SERMONS,
        MANAGE_BLOG,
        READ,
        WRITE,
        DELETE,
        VIEW_DONATIONS,
    }
)

# Higher rank = more privileged. Used only for "at least as privileged as" checks.
ROLE_RANKS: dict[RoleName, int] = {
    "member": 1,
    "editor": 2,
    "pastor": 3,
    "admin": 4,
}

ROLE_PERMISSIONS: dict[RoleName, frozenset[str]] = {
    "admin": ALL_PERMISSIONS,
    "pastor": frozenset(
        {READ, WRITE, MANAGE_EVENTS, MANAGE_SERMONS, MANAGE_BLOG, VIEW_DONATIONS}
    ),
    "editor": frozenset({READ, WRITE, MANAGE_BLOG}),
    "member": frozenset({READ}),
}


def role_rank(role: str | None) -> int:
    """Rank of role, or 0 when the role is unknown."""
    canonical = normalize_role(role)
    if canonical is None:
        return 0
    return ROLE_RANKS[canonical]


def has_role(role: str | None, required: str | None) -> bool:
    """True if role is at least as privileged as required. Unknown on either side is False."""
    if normalize_role(required) is None:
        return False
    rank = role_rank(role)
    return rank > 0 and rank >= role_rank(required)


def is_admin(role: str | None) -> bool:
    return normalize_role(role) == "admin"


def permissions_for(role: str | None) -> frozenset[str]:
    """Explicit permission set for role (empty for unknown roles)."""
    canonical = normalize_role(role)
    if canonical is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(canonical, frozenset())


def has_permission(role: str | None, permission: str | None) -> bool:
    """
    True if role holds permission.

    admin holds every permission, including strings missing from every table
    entry; that override does not depend on the contents of ROLE_PERMISSIONS.
    """
    if is_admin(role):
        return True
    if not permission:
        return False
    return permission in permissions_for(role)
