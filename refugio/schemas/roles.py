"""Canonical role enumeration and legacy-name normalization."""

from typing import Literal

# Stored and transported role values. Renaming any of these needs a data migration.
RoleName = Literal["admin", "pastor", "editor", "member"]

ROLE_VALUES: frozenset[str] = frozenset({"admin", "pastor", "editor", "member"})

DEFAULT_ROLE: RoleName = "member"

# Names used by the older auth implementations, mapped onto the canonical set.
ROLE_ALIASES: dict[str, RoleName] = {
    "leader": "editor",
    "user": "member",
}


def normalize_role(value: str | None) -> RoleName | None:
    """Return the canonical role for value (aliases folded, case-insensitive), or None if unknown."""
    if not value or not isinstance(value, str):
        return None
    key = value.strip().lower()
    if key in ROLE_VALUES:
        return key  # type: ignore[return-value]
    return ROLE_ALIASES.get(key)


def validate_role(value: str) -> RoleName:
    """Like normalize_role, but raise ValueError for unknown roles (used on write paths)."""
    role = normalize_role(value)
    if role is None:
        raise ValueError(f"role must be one of {sorted(ROLE_VALUES)}, got {value!r}")
    return role
