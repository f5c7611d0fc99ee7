"""Pydantic request/response schemas."""

from refugio.schemas.access import (
    AccessCheckRequest,
    AccessDecision,
    AccessOutcome,
    AuthState,
)
from refugio.schemas.auth import (
    AuthResult,
    AuthUser,
    EmailRequest,
    MessageResponse,
    PasswordChangeRequest,
    PasswordResetConfirmRequest,
    PasswordResetGrant,
    RoleUpdateRequest,
    SessionRecord,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    UserListItem,
    UsersListResponse,
    WhoAmIResponse,
)
from refugio.schemas.health import HealthResponse
from refugio.schemas.roles import ROLE_VALUES, RoleName

__all__ = [
    "AccessCheckRequest",
    "AccessDecision",
    "AccessOutcome",
    "AuthResult",
    "AuthState",
    "AuthUser",
    "EmailRequest",
    "HealthResponse",
    "MessageResponse",
    "PasswordChangeRequest",
    "PasswordResetConfirmRequest",
    "PasswordResetGrant",
    "ROLE_VALUES",
    "RoleName",
    "RoleUpdateRequest",
    "SessionRecord",
    "SessionResponse",
    "SignInRequest",
    "SignUpRequest",
    "UserListItem",
    "UsersListResponse",
    "WhoAmIResponse",
]
