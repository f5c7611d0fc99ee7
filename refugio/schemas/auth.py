"""Request/response schemas and domain records for authentication and sessions."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from refugio.schemas.roles import RoleName, normalize_role, validate_role


def _canonical_or_raw(value: str) -> str:
    """Fold legacy aliases; keep unknown values (lower-cased) so permission checks deny them."""
    role = normalize_role(value)
    if role is not None:
        return role
    return (value or "").strip().lower()


class AuthUser(BaseModel):
    """Authenticated user as seen by the facade, the guard and the UI (no password hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    display_name: str = ""
    role: str = Field(default="member", description="Canonical role; unknown values grant nothing.")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("role", mode="before")
    @classmethod
    def fold_role(cls, v: str | None) -> str:
        return _canonical_or_raw(v or "")

    @field_validator("display_name", mode="before")
    @classmethod
    def display_name_not_null(cls, v: str | None) -> str:
        return v or ""


class SessionRecord(BaseModel):
    """Issued session. token is the raw bearer token and is only ever held by the caller."""

    token: str
    user_id: str
    issued_at: datetime
    expires_at: datetime


class AuthResult(BaseModel):
    """Return value of sign-in and sign-up."""

    user: AuthUser
    session: SessionRecord


class SignInRequest(BaseModel):
    """Credentials for sign-in."""

    email: str = Field(..., min_length=3, max_length=255, description="Email address")
    password: str = Field(..., min_length=1, max_length=128, description="Password")


class SignUpRequest(BaseModel):
    """New account details. Self sign-up always receives the default role."""

    email: str = Field(..., min_length=3, max_length=255, description="Email address")
    password: str = Field(..., min_length=1, max_length=128, description="Password")
    display_name: str | None = Field(default=None, max_length=255, description="Name shown in the UI")

    @field_validator("email")
    @classmethod
    def email_has_at(cls, v: str) -> str:
        s = v.strip()
        local, _, domain = s.partition("@")
        if not local or "." not in domain or " " in s:
            raise ValueError("email must look like name@example.org")
        return s


class PasswordResetGrant(BaseModel):
    """One-time reset token for a user. token is the raw value; only its hash is stored."""

    user_id: str
    token: str = Field(..., description="Single-use reset token")
    expires_at: datetime = Field(..., description="Token expiry (UTC)")


class EmailRequest(BaseModel):
    """Body for password reset and confirmation resend requests."""

    email: str = Field(..., min_length=3, max_length=255, description="Email address")


class PasswordResetConfirmRequest(BaseModel):
    """Body for POST /auth/password-reset/confirm."""

    token: str = Field(..., min_length=1, max_length=512, description="Token from the reset link")
    new_password: str = Field(..., min_length=1, max_length=128)


class MessageResponse(BaseModel):
    """Acknowledgement that says nothing about whether the address is registered."""

    detail: str


class PasswordChangeRequest(BaseModel):
    """Body for POST /auth/password."""

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class SessionResponse(BaseModel):
    """Bearer token returned after sign-in or sign-up."""

    access_token: str = Field(..., description="Opaque bearer token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_at: datetime = Field(..., description="Token expiry (UTC)")
    user: AuthUser


class WhoAmIResponse(BaseModel):
    """Response for GET /auth/me. Anonymous is a normal answer, not an error."""

    authenticated: bool
    user: AuthUser | None = None
    permissions: list[str] = Field(default_factory=list)


class UserListItem(BaseModel):
    """User entry for the admin user list (no password)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    display_name: str
    role: str
    created_at: datetime | None = None
    last_login_at: datetime | None = None


class UsersListResponse(BaseModel):
    """Response for GET /users."""

    users: list[UserListItem]
    counts_by_role: dict[str, int] = Field(default_factory=dict)


class RoleUpdateRequest(BaseModel):
    """Body for PATCH /users/{id}/role. Legacy names (leader, user) are accepted and folded."""

    role: RoleName

    @field_validator("role", mode="before")
    @classmethod
    def canonical_role(cls, v: str) -> str:
        return validate_role(v)
