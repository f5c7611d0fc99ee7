"""Schemas for the route/feature guard: authentication state in, access decision out."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from refugio.schemas.auth import AuthUser

AuthStatus = Literal["loading", "anonymous", "authenticated"]

AccessOutcome = Literal[
    "wait",
    "redirect",
    "access_denied",
    "insufficient_permissions",
    "allow",
]


class AuthState(BaseModel):
    """Current authentication state as seen by the guard."""

    status: AuthStatus
    user: AuthUser | None = None

    @model_validator(mode="after")
    def user_matches_status(self) -> "AuthState":
        if self.status == "authenticated" and self.user is None:
            raise ValueError("authenticated state requires a user")
        if self.status != "authenticated" and self.user is not None:
            raise ValueError(f"{self.status} state must not carry a user")
        return self

    @classmethod
    def loading(cls) -> "AuthState":
        return cls(status="loading")

    @classmethod
    def anonymous(cls) -> "AuthState":
        return cls(status="anonymous")

    @classmethod
    def authenticated(cls, user: AuthUser) -> "AuthState":
        return cls(status="authenticated", user=user)

    @classmethod
    def from_user(cls, user: AuthUser | None) -> "AuthState":
        return cls.authenticated(user) if user is not None else cls.anonymous()


class AccessDecision(BaseModel):
    """What to render for a guarded route or feature."""

    outcome: AccessOutcome
    redirect_to: str | None = Field(default=None, description="Sign-in URL, set for outcome=redirect")
    required_roles: list[str] = Field(default_factory=list)
    required_permission: str | None = None
    actual_role: str | None = None
    title: str = ""
    message: str = ""

    @property
    def allowed(self) -> bool:
        return self.outcome == "allow"


class AccessCheckRequest(BaseModel):
    """Body for POST /access/check."""

    path: str = Field(default="/", max_length=2048, description="Originally requested route")
    required_permission: str | None = Field(default=None, max_length=64)
    required_roles: list[str] | None = Field(default=None, max_length=8)
    admin_only: bool = False
