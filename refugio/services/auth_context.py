"""
Application-level authentication context.

Holds the current AuthState for one client, restores it from the persisted
session without a server round-trip, and keeps it in step with sign-in,
sign-up, sign-out and password reset. One instance per client; there is no module-level cache.
"""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from refugio.schemas.access import AccessDecision, AuthState
from refugio.schemas.auth import AuthResult, AuthUser
from refugio.services.auth import AuthService
from refugio.services.client_session import JsonFileStore, PersistedSessionStore, StoredSession
from refugio.services.guard import DEFAULT_LOGIN_PATH, evaluate_access
from refugio.services.permissions import has_permission, has_role

if TYPE_CHECKING:
    from refugio.core.config import Settings

logger = logging.getLogger(__name__)


class AuthContext:
    def __init__(
        self,
        backend: AuthService,
        storage: PersistedSessionStore,
        login_path: str = DEFAULT_LOGIN_PATH,
    ) -> None:
        self.backend = backend
        self.storage = storage
        self.login_path = login_path
        self._state = AuthState.loading()
        self._token: str | None = None

    @classmethod
    def from_settings(cls, backend: AuthService, settings: "Settings") -> "AuthContext":
        """Context persisting to CLIENT_SESSION_PATH and redirecting to LOGIN_PATH."""
        storage = PersistedSessionStore(JsonFileStore(settings.CLIENT_SESSION_PATH))
        return cls(backend, storage, login_path=settings.LOGIN_PATH)

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def user(self) -> AuthUser | None:
        return self._state.user

    @property
    def is_authenticated(self) -> bool:
        return self._state.status == "authenticated"

    def _set_anonymous(self) -> None:
        self._token = None
        self._state = AuthState.anonymous()

    def _adopt(self, result: AuthResult) -> AuthResult:
        self.storage.save(StoredSession.from_result(result))
        self._token = result.session.token
        self._state = AuthState.authenticated(result.user)
        return result

    def restore(self) -> AuthState:
        """Leave the loading state using only the locally persisted session."""
        stored = self.storage.load()
        if stored is None:
            self._set_anonymous()
        else:
            self._token = stored.access_token
            self._state = AuthState.authenticated(stored.user)
        return self._state

    async def refresh(self) -> AuthState:
        """Re-check the persisted token with the backend; drop it if the server no longer knows it."""
        if self._state.status == "loading":
            self.restore()
        if self._token is None:
            return self._state
        user = await self.backend.current_user(self._token)
        if user is None:
            logger.info("Stored session no longer valid; signing out locally")
            self.storage.clear()
            self._set_anonymous()
        else:
            self._state = AuthState.authenticated(user)
            stored = self.storage.load()
            if stored is not None:
                self.storage.save(stored.model_copy(update={"user": user}))
        return self._state

    async def sign_in(self, email: str, password: str) -> AuthResult:
        return self._adopt(await self.backend.sign_in(email, password))

    async def sign_up(self, email: str, password: str, display_name: str | None = None) -> AuthResult:
        return self._adopt(await self.backend.sign_up(email, password, display_name))

    async def sign_out(self) -> None:
        token = self._token
        # Local state goes first so a failing backend call cannot leave the client signed in.
        self.storage.clear()
        self._set_anonymous()
        if token is not None:
            await self.backend.sign_out(token)

    async def request_password_reset(self, email: str) -> None:
        await self.backend.request_password_reset(email)

    async def resend_confirmation(self, email: str) -> None:
        await self.backend.resend_confirmation(email)

    async def complete_password_reset(self, token: str, new_password: str) -> int:
        """Set a new password from a reset link. The backend ends every session, this one included."""
        revoked = await self.backend.complete_password_reset(token, new_password)
        self.storage.clear()
        self._set_anonymous()
        return revoked

    def has_role(self, required: str) -> bool:
        return self.user is not None and has_role(self.user.role, required)

    def has_permission(self, permission: str) -> bool:
        return self.user is not None and has_permission(self.user.role, permission)

    def guard(
        self,
        path: str,
        *,
        required_permission: str | None = None,
        required_roles: str | Iterable[str] | None = None,
        admin_only: bool = False,
    ) -> AccessDecision:
        return evaluate_access(
            self._state,
            required_permission=required_permission,
            required_roles=required_roles,
            admin_only=admin_only,
            path=path,
            login_path=self.login_path,
        )
