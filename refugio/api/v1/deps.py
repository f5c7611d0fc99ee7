"""Auth dependencies: backend selection, bearer token, auth state and the route guard."""

from collections.abc import Awaitable, Callable, Iterable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from refugio.core.config import get_settings
from refugio.core.database import get_db
from refugio.schemas.access import AuthState
from refugio.schemas.auth import AuthUser
from refugio.services.auth import AuthService, LocalAuthService
from refugio.services.guard import evaluate_access
from refugio.services.managed_auth import ManagedAuthService

security = HTTPBearer(auto_error=False)


def get_auth_service(db: Annotated[Session, Depends(get_db)]) -> AuthService:
    """Dependency: the one AuthService implementation configured for this deployment."""
    settings = get_settings()
    if settings.AUTH_BACKEND == "managed":
        return ManagedAuthService(settings)
    return LocalAuthService(db, settings)


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str | None:
    """Dependency: raw bearer token, or None when the header is absent."""
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


async def get_auth_state(
    token: Annotated[str | None, Depends(get_bearer_token)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> AuthState:
    """Dependency: anonymous or authenticated. A missing, expired or revoked token is anonymous."""
    user = await service.current_user(token)
    return AuthState.from_user(user)


async def get_current_user(
    state: Annotated[AuthState, Depends(get_auth_state)],
) -> AuthUser:
    """Dependency: require a valid session. Raises 401 otherwise."""
    if state.user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return state.user


def _requested_path(request: Request) -> str:
    if request.url.query:
        return f"{request.url.path}?{request.url.query}"
    return request.url.path


def require_access(
    *,
    permission: str | None = None,
    roles: str | Iterable[str] | None = None,
    admin_only: bool = False,
) -> Callable[..., Awaitable[AuthUser]]:
    """
    Build a dependency that runs the route guard for the current request.

    redirect -> 401 (detail carries redirect_to), access_denied and
    insufficient_permissions -> 403 (detail carries the decision), allow -> the user.
    """
    required_roles = [roles] if isinstance(roles, str) else (list(roles) if roles else None)

    async def checker(
        request: Request,
        state: Annotated[AuthState, Depends(get_auth_state)],
    ) -> AuthUser:
        decision = evaluate_access(
            state,
            required_permission=permission,
            required_roles=required_roles,
            admin_only=admin_only,
            path=_requested_path(request),
            login_path=get_settings().LOGIN_PATH,
        )
        if decision.outcome == "redirect":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=decision.model_dump(),
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not decision.allowed or state.user is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=decision.model_dump(),
            )
        return state.user

    return checker


require_admin = require_access(admin_only=True)
