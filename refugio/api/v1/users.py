"""User management for administrators: list accounts, change roles, issue password resets, delete accounts."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from refugio.api.v1.deps import require_access, require_admin
from refugio.core.config import get_settings
from refugio.core.database import get_db
from refugio.core.exceptions import UserNotFound
from refugio.schemas.auth import (
    AuthUser,
    PasswordResetGrant,
    RoleUpdateRequest,
    UserListItem,
    UsersListResponse,
)
from refugio.services.auth import LocalAuthService
from refugio.services.credentials import CredentialStore
from refugio.services.permissions import MANAGE_USERS

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_local_backend() -> None:
    if get_settings().AUTH_BACKEND != "local":
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="User management is handled by the identity provider.",
        )


def get_credential_store(db: Annotated[Session, Depends(get_db)]) -> CredentialStore:
    """Dependency: local credential store. Managed deployments keep users with the provider."""
    _require_local_backend()
    return CredentialStore(db)


def get_local_auth_service(db: Annotated[Session, Depends(get_db)]) -> LocalAuthService:
    """Dependency: the self-managed backend, for operations the provider does not expose."""
    _require_local_backend()
    return LocalAuthService(db, get_settings())


@router.get("", response_model=UsersListResponse)
def list_users(
    _manager: Annotated[AuthUser, Depends(require_access(permission=MANAGE_USERS))],
    store: Annotated[CredentialStore, Depends(get_credential_store)],
) -> UsersListResponse:
    """List all users with per-role counts (manage_users)."""
    users = store.list_users()
    return UsersListResponse(
        users=[UserListItem.model_validate(u) for u in users],
        counts_by_role=store.counts_by_role(),
    )


@router.patch("/{user_id}/role", response_model=UserListItem)
def update_role(
    user_id: str,
    body: RoleUpdateRequest,
    admin: Annotated[AuthUser, Depends(require_admin)],
    store: Annotated[CredentialStore, Depends(get_credential_store)],
) -> UserListItem:
    """Assign a canonical role to a user (admin only)."""
    user = store.update_role(user_id, body.role)
    logger.info(
        "Role assigned",
        extra={"event": "role_assigned", "actor_id": admin.id, "user_id": user_id, "role": body.role},
    )
    return UserListItem.model_validate(user)


@router.post(
    "/{user_id}/password-reset",
    response_model=PasswordResetGrant,
    status_code=status.HTTP_201_CREATED,
)
def issue_password_reset(
    user_id: str,
    admin: Annotated[AuthUser, Depends(require_admin)],
    service: Annotated[LocalAuthService, Depends(get_local_auth_service)],
) -> PasswordResetGrant:
    """
    Issue a one-time reset token for a user (admin only).

    The token is returned once; pass it to the user out of band. Issuing again
    invalidates the previous unused token.
    """
    grant = service.issue_password_reset(user_id)
    logger.info(
        "Password reset issued by administrator",
        extra={"event": "admin_password_reset", "actor_id": admin.id, "user_id": user_id},
    )
    return grant


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    admin: Annotated[AuthUser, Depends(require_admin)],
    store: Annotated[CredentialStore, Depends(get_credential_store)],
) -> Response:
    """Delete a user and revoke all of their sessions (admin only)."""
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Administrators cannot delete their own account.",
        )
    if not store.delete(user_id):
        raise UserNotFound()
    logger.info("User removed", extra={"event": "user_removed", "actor_id": admin.id, "user_id": user_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
