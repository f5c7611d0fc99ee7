"""Sign-in, sign-up, sign-out, who-am-I, password change and password reset endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from refugio.api.v1.deps import get_auth_service, get_auth_state, get_bearer_token, get_current_user
from refugio.schemas.access import AuthState
from refugio.schemas.auth import (
    AuthResult,
    AuthUser,
    EmailRequest,
    MessageResponse,
    PasswordChangeRequest,
    PasswordResetConfirmRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    WhoAmIResponse,
)
from refugio.services.auth import AuthService
from refugio.services.permissions import permissions_for

router = APIRouter()

RESET_REQUESTED = "If that address belongs to an account, a password reset link is on its way."
CONFIRMATION_RESENT = "If that address has an unconfirmed account, a new confirmation email is on its way."


def _session_response(result: AuthResult) -> SessionResponse:
    return SessionResponse(
        access_token=result.session.token,
        token_type="bearer",
        expires_at=result.session.expires_at,
        user=result.user,
    )


@router.post("/sign-in", response_model=SessionResponse)
async def sign_in(
    body: SignInRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> SessionResponse:
    """
    Authenticate with email and password; returns an opaque bearer token.
    Include the token in the Authorization header as: Bearer <access_token>
    """
    result = await service.sign_in(body.email, body.password)
    return _session_response(result)


@router.post("/sign-up", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(
    body: SignUpRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> SessionResponse:
    """Create a member account and sign it in."""
    result = await service.sign_up(body.email, body.password, body.display_name)
    return _session_response(result)


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    token: Annotated[str | None, Depends(get_bearer_token)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> Response:
    """Revoke the presented session. Succeeds for unknown or missing tokens too."""
    await service.sign_out(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=WhoAmIResponse)
async def who_am_i(
    state: Annotated[AuthState, Depends(get_auth_state)],
) -> WhoAmIResponse:
    """Current user and their permissions; anonymous callers get authenticated=false."""
    if state.user is None:
        return WhoAmIResponse(authenticated=False)
    return WhoAmIResponse(
        authenticated=True,
        user=state.user,
        permissions=sorted(permissions_for(state.user.role)),
    )


@router.post("/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    body: PasswordChangeRequest,
    user: Annotated[AuthUser, Depends(get_current_user)],
    token: Annotated[str | None, Depends(get_bearer_token)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> Response:
    """Rotate the password. Every other session of the user is revoked; this one stays valid."""
    await service.change_password(
        user.id,
        body.current_password,
        body.new_password,
        current_token=token,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/password-reset", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED)
async def request_password_reset(
    body: EmailRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    """Start a password reset. The reply is the same whether or not the address is registered."""
    await service.request_password_reset(body.email)
    return MessageResponse(detail=RESET_REQUESTED)


@router.post("/password-reset/confirm", status_code=status.HTTP_204_NO_CONTENT)
async def confirm_password_reset(
    body: PasswordResetConfirmRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> Response:
    """Set a new password with a reset token. Every session of the user is revoked."""
    await service.complete_password_reset(body.token, body.new_password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/resend-confirmation", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED)
async def resend_confirmation(
    body: EmailRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    await service.resend_confirmation(body.email)
    return MessageResponse(detail=CONFIRMATION_RESENT)
