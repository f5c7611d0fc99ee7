"""Access check endpoint: the front end asks what a guarded route should render."""

from typing import Annotated

from fastapi import APIRouter, Depends

from refugio.api.v1.deps import get_auth_state
from refugio.core.config import get_settings
from refugio.schemas.access import AccessCheckRequest, AccessDecision, AuthState
from refugio.services.guard import evaluate_access

router = APIRouter()


@router.post("/check", response_model=AccessDecision)
async def check_access(
    body: AccessCheckRequest,
    state: Annotated[AuthState, Depends(get_auth_state)],
) -> AccessDecision:
    """
    Evaluate the route guard for the caller's session.

    Always 200: redirect and denial are answers to render, not request failures.
    """
    return evaluate_access(
        state,
        required_permission=body.required_permission,
        required_roles=body.required_roles,
        admin_only=body.admin_only,
        path=body.path,
        login_path=get_settings().LOGIN_PATH,
    )
