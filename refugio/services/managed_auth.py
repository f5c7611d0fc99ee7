"""Managed-provider backend: delegate credentials and sessions to a hosted GoTrue-compatible identity API."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx

from refugio.core.exceptions import (
    ConfirmationPending,
    Conflict,
    InvalidCredentials,
    InvalidResetToken,
    StoreUnavailable,
    WeakPassword,
)
from refugio.core.security import validate_password
from refugio.models.base import utcnow
from refugio.schemas.auth import AuthResult, AuthUser, SessionRecord
from refugio.schemas.roles import DEFAULT_ROLE, normalize_role
from refugio.services.auth import AuthService

if TYPE_CHECKING:
    from refugio.core.config import Settings

logger = logging.getLogger(__name__)

# Provider answers meaning "this token no longer identifies a session".
_GONE_STATUSES = frozenset({401, 403, 404})


def _error_text(resp: httpx.Response) -> str:
    """Lower-cased error description from a provider response, whatever shape it has."""
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "").lower()[:500]
    if not isinstance(body, dict):
        return str(body).lower()[:500]
    parts = [
        str(body.get(key))
        for key in ("error_code", "error", "error_description", "msg", "message")
        if body.get(key)
    ]
    return " ".join(parts).lower()[:500]


def _json_body(resp: httpx.Response) -> Any:
    """Parsed body, or None when a success response does not carry JSON (e.g. a gateway page)."""
    try:
        return resp.json()
    except ValueError:
        return None


def _parse_timestamp(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class ManagedAuthService(AuthService):
    """
    AuthService over a hosted identity provider.

    The provider owns credentials and sessions; this class only maps its REST
    answers onto AuthResult / AuthUser and the shared error taxonomy. Roles
    come from the provider's `profiles` table, falling back to app_metadata
    (admin-writable only) and then to the default role. user_metadata is
    user-writable and never trusted for the role.
    """

    backend_name = "managed"

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = utcnow) -> None:
        self.base_url = (settings.MANAGED_AUTH_URL or "").strip().rstrip("/")
        self.api_key = (
            settings.MANAGED_AUTH_API_KEY.get_secret_value()
            if settings.MANAGED_AUTH_API_KEY is not None
            else ""
        )
        self.timeout = settings.MANAGED_AUTH_TIMEOUT_SEC
        self.reset_redirect_url = settings.PASSWORD_RESET_REDIRECT_URL
        self.clock = clock

    def _is_configured(self) -> bool:
        return bool(self.base_url) and bool(self.api_key.strip())

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one request. Network failures and 5xx become StoreUnavailable; other statuses are returned."""
        if not self._is_configured():
            raise StoreUnavailable(
                "Managed authentication is not configured; set MANAGED_AUTH_URL and MANAGED_AUTH_API_KEY."
            )
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.api_key}",
        }
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                resp = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=headers,
                    json=json_body,
                    params=params,
                )
        except httpx.TimeoutException as e:
            logger.error("Identity provider timed out", extra={"event": "store_unavailable", "path": path})
            raise StoreUnavailable(cause=e) from e
        except httpx.HTTPError as e:
            logger.error("Identity provider unreachable", extra={"event": "store_unavailable", "path": path})
            raise StoreUnavailable(cause=e) from e

        if resp.status_code == 429:
            raise StoreUnavailable("Too many attempts. Wait a few minutes before trying again.")
        if resp.status_code >= 500:
            logger.error(
                "Identity provider error",
                extra={"event": "store_unavailable", "path": path, "status": resp.status_code},
            )
            raise StoreUnavailable()
        return resp

    async def _fetch_role(self, user_payload: dict[str, Any], token: str) -> str:
        user_id = str(user_payload.get("id", ""))
        resp = await self._request(
            "GET",
            "/rest/v1/profiles",
            token=token,
            params={"id": f"eq.{user_id}", "select": "role"},
        )
        if resp.status_code == 200:
            rows = _json_body(resp)
            if isinstance(rows, list) and rows and isinstance(rows[0], dict):
                role = normalize_role(rows[0].get("role"))
                if role is not None:
                    return role
        else:
            logger.warning(
                "Profile lookup failed; falling back",
                extra={"user_id": user_id, "status": resp.status_code},
            )
        app_metadata = user_payload.get("app_metadata") or {}
        role = normalize_role(app_metadata.get("role")) if isinstance(app_metadata, dict) else None
        return role or DEFAULT_ROLE

    def _to_user(self, payload: dict[str, Any], role: str) -> AuthUser:
        email = str(payload.get("email") or "")
        metadata = payload.get("user_metadata") or {}
        display_name = ""
        if isinstance(metadata, dict):
            display_name = metadata.get("full_name") or metadata.get("name") or ""
        return AuthUser(
            id=str(payload["id"]),
            email=email.lower(),
            display_name=display_name or email.split("@")[0],
            role=role,
            created_at=_parse_timestamp(payload.get("created_at")),
            updated_at=_parse_timestamp(payload.get("updated_at")),
        )

    def _to_session(self, body: dict[str, Any], user_id: str) -> SessionRecord:
        issued_at = self.clock()
        expires_at: datetime | None = None
        if isinstance(body.get("expires_at"), (int, float)):
            expires_at = datetime.fromtimestamp(body["expires_at"], tz=UTC)
        elif isinstance(body.get("expires_in"), (int, float)):
            expires_at = issued_at + timedelta(seconds=body["expires_in"])
        if expires_at is None or expires_at <= issued_at:
            expires_at = issued_at + timedelta(hours=1)
        return SessionRecord(
            token=str(body["access_token"]),
            user_id=user_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    async def _result_from_token_body(self, body: dict[str, Any]) -> AuthResult:
        user_payload = body.get("user")
        if not isinstance(user_payload, dict) or "id" not in user_payload:
            raise StoreUnavailable("Identity provider returned a session without a user.")
        session = self._to_session(body, str(user_payload["id"]))
        role = await self._fetch_role(user_payload, session.token)
        return AuthResult(user=self._to_user(user_payload, role), session=session)

    async def _password_grant(self, email: str, password: str) -> dict[str, Any]:
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json_body={"email": email.strip().lower(), "password": password},
        )
        if resp.status_code != 200:
            if "not confirmed" in _error_text(resp):
                raise ConfirmationPending("Confirm your email address before signing in.")
            raise InvalidCredentials()
        body = _json_body(resp)
        if not isinstance(body, dict) or not body.get("access_token"):
            raise StoreUnavailable("Identity provider returned no access token.")
        return body

    async def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            body = await self._password_grant(email, password)
        except InvalidCredentials:
            logger.info("Sign-in rejected", extra={"event": "sign_in_failed", "backend": self.backend_name})
            raise
        result = await self._result_from_token_body(body)
        logger.info(
            "Signed in",
            extra={"event": "signed_in", "user_id": result.user.id, "backend": self.backend_name},
        )
        return result

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: str | None = None,
    ) -> AuthResult:
        validate_password(password)
        normalized = email.strip().lower()
        resp = await self._request(
            "POST",
            "/auth/v1/signup",
            json_body={
                "email": normalized,
                "password": password,
                "data": {"full_name": display_name or normalized.split("@")[0]},
            },
        )
        if resp.status_code >= 400:
            text = _error_text(resp)
            if "already registered" in text or "already_exists" in text or "already exists" in text:
                raise Conflict()
            if "password" in text:
                raise WeakPassword("Password was rejected by the identity provider.")
            raise StoreUnavailable(f"Identity provider rejected the sign-up ({resp.status_code}).")

        body = _json_body(resp)
        if not isinstance(body, dict):
            raise StoreUnavailable("Identity provider returned an unreadable sign-up response.")
        if body.get("access_token"):
            result = await self._result_from_token_body(body)
            logger.info(
                "Signed up",
                extra={"event": "signed_up", "user_id": result.user.id, "backend": self.backend_name},
            )
            return result
        # Email confirmation enabled: the provider returns a bare user and no session.
        logger.info("Sign-up awaiting email confirmation", extra={"event": "sign_up_pending"})
        raise ConfirmationPending()

    async def sign_out(self, token: str | None) -> None:
        if not token:
            return
        resp = await self._request("POST", "/auth/v1/logout", token=token)
        if resp.status_code in _GONE_STATUSES:
            return
        if resp.status_code >= 400:
            logger.warning("Sign-out not acknowledged", extra={"status": resp.status_code})

    async def current_user(self, token: str | None) -> AuthUser | None:
        if not token:
            return None
        resp = await self._request("GET", "/auth/v1/user", token=token)
        if resp.status_code in _GONE_STATUSES or resp.status_code >= 400:
            return None
        payload = _json_body(resp)
        if not isinstance(payload, dict) or "id" not in payload:
            logger.warning("Identity provider returned an unreadable user", extra={"status": resp.status_code})
            return None
        role = await self._fetch_role(payload, token)
        return self._to_user(payload, role)

    async def change_password(
        self,
        user_id: str,
        old_password: str,
        new_password: str,
        current_token: str | None = None,
    ) -> int:
        user = await self.current_user(current_token)
        if user is None or user.id != user_id:
            raise InvalidCredentials("Sign in again to change your password.")
        try:
            check = await self._password_grant(user.email, old_password)
        except InvalidCredentials:
            raise InvalidCredentials("Current password is incorrect.") from None
        # The re-verification opened a session of its own; drop it straight away.
        await self._request(
            "POST",
            "/auth/v1/logout",
            token=str(check["access_token"]),
            params={"scope": "local"},
        )
        validate_password(new_password)

        resp = await self._request(
            "PUT",
            "/auth/v1/user",
            token=current_token,
            json_body={"password": new_password},
        )
        if resp.status_code >= 400:
            if resp.status_code in _GONE_STATUSES:
                raise InvalidCredentials("Sign in again to change your password.")
            raise WeakPassword("New password was rejected by the identity provider.")

        resp = await self._request(
            "POST",
            "/auth/v1/logout",
            token=current_token,
            params={"scope": "others"},
        )
        if resp.status_code >= 400:
            logger.warning(
                "Could not revoke other sessions after password change",
                extra={"user_id": user_id, "status": resp.status_code},
            )
        logger.info(
            "Password changed",
            extra={"event": "password_changed", "user_id": user_id, "backend": self.backend_name},
        )
        # The provider does not report how many sessions it ended.
        return -1

    async def request_password_reset(self, email: str) -> None:
        params = {"redirect_to": self.reset_redirect_url} if self.reset_redirect_url else None
        resp = await self._request(
            "POST",
            "/auth/v1/recover",
            json_body={"email": email.strip().lower()},
            params=params,
        )
        # Unknown addresses and provider refusals look the same to the caller.
        if resp.status_code >= 400:
            logger.warning("Password reset request not accepted", extra={"status": resp.status_code})
            return
        logger.info(
            "Password reset requested",
            extra={"event": "password_reset_requested", "backend": self.backend_name},
        )

    async def resend_confirmation(self, email: str) -> None:
        resp = await self._request(
            "POST",
            "/auth/v1/resend",
            json_body={"type": "signup", "email": email.strip().lower()},
        )
        if resp.status_code >= 400:
            logger.warning("Confirmation resend not accepted", extra={"status": resp.status_code})

    async def complete_password_reset(self, token: str, new_password: str) -> int:
        """token is the recovery access token the provider put in the reset link."""
        if not token:
            raise InvalidResetToken()
        validate_password(new_password)
        resp = await self._request(
            "PUT",
            "/auth/v1/user",
            token=token,
            json_body={"password": new_password},
        )
        if resp.status_code in _GONE_STATUSES:
            raise InvalidResetToken()
        if resp.status_code >= 400:
            raise WeakPassword("New password was rejected by the identity provider.")

        # Ends the recovery session along with every other session of the user.
        resp = await self._request("POST", "/auth/v1/logout", token=token, params={"scope": "global"})
        if resp.status_code >= 400 and resp.status_code not in _GONE_STATUSES:
            logger.warning("Could not revoke sessions after password reset", extra={"status": resp.status_code})
        logger.info(
            "Password reset completed",
            extra={"event": "password_reset_completed", "backend": self.backend_name},
        )
        return -1
