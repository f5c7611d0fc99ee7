"""Error taxonomy raised by the Authentication Facade and the credential/session stores."""


class AuthError(Exception):
    """Base class for failures the UI layer is expected to render."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidCredentials(AuthError):
    """Unknown email or wrong password. The two causes share one message."""

    def __init__(self, message: str = "Incorrect email or password.") -> None:
        super().__init__(message)


class Conflict(AuthError):
    """Sign-up with an email that is already registered."""

    def __init__(self, message: str = "Email is already registered.") -> None:
        super().__init__(message)


class WeakPassword(AuthError):
    """Password rejected by the strength rules."""


class UserNotFound(AuthError):
    """User management operation on an id that does not exist."""

    def __init__(self, message: str = "User not found.") -> None:
        super().__init__(message)


class ConfirmationPending(AuthError):
    """Account created by the managed provider, but no session until the email is confirmed."""

    def __init__(
        self,
        message: str = "Account created. Confirm your email address before signing in.",
    ) -> None:
        super().__init__(message)


class StoreUnavailable(AuthError):
    """The credential or session store could not be reached. Safe to retry."""

    def __init__(
        self,
        message: str = "Authentication service is temporarily unavailable. Try again.",
        cause: Exception | None = None,
    ) -> None:
        self.cause = cause
        super().__init__(message)


class InvalidResetToken(AuthError):
    """Password reset token that is unknown, already used or expired."""

    def __init__(self, message: str = "This password reset link is invalid or has expired.") -> None:
        super().__init__(message)
