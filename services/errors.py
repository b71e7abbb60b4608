"""Exception types raised by the session core.

Each carries the HTTP-equivalent status and a coarse public message so the
web layer can render them without knowing why a request was refused.
Messages never say which of email/password was wrong, nor why a refresh
token was rejected.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every protocol-level failure."""

    status: int = 400
    code: str = "BAD_REQUEST"
    public_message: str = "Bad request"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class InvalidCredentials(AuthError):
    """Email/password mismatch (unknown email or wrong password)."""

    status = 401
    code = "UNAUTHORIZED"
    public_message = "Invalid credentials"


class Unauthenticated(AuthError):
    """No token was presented at all."""

    status = 401
    code = "UNAUTHORIZED"
    public_message = "Authentication required"


class Forbidden(AuthError):
    """Refresh token rejected: unknown, expired, badly signed or mismatched."""

    status = 403
    code = "FORBIDDEN"
    public_message = "Forbidden"


class PersistenceFailure(AuthError):
    """The session store failed; details go to the server log only."""

    status = 500
    code = "INTERNAL_ERROR"
    public_message = "An unexpected error occurred"


class SessionConflict(PersistenceFailure):
    """A user's refresh token set changed between read and write."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Refresh token set of user {user_id} was modified concurrently")
        self.user_id: str = user_id
