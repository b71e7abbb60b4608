"""Session core: HTTP-agnostic refresh-token session management.

Sub-modules
-----------
errors
    Exception types carrying a status and a coarse public message.
session_store
    ``SessionStore`` contract and its SQLAlchemy implementation.
credentials
    Email/password validation, timing-safe for unknown emails.
rotation
    ``SessionService``: login, refresh (rotation + reuse detection), logout.
"""

from __future__ import annotations

from .errors import (  # noqa: F401
    AuthError,
    Forbidden,
    InvalidCredentials,
    PersistenceFailure,
    SessionConflict,
    Unauthenticated,
)
from .session_store import CredentialRecord, SessionStore, SQLSessionStore  # noqa: F401
from .credentials import CredentialValidator  # noqa: F401
from .rotation import LoginResult, RefreshResult, SessionService  # noqa: F401

__all__ = [
    # errors
    "AuthError",
    "Forbidden",
    "InvalidCredentials",
    "PersistenceFailure",
    "SessionConflict",
    "Unauthenticated",
    # store
    "CredentialRecord",
    "SessionStore",
    "SQLSessionStore",
    # credentials
    "CredentialValidator",
    # rotation
    "LoginResult",
    "RefreshResult",
    "SessionService",
]
