"""
Refresh-token rotation with reuse detection.

A refresh token is valid only while it is a member of its owner's persisted
set. Each successful refresh consumes the presented token and issues a new
one. Presenting a token that is no longer in any set means it was already
used, so it is treated as stolen and every session of its owner is revoked.

Token state is never stored; it is derived from the signature/expiry check
and from set membership:

- absent from every set          -> reuse (burn the subject's sessions)
- present, signature/expiry bad  -> consumed without replacement
- present and valid              -> rotated
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from services.credentials import CredentialValidator
from services.errors import Forbidden, InvalidCredentials, SessionConflict, Unauthenticated
from services.session_store import CredentialRecord, SessionStore
from utils.security import TokenCodec, TokenErr

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    should_clear_old_cookie: bool


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    refresh_token: str


class SessionService:
    """Login, refresh and logout over a :class:`SessionStore`.

    Every read-modify-write of a user's token set is a compare-and-set; when
    the store reports a concurrent change the whole operation is replayed
    from a fresh read, at most ``max_attempts`` times.
    """

    def __init__(
        self,
        store: SessionStore,
        codec: TokenCodec,
        validator: Optional[CredentialValidator] = None,
        *,
        max_attempts: int = 3,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._codec = codec
        self._validator = validator or CredentialValidator(store)
        self._max_attempts = max_attempts

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #
    def login(self, email: str, password: str, old_refresh_token: Optional[str] = None) -> LoginResult:
        user = self._validator.validate(email, password)
        pair = self._codec.generate_tokens(user.id)

        def attempt() -> None:
            record = self._store.find_by_id(user.id)
            if record is None:
                # deleted between the credential check and now
                raise InvalidCredentials()
            kept = self._carry_over_tokens(record, old_refresh_token)
            self._store.update_refresh_tokens(record, kept | {pair.refresh_token})

        self._with_retry(attempt)
        logger.info("User %s logged in", user.id)
        return LoginResult(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            should_clear_old_cookie=bool(old_refresh_token),
        )

    def refresh(self, refresh_token: Optional[str]) -> RefreshResult:
        if not refresh_token:
            raise Unauthenticated()
        return self._with_retry(lambda: self._rotate(refresh_token))

    def logout(self, refresh_token: Optional[str]) -> None:
        if not refresh_token:
            return
        self._with_retry(lambda: self._remove(refresh_token))

    def revoke_all(self, user_id: str) -> None:
        """Invalidate every refresh token of a user (all devices)."""
        self._with_retry(lambda: self._burn_sessions(user_id))

    # ------------------------------------------------------------------ #
    # Protocol steps                                                     #
    # ------------------------------------------------------------------ #
    def _carry_over_tokens(self, record: CredentialRecord, old_refresh_token: Optional[str]) -> frozenset[str]:
        """Tokens that survive a login, given the cookie the client still had."""
        if not old_refresh_token:
            return record.refresh_tokens

        if self._store.find_by_refresh_token(old_refresh_token) is None:
            logger.warning("Attempted refresh token reuse at login (user %s)", record.id)
            return frozenset()
        return record.refresh_tokens - {old_refresh_token}

    def _rotate(self, refresh_token: str) -> RefreshResult:
        owner = self._store.find_by_refresh_token(refresh_token)
        if owner is None:
            self._handle_reuse(refresh_token)
            raise Forbidden()

        # consumed even if it turns out to be expired
        remaining = owner.refresh_tokens - {refresh_token}

        result = self._codec.verify_refresh(refresh_token)
        if isinstance(result, TokenErr):
            logger.info("Expired refresh token (user %s, %s)", owner.id, result.reason.value)
            self._store.update_refresh_tokens(owner, remaining)
            raise Forbidden()

        if result.subject != owner.id:
            raise Forbidden()

        pair = self._codec.generate_tokens(owner.id)
        self._store.update_refresh_tokens(owner, remaining | {pair.refresh_token})
        logger.info("Rotated refresh token (user %s)", owner.id)
        return RefreshResult(access_token=pair.access_token, refresh_token=pair.refresh_token)

    def _handle_reuse(self, refresh_token: str) -> None:
        result = self._codec.verify_refresh(refresh_token)
        if isinstance(result, TokenErr):
            return
        logger.warning("Attempted refresh token reuse (user %s)", result.subject)
        self._burn_sessions(result.subject)

    def _burn_sessions(self, user_id: str) -> None:
        record = self._store.find_by_id(user_id)
        if record is None:
            return
        self._store.update_refresh_tokens(record, frozenset())

    def _remove(self, refresh_token: str) -> None:
        owner = self._store.find_by_refresh_token(refresh_token)
        if owner is None:
            return
        self._store.update_refresh_tokens(owner, owner.refresh_tokens - {refresh_token})
        logger.info("User %s logged out", owner.id)

    def _with_retry(self, operation: Callable[[], T]) -> T:
        attempt = 1
        while True:
            try:
                return operation()
            except SessionConflict as exc:
                if attempt >= self._max_attempts:
                    logger.error("Giving up after %d conflicting updates (user %s)", attempt, exc.user_id)
                    raise
                logger.info("Concurrent session update (user %s), retrying", exc.user_id)
            attempt += 1
