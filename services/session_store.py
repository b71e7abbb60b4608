"""
Session store: persistence contract over a user's set of valid refresh
tokens, plus its SQLAlchemy implementation.

The set is versioned. Every read returns the version it saw and every write
is a compare-and-set on that version, so two requests rotating tokens of the
same user cannot silently overwrite each other.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from models.refresh_token import RefreshToken
from models.user import User
from services.errors import PersistenceFailure, SessionConflict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialRecord:
    """Projection of a user row used by the session core."""

    id: str
    refresh_tokens: frozenset[str]
    version: int
    password_digest: Optional[str] = None


class SessionStore(Protocol):
    def find_by_email(self, email: str) -> Optional[CredentialRecord]: ...

    def find_by_refresh_token(self, token: str) -> Optional[CredentialRecord]: ...

    def find_by_id(self, user_id: str) -> Optional[CredentialRecord]: ...

    def update_refresh_tokens(self, record: CredentialRecord, tokens: Iterable[str]) -> None:
        """Replace the set; raise SessionConflict if record.version is stale."""
        ...

    def purge_expired(self, now: datetime) -> int: ...


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SQLSessionStore:
    """SessionStore backed by the ``users`` and ``refresh_tokens`` tables.

    Reads select columns rather than ORM entities so that values cached in
    the scoped session's identity map never leak into a decision.
    """

    def __init__(self, storage, expiry_of: Callable[[str], Optional[datetime]] | None = None):
        self._storage = storage
        self._expiry_of = expiry_of or (lambda token: None)

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self._storage.rollback()
            logger.error("Session store failure: %s", exc.__class__.__name__)
            raise PersistenceFailure("Session store unavailable") from exc

    def _tokens_of(self, user_id: str) -> frozenset[str]:
        session = self._storage.get_session()
        rows = session.query(RefreshToken.token).filter(RefreshToken.user_id == user_id).all()
        return frozenset(token for (token,) in rows)

    def _record(self, row, with_digest: bool = False) -> CredentialRecord:
        return CredentialRecord(
            id=row.id,
            refresh_tokens=self._tokens_of(row.id),
            version=row.session_version,
            password_digest=row.password_hash if with_digest else None,
        )

    def find_by_email(self, email: str) -> Optional[CredentialRecord]:
        with self._translate_errors():
            session = self._storage.get_session()
            row = (
                session.query(User.id, User.password_hash, User.session_version)
                .filter(User.email == email)
                .first()
            )
            return self._record(row, with_digest=True) if row else None

    def find_by_refresh_token(self, token: str) -> Optional[CredentialRecord]:
        with self._translate_errors():
            session = self._storage.get_session()
            row = (
                session.query(User.id, User.password_hash, User.session_version)
                .join(RefreshToken, RefreshToken.user_id == User.id)
                .filter(RefreshToken.token == token)
                .first()
            )
            return self._record(row) if row else None

    def find_by_id(self, user_id: str) -> Optional[CredentialRecord]:
        with self._translate_errors():
            session = self._storage.get_session()
            row = (
                session.query(User.id, User.password_hash, User.session_version)
                .filter(User.id == user_id)
                .first()
            )
            return self._record(row) if row else None

    def update_refresh_tokens(self, record: CredentialRecord, tokens: Iterable[str]) -> None:
        wanted = frozenset(tokens)
        with self._translate_errors():
            session = self._storage.get_session()
            claimed = (
                session.query(User)
                .filter(User.id == record.id, User.session_version == record.version)
                .update({User.session_version: User.session_version + 1}, synchronize_session=False)
            )
            if not claimed:
                self._storage.rollback()
                raise SessionConflict(record.id)

            current = self._tokens_of(record.id)
            stale = current - wanted
            if stale:
                (
                    session.query(RefreshToken)
                    .filter(RefreshToken.user_id == record.id, RefreshToken.token.in_(sorted(stale)))
                    .delete(synchronize_session=False)
                )
            for token in wanted - current:
                self._storage.new(
                    RefreshToken(token=token, user_id=record.id, expires_at=self._expiry_of(token))
                )
            self._storage.save()

    def purge_expired(self, now: datetime) -> int:
        """Delete tokens past their recorded expiry; returns how many went."""
        cutoff = _naive_utc(now)
        with self._translate_errors():
            session = self._storage.get_session()
            expired = RefreshToken.expires_at.isnot(None) & (RefreshToken.expires_at <= cutoff)
            owners = [uid for (uid,) in session.query(RefreshToken.user_id).filter(expired).distinct()]
            if not owners:
                return 0
            deleted = session.query(RefreshToken).filter(expired).delete(synchronize_session=False)
            (
                session.query(User)
                .filter(User.id.in_(owners))
                .update({User.session_version: User.session_version + 1}, synchronize_session=False)
            )
            self._storage.save()
            logger.info("Purged %d expired refresh tokens of %d users", deleted, len(owners))
            return deleted
