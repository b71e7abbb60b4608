"""Login credential check (email + password)."""
from __future__ import annotations

from dataclasses import replace
from typing import Callable

from services.errors import InvalidCredentials
from services.session_store import CredentialRecord, SessionStore
from utils.security import DUMMY_DIGEST, verify_password


def normalize_email(email: str) -> str:
    return email.strip().lower() if isinstance(email, str) else email


class CredentialValidator:
    """Verify an email/password pair against the stored digest.

    Unknown emails are verified against a dummy digest so that both failure
    paths spend the same hashing time and raise the same error.
    """

    def __init__(
        self,
        store: SessionStore,
        verify: Callable[[str, str], bool] = verify_password,
        dummy_digest: str = DUMMY_DIGEST,
    ) -> None:
        self._store = store
        self._verify = verify
        self._dummy_digest = dummy_digest

    def validate(self, email: str, password: str) -> CredentialRecord:
        record = self._store.find_by_email(normalize_email(email))
        digest = record.password_digest if record and record.password_digest else self._dummy_digest
        is_valid = self._verify(digest, password)

        if record is None or not record.password_digest or not is_valid:
            raise InvalidCredentials()

        # the digest never leaves this component
        return replace(record, password_digest=None)
