"""Shared fixtures: a dict-backed session store for core tests and a Flask
app on in-memory SQLite for store and HTTP tests."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

import pytest

from api import create_app
from models import storage
from models.user import User
from services.credentials import CredentialValidator
from services.errors import SessionConflict
from services.rotation import SessionService
from services.session_store import CredentialRecord
from utils.security import TokenCodec, TokenSettings, hash_password

ACCESS_SECRET = "unit-access-secret-0123456789abcdef0123"
REFRESH_SECRET = "unit-refresh-secret-0123456789abcdef012"
PASSWORD = "Sup3r$ecret"


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


class MemorySessionStore:
    """SessionStore kept in a dict, with the same compare-and-set rule."""

    def __init__(self) -> None:
        self.users: dict[str, dict] = {}
        self.writes: list[tuple[str, frozenset[str]]] = []

    def add_user(self, user_id: str, email: str, digest: str = "hashed:P1", tokens: Iterable[str] = ()) -> None:
        self.users[user_id] = {"email": email, "digest": digest, "tokens": set(tokens), "version": 0}

    def tokens(self, user_id: str) -> frozenset[str]:
        return frozenset(self.users[user_id]["tokens"])

    def _record(self, user_id: str, with_digest: bool = False) -> CredentialRecord:
        user = self.users[user_id]
        return CredentialRecord(
            id=user_id,
            refresh_tokens=frozenset(user["tokens"]),
            version=user["version"],
            password_digest=user["digest"] if with_digest else None,
        )

    def find_by_email(self, email):
        for user_id, user in self.users.items():
            if user["email"] == email:
                return self._record(user_id, with_digest=True)
        return None

    def find_by_refresh_token(self, token):
        for user_id, user in self.users.items():
            if token in user["tokens"]:
                return self._record(user_id)
        return None

    def find_by_id(self, user_id):
        return self._record(user_id) if user_id in self.users else None

    def update_refresh_tokens(self, record, tokens):
        user = self.users.get(record.id)
        if user is None or user["version"] != record.version:
            raise SessionConflict(record.id)
        user["tokens"] = set(tokens)
        user["version"] += 1
        self.writes.append((record.id, frozenset(tokens)))

    def purge_expired(self, now):
        return 0


def fake_verify(digest: str, password: str) -> bool:
    return digest == f"hashed:{password}"


# --------------------------------------------------------------------------- #
# core fixtures                                                               #
# --------------------------------------------------------------------------- #
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def codec(clock) -> TokenCodec:
    return TokenCodec(TokenSettings(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET), clock=clock)


@pytest.fixture
def memory_store() -> MemorySessionStore:
    store = MemorySessionStore()
    store.add_user("u1", "a@x.com", digest="hashed:P1")
    store.add_user("u2", "b@x.com", digest="hashed:P2")
    return store


@pytest.fixture
def service(memory_store, codec) -> SessionService:
    validator = CredentialValidator(memory_store, verify=fake_verify, dummy_digest="dummy")
    return SessionService(memory_store, codec, validator)


# --------------------------------------------------------------------------- #
# app fixtures                                                                #
# --------------------------------------------------------------------------- #
@pytest.fixture
def app():
    app = create_app("test")
    yield app
    storage.close()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def create_user(app) -> Callable[..., str]:
    def _create(email: str = "a@x.com", password: str = PASSWORD, username: str | None = None) -> str:
        user = User(
            first_name="Ada",
            last_name="Lovelace",
            username=username or email.split("@")[0],
            email=email,
            password_hash=hash_password(password),
        )
        storage.new(user)
        storage.save()
        return user.id

    return _create
