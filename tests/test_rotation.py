"""
Unit tests for SessionService (login / refresh / logout) over the in-memory
store.

Coverage:
* login with no cookie, a known cookie and an unrecognised cookie
* rotation, consumed-token replay, never-issued tokens, expired tokens
* subject mismatch fails without touching the set
* idempotent logout
* compare-and-set retries when another request writes in between
"""
from __future__ import annotations

import logging

import pytest

from conftest import FakeClock, MemorySessionStore, fake_verify
from services.credentials import CredentialValidator
from services.errors import Forbidden, InvalidCredentials, SessionConflict, Unauthenticated
from services.rotation import SessionService
from utils.security import TokenCodec

ROTATION_LOGGER = "services.rotation"


# --------------------------------------------------------------------------- #
# login                                                                       #
# --------------------------------------------------------------------------- #
def test_login_without_cookie(service: SessionService, memory_store: MemorySessionStore, codec: TokenCodec) -> None:
    result = service.login("a@x.com", "P1")

    assert result.should_clear_old_cookie is False
    assert memory_store.tokens("u1") == frozenset({result.refresh_token})
    assert codec.verify_access(result.access_token).subject == "u1"
    assert codec.verify_refresh(result.refresh_token).subject == "u1"


def test_logins_from_two_devices_keep_both_sessions(
    service: SessionService, memory_store: MemorySessionStore
) -> None:
    first = service.login("a@x.com", "P1")
    second = service.login("a@x.com", "P1")

    assert memory_store.tokens("u1") == frozenset({first.refresh_token, second.refresh_token})


def test_login_with_known_cookie_replaces_that_device_token(
    service: SessionService, memory_store: MemorySessionStore
) -> None:
    other_device = service.login("a@x.com", "P1")
    this_device = service.login("a@x.com", "P1")

    again = service.login("a@x.com", "P1", old_refresh_token=this_device.refresh_token)

    assert again.should_clear_old_cookie is True
    assert memory_store.tokens("u1") == frozenset({other_device.refresh_token, again.refresh_token})


def test_login_with_unrecognised_cookie_discards_every_session(
    service: SessionService, memory_store: MemorySessionStore, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger=ROTATION_LOGGER)
    first = service.login("a@x.com", "P1")
    second = service.login("a@x.com", "P1")

    result = service.login("a@x.com", "P1", old_refresh_token="stolen-and-already-used")

    assert result.should_clear_old_cookie is True
    assert memory_store.tokens("u1") == frozenset({result.refresh_token})
    assert first.refresh_token not in memory_store.tokens("u1")
    assert second.refresh_token not in memory_store.tokens("u1")
    assert "Attempted refresh token reuse at login" in caplog.text


def test_login_failure_propagates_without_writes(service: SessionService, memory_store: MemorySessionStore) -> None:
    with pytest.raises(InvalidCredentials):
        service.login("a@x.com", "wrong")
    with pytest.raises(InvalidCredentials):
        service.login("nobody@x.com", "P1")

    assert memory_store.writes == []


# --------------------------------------------------------------------------- #
# refresh                                                                     #
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize("token", [None, ""])
def test_refresh_without_token_is_unauthenticated(
    service: SessionService, memory_store: MemorySessionStore, token
) -> None:
    with pytest.raises(Unauthenticated):
        service.refresh(token)
    assert memory_store.writes == []


def test_refresh_rotates_current_token(
    service: SessionService, memory_store: MemorySessionStore, codec: TokenCodec
) -> None:
    other_device = service.login("a@x.com", "P1")
    login = service.login("a@x.com", "P1")

    result = service.refresh(login.refresh_token)

    assert result.refresh_token != login.refresh_token
    assert memory_store.tokens("u1") == frozenset({other_device.refresh_token, result.refresh_token})
    assert codec.verify_access(result.access_token).subject == "u1"


def test_consumed_token_cannot_be_replayed(service: SessionService, memory_store: MemorySessionStore) -> None:
    login = service.login("a@x.com", "P1")
    rotated = service.refresh(login.refresh_token)

    with pytest.raises(Forbidden):
        service.refresh(login.refresh_token)

    # the replay revoked the legitimate successor as well
    assert memory_store.tokens("u1") == frozenset()
    with pytest.raises(Forbidden):
        service.refresh(rotated.refresh_token)


def test_logged_out_token_cannot_refresh(service: SessionService) -> None:
    login = service.login("a@x.com", "P1")
    service.logout(login.refresh_token)

    with pytest.raises(Forbidden):
        service.refresh(login.refresh_token)


def test_reuse_burns_all_sessions(
    service: SessionService,
    memory_store: MemorySessionStore,
    codec: TokenCodec,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO, logger=ROTATION_LOGGER)
    a = codec.create_refresh_token("u1")
    b = codec.create_refresh_token("u1")
    memory_store.users["u1"]["tokens"] = {a, b}

    # theft + use: the token leaves the set without our involvement
    memory_store.users["u1"]["tokens"].discard(a)

    with pytest.raises(Forbidden):
        service.refresh(a)

    assert memory_store.tokens("u1") == frozenset()
    assert "Attempted refresh token reuse" in caplog.text


def test_never_issued_token_for_real_user(
    service: SessionService, memory_store: MemorySessionStore, codec: TokenCodec
) -> None:
    service.login("a@x.com", "P1")
    service.login("a@x.com", "P1")

    with pytest.raises(Forbidden):
        service.refresh(codec.create_refresh_token("u1"))

    assert memory_store.tokens("u1") == frozenset()
    assert memory_store.tokens("u2") == frozenset()


def test_reuse_of_token_for_deleted_user_only_fails(
    service: SessionService, memory_store: MemorySessionStore, codec: TokenCodec
) -> None:
    with pytest.raises(Forbidden):
        service.refresh(codec.create_refresh_token("deleted-user"))
    assert memory_store.writes == []


def test_unknown_badly_signed_token_changes_nothing(
    service: SessionService, memory_store: MemorySessionStore
) -> None:
    login = service.login("a@x.com", "P1")
    writes = list(memory_store.writes)

    with pytest.raises(Forbidden):
        service.refresh("garbage.token.value")

    assert memory_store.writes == writes
    assert memory_store.tokens("u1") == frozenset({login.refresh_token})


def test_expired_token_in_set_is_consumed_without_replacement(
    service: SessionService,
    memory_store: MemorySessionStore,
    clock: FakeClock,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO, logger=ROTATION_LOGGER)
    stale = service.login("a@x.com", "P1")
    clock.advance(days=2)
    fresh = service.login("a@x.com", "P1")

    with pytest.raises(Forbidden):
        service.refresh(stale.refresh_token)

    assert memory_store.tokens("u1") == frozenset({fresh.refresh_token})
    assert "Expired refresh token" in caplog.text


def test_subject_mismatch_fails_without_writing(
    service: SessionService, memory_store: MemorySessionStore, codec: TokenCodec
) -> None:
    foreign = codec.create_refresh_token("u2")
    memory_store.users["u1"]["tokens"] = {foreign}
    writes_before = len(memory_store.writes)

    with pytest.raises(Forbidden):
        service.refresh(foreign)

    assert len(memory_store.writes) == writes_before
    assert memory_store.tokens("u1") == frozenset({foreign})
    assert memory_store.tokens("u2") == frozenset()


# --------------------------------------------------------------------------- #
# logout                                                                      #
# --------------------------------------------------------------------------- #
def test_logout_removes_only_that_token(service: SessionService, memory_store: MemorySessionStore) -> None:
    keep = service.login("a@x.com", "P1")
    drop = service.login("a@x.com", "P1")

    service.logout(drop.refresh_token)

    assert memory_store.tokens("u1") == frozenset({keep.refresh_token})


def test_logout_is_idempotent(service: SessionService, memory_store: MemorySessionStore) -> None:
    login = service.login("a@x.com", "P1")

    service.logout(login.refresh_token)
    writes_after_first = len(memory_store.writes)
    service.logout(login.refresh_token)
    service.logout(None)
    service.logout("")

    assert len(memory_store.writes) == writes_after_first
    assert memory_store.tokens("u1") == frozenset()


def test_revoke_all(service: SessionService, memory_store: MemorySessionStore) -> None:
    service.login("a@x.com", "P1")
    service.login("a@x.com", "P1")

    service.revoke_all("u1")
    service.revoke_all("no-such-user")

    assert memory_store.tokens("u1") == frozenset()


# --------------------------------------------------------------------------- #
# concurrent writers                                                          #
# --------------------------------------------------------------------------- #
class RacingStore(MemorySessionStore):
    """Lets another 'request' write just before each of our first N writes."""

    def __init__(self, races: int) -> None:
        super().__init__()
        self.races = races
        self.interloper_tokens: list[str] = []

    def update_refresh_tokens(self, record, tokens):
        if self.races:
            self.races -= 1
            token = f"other-device-{len(self.interloper_tokens)}"
            self.interloper_tokens.append(token)
            user = self.users[record.id]
            user["tokens"].add(token)
            user["version"] += 1
        super().update_refresh_tokens(record, tokens)


def _racing_service(store: RacingStore, codec: TokenCodec, max_attempts: int = 3) -> SessionService:
    store.add_user("u1", "a@x.com", digest="hashed:P1")
    validator = CredentialValidator(store, verify=fake_verify, dummy_digest="dummy")
    return SessionService(store, codec, validator, max_attempts=max_attempts)


def test_concurrent_login_keeps_the_other_device_token(codec: TokenCodec) -> None:
    store = RacingStore(races=1)
    service = _racing_service(store, codec)

    result = service.login("a@x.com", "P1")

    assert store.tokens("u1") == frozenset({"other-device-0", result.refresh_token})


def test_concurrent_refresh_keeps_the_other_device_token(codec: TokenCodec) -> None:
    store = RacingStore(races=0)
    service = _racing_service(store, codec)
    login = service.login("a@x.com", "P1")

    store.races = 1
    result = service.refresh(login.refresh_token)

    assert store.tokens("u1") == frozenset({"other-device-0", result.refresh_token})


def test_conflicts_beyond_max_attempts_propagate(codec: TokenCodec) -> None:
    store = RacingStore(races=5)
    service = _racing_service(store, codec, max_attempts=2)

    with pytest.raises(SessionConflict):
        service.login("a@x.com", "P1")
    assert store.writes == []


def test_max_attempts_must_be_positive(memory_store: MemorySessionStore, codec: TokenCodec) -> None:
    with pytest.raises(ValueError):
        SessionService(memory_store, codec, max_attempts=0)
