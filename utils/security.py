"""
security helpers:
- Argon2 password hashing via argon2-cffi
- Access / refresh token creation and verification via PyJWT
- JTI generation for token identifiers

Verification never raises: it returns a TokenOk or a TokenErr so callers
branch on a value instead of catching PyJWT exceptions.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Union

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

ph = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """Verify a plaintext password against an Argon2 digest
    """
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


# Verified against when the email is unknown, so both failure paths cost one
# Argon2 verification.
DUMMY_DIGEST = hash_password("fake_password")


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenFailure(str, enum.Enum):
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class TokenOk:
    subject: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenErr:
    reason: TokenFailure


VerifyResult = Union[TokenOk, TokenErr]


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenSettings:
    """Secrets and lifetimes for both token classes, read once at startup."""

    access_secret: str
    refresh_secret: str
    access_ttl: timedelta = timedelta(minutes=1)
    refresh_ttl: timedelta = timedelta(days=1)
    algorithm: str = "HS256"
    subject_claim: str = "sub"

    def __post_init__(self):
        if not self.access_secret or not self.refresh_secret:
            raise ValueError("Token secrets must not be empty")
        if self.access_secret == self.refresh_secret:
            raise ValueError("Access and refresh tokens must use distinct secrets")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TokenSettings":
        return cls(
            access_secret=config["ACCESS_TOKEN_SECRET"],
            refresh_secret=config["REFRESH_TOKEN_SECRET"],
            access_ttl=config["ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["REFRESH_TOKEN_EXPIRES"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            subject_claim=config.get("TOKEN_SUBJECT_CLAIM", "sub"),
        )


class TokenCodec:
    """Signs and verifies access and refresh tokens.

    Each token binds one user id (under ``settings.subject_claim``) and an
    expiry. The two classes are signed with different secrets and carry a
    ``type`` claim, so neither can stand in for the other.
    """

    def __init__(self, settings: TokenSettings, clock: Callable[[], datetime] = _now):
        self.settings = settings
        self._clock = clock

    def _secret(self, kind: TokenKind) -> str:
        if kind is TokenKind.ACCESS:
            return self.settings.access_secret
        return self.settings.refresh_secret

    def _ttl(self, kind: TokenKind) -> timedelta:
        if kind is TokenKind.ACCESS:
            return self.settings.access_ttl
        return self.settings.refresh_ttl

    def _create(self, user_id: str, kind: TokenKind) -> str:
        now = self._clock()
        payload = {
            self.settings.subject_claim: str(user_id),
            "type": kind.value,
            "jti": generate_jti(),
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl(kind)).timestamp()),
        }
        return jwt.encode(payload, self._secret(kind), algorithm=self.settings.algorithm)

    def create_access_token(self, user_id: str) -> str:
        return self._create(user_id, TokenKind.ACCESS)

    def create_refresh_token(self, user_id: str) -> str:
        return self._create(user_id, TokenKind.REFRESH)

    def generate_tokens(self, user_id: str) -> TokenPair:
        return TokenPair(
            access_token=self.create_access_token(user_id),
            refresh_token=self.create_refresh_token(user_id),
        )

    def verify(self, token: str, kind: TokenKind) -> VerifyResult:
        """
        Check signature, token class and expiry. Expiry is measured against
        the codec clock rather than PyJWT's wall clock.
        """
        claim = self.settings.subject_claim
        try:
            decoded = jwt.decode(
                token,
                self._secret(kind),
                algorithms=[self.settings.algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["exp", "type", claim],
                },
            )
        except jwt.InvalidTokenError:
            return TokenErr(TokenFailure.INVALID)

        subject = decoded.get(claim)
        exp = decoded.get("exp")
        if decoded.get("type") != kind.value or not isinstance(subject, str) or not subject:
            return TokenErr(TokenFailure.INVALID)
        if not isinstance(exp, (int, float)):
            return TokenErr(TokenFailure.INVALID)
        if exp <= self._clock().timestamp():
            return TokenErr(TokenFailure.EXPIRED)
        return TokenOk(subject=subject, expires_at=datetime.fromtimestamp(exp, tz=timezone.utc))

    def verify_access(self, token: str) -> VerifyResult:
        return self.verify(token, TokenKind.ACCESS)

    def verify_refresh(self, token: str) -> VerifyResult:
        return self.verify(token, TokenKind.REFRESH)

    @staticmethod
    def peek_expiry(token: str) -> datetime | None:
        """Read the ``exp`` claim without verifying anything (naive UTC)."""
        try:
            exp = jwt.decode(token, options={"verify_signature": False}).get("exp")
        except jwt.InvalidTokenError:
            return None
        if not isinstance(exp, (int, float)):
            return None
        return datetime.fromtimestamp(exp, tz=timezone.utc).replace(tzinfo=None)
