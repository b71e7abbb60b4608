"""
Environment-aware configuration.
Token secrets, lifetimes and cookie attributes are read here once and handed
to the session core by the application factory.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present

PLACEHOLDER_SECRETS = {"dev-access-secret-change-me-0123456789", "dev-refresh-secret-change-me-0123456789"}


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///socialnet.db")
    # Token configuration: two distinct secrets, one per token class
    ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", "dev-access-secret-change-me-0123456789")
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", "dev-refresh-secret-change-me-0123456789")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "60")))
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("REFRESH_TOKEN_EXPIRES_SECONDS", "86400")))
    TOKEN_SUBJECT_CLAIM = os.getenv("TOKEN_SUBJECT_CLAIM", "sub")
    # Refresh token cookie
    REFRESH_COOKIE_NAME = os.getenv("REFRESH_COOKIE_NAME", "tk")
    REFRESH_COOKIE_SECURE = _flag("REFRESH_COOKIE_SECURE", "false")
    # How many times a login/refresh/logout is replayed after a concurrent update
    SESSION_UPDATE_ATTEMPTS = int(os.getenv("SESSION_UPDATE_ATTEMPTS", "3"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True


class TestingConfig(BaseConfig):
    TESTING = True
    APP_ENV = "test"
    DATABASE_URL = "sqlite://"
    REFRESH_COOKIE_SECURE = False
    ACCESS_TOKEN_SECRET = "test-access-secret-0123456789abcdef0123"
    REFRESH_TOKEN_SECRET = "test-refresh-secret-0123456789abcdef012"
    SESSION_UPDATE_ATTEMPTS = 3


class ProductionConfig(BaseConfig):
    DEBUG = False
    APP_ENV = "prod"
    REFRESH_COOKIE_SECURE = _flag("REFRESH_COOKIE_SECURE", "true")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    if name:
        name = name.lower()
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def check_secrets(config) -> None:
    """Refuse to run in production with the shipped placeholder secrets."""
    if config.get("APP_ENV") != "prod":
        return
    for key in ("ACCESS_TOKEN_SECRET", "REFRESH_TOKEN_SECRET"):
        if config.get(key) in PLACEHOLDER_SECRETS:
            raise RuntimeError(f"{key} must be set in production")
