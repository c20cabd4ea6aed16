"""
Performance Hub
Configuration classes, selected by name in ``create_app``.

    create_app()              # APP_ENV or "development"
    create_app("testing")
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes")


def _database_url(fallback=None):
    # SQLAlchemy 2 rejects the legacy postgres:// scheme some hosts still hand out
    url = os.getenv("DATABASE_URL", "")
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url or fallback


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # Tokens & sessions (JWT_SECRET_KEY falls back to SECRET_KEY)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = _env_int("JWT_ACCESS_EXPIRES", 7 * 24 * 3600)
    SESSION_LIFETIME_DAYS = _env_int("SESSION_LIFETIME_DAYS", 7)

    # Credentials
    MAX_LOGIN_ATTEMPTS = _env_int("MAX_LOGIN_ATTEMPTS", 5)
    LOCK_TIME_MINUTES = _env_int("LOCK_TIME_MINUTES", 30)
    RESET_TOKEN_EXPIRES_MINUTES = _env_int("RESET_TOKEN_EXPIRES_MINUTES", 60)
    MIN_PASSWORD_LENGTH = _env_int("MIN_PASSWORD_LENGTH", 8)

    # Role -> permission set cache, seconds
    PERMISSION_CACHE_TTL = _env_int("PERMISSION_CACHE_TTL", 300)

    # Flask-Limiter storage
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT")          # "json" | "text"; unset = by environment
    SLOW_REQUEST_MS = _env_int("SLOW_REQUEST_MS", 1000)

    # Outgoing mail; without MAIL_SERVER messages are only recorded in email_logs
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@perfhub.local")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    COUNTRIES_API_URL = os.getenv(
        "COUNTRIES_API_URL", "https://restcountries.com/v3.1/all?fields=name,flags,cca2",
    )
    COUNTRIES_API_TIMEOUT = _env_int("COUNTRIES_API_TIMEOUT", 10)


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'perfhub_dev.db')}"
    )


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    PERMISSION_CACHE_TTL = 0
    MAIL_SERVER = None
    LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        missing = [name for name in ("DATABASE_URL", "SECRET_KEY") if not os.getenv(name)]
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
