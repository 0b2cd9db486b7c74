"""
Order Workflow Engine
Environment configuration objects.

``create_app`` picks one by name:
    APP_ENV=development | testing | production   (default: development)

Every value can be overridden from the environment; production refuses to
boot without a database URL and a stable secret key.
"""

import os
import secrets

_PROJECT_ROOT = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_LOCAL_SQLITE = "sqlite:///" + os.path.join(_PROJECT_ROOT, "instance", "orderflow_dev.db")
_MEMORY_SQLITE = "sqlite:///:memory:"

# Regenerated on each start; sessions do not survive a dev restart.
_EPHEMERAL_SECRET = secrets.token_hex(32)


def _database_url(default=None):
    """DATABASE_URL with the legacy ``postgres://`` scheme normalised."""
    url = os.getenv("DATABASE_URL")
    if not url:
        return default
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY", _EPHEMERAL_SECRET)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # Create missing tables on startup (migrations remain the source of truth)
    AUTO_CREATE_TABLES = True

    # Flask-Limiter storage (Redis in production) + limit for the write blueprints
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")
    WRITE_RATE_LIMIT = os.getenv("WRITE_RATE_LIMIT", "60/minute")

    # Comma-separated list, or "*"
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Priority given to tasks created from service instances
    DEFAULT_TASK_PRIORITY = os.getenv("DEFAULT_TASK_PRIORITY", "MEDIUM")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_LOCAL_SQLITE)


class TestingConfig(Config):
    """In-memory SQLite, limiter off."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _MEMORY_SQLITE)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """PostgreSQL with a bounded pool and a per-statement timeout."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        "pool_timeout": 20,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        missing = [
            name for name, value in (
                ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
                ("SECRET_KEY", os.getenv("SECRET_KEY")),
            )
            if not value
        ]
        if missing:
            raise RuntimeError(f"Missing required environment for production: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
