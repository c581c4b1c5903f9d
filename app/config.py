"""
Change Order Workflow Service
Configuration classes for the Flask app factory.

Every setting can be overridden from the environment. Selection:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Settings shared by every environment."""

    # Random per process unless provided; production requires it (see ProductionConfig)
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    # ── Change orders ────────────────────────────────────────────────────
    CHANGE_ORDER_STORE = os.getenv("CHANGE_ORDER_STORE", "memory")   # "memory" | "sql"
    DEFAULT_PROJECT_ID = os.getenv("DEFAULT_PROJECT_ID", "POC-DEMO-001")
    CHANGE_ORDER_NOTIFY_TO = os.getenv("CHANGE_ORDER_NOTIFY_TO", "")   # blank: team alert skipped

    # ── SQL store ────────────────────────────────────────────────────────
    # Default is a private in-memory SQLite database, lost on restart.
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite://")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # ── HTTP surface ─────────────────────────────────────────────────────
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    RATELIMIT_ENABLED = _env_bool("RATELIMIT_ENABLED", True)
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")

    # ── Logging ──────────────────────────────────────────────────────────
    LOG_LEVEL = os.getenv("LOG_LEVEL")      # None: environment default
    LOG_FORMAT = os.getenv("LOG_FORMAT")    # "json" | "readable"

    # ── Outbound email ───────────────────────────────────────────────────
    # No MAIL_SERVER: preview mode, messages are logged and not delivered.
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "change-orders@localhost")


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    """SQL store on in-memory SQLite, no rate limits, never real SMTP."""

    TESTING = True
    CHANGE_ORDER_STORE = "sql"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    RATELIMIT_ENABLED = False
    CHANGE_ORDER_NOTIFY_TO = ""
    MAIL_SERVER = None
    LOG_LEVEL = "WARNING"


class ProductionConfig(Config):
    DEBUG = False
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # explicit allow-list only

    def __init__(self):
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
