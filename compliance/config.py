"""
Facility Compliance Dashboard
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _backoff_from_env(raw: str) -> list[int]:
    """Parse "1,4" into [1, 4]; blank entries are ignored."""
    return [int(part) for part in raw.split(",") if part.strip()]


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # Remote spreadsheet-backed API (web-app deployment URL)
    BACKEND_API_URL = os.getenv("BACKEND_API_URL", "")
    # Drive folder the backend stores uploaded attachments in
    UPLOAD_FOLDER_ID = os.getenv("UPLOAD_FOLDER_ID", "")
    BACKEND_TIMEOUT_SECONDS = int(os.getenv("BACKEND_TIMEOUT_SECONDS", "30"))
    BACKEND_RETRY_BACKOFF = _backoff_from_env(os.getenv("BACKEND_RETRY_BACKOFF", "1,4"))

    # Calendar-day boundaries for deadlines are computed in this zone
    APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Taipei")
    DUE_SOON_THRESHOLD_DAYS = int(os.getenv("DUE_SOON_THRESHOLD_DAYS", "7"))

    # Viewer sessions are dropped after this much inactivity
    SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "28800"))

    # Redis for rate-limit storage in production
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SECRET_KEY = "testing-secret"
    BACKEND_API_URL = "https://backend.test/exec"
    UPLOAD_FOLDER_ID = "test-folder"
    # No sleeping between retries in tests
    BACKEND_RETRY_BACKOFF = [0, 0]
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    def __init__(self):
        if not self.BACKEND_API_URL:
            raise RuntimeError("BACKEND_API_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
