"""
Environment-backed settings.

Every setting is a function so tests (and long-lived processes) always see the
current environment.
"""

from __future__ import annotations

import os


DEFAULT_APP_ENV = "development"
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_PASSWORD = "admin123"


def _env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def database_url() -> str:
    return _env_str("DATABASE_URL")


def database_auth_token() -> str:
    return _env_str("DATABASE_AUTH_TOKEN")


def db_pool_max_size() -> int:
    return max(_env_int("DB_POOL_MAX_SIZE", 5), 1)


def db_command_timeout() -> int:
    return _env_int("DB_COMMAND_TIMEOUT", 30)


def cron_secret() -> str:
    return _env_str("CRON_SECRET")


def app_env() -> str:
    return _env_str("APP_ENV", DEFAULT_APP_ENV).lower()


def is_production() -> bool:
    return app_env() == "production"


def log_level() -> str:
    return _env_str("LOG_LEVEL", "INFO").upper()


def bcrypt_rounds() -> int:
    # bcrypt accepts 4..31.
    return min(max(_env_int("BCRYPT_ROUNDS", 12), 4), 31)


def seed_admin_username() -> str:
    return _env_str("SEED_ADMIN_USERNAME", DEFAULT_ADMIN_USERNAME)


def seed_admin_email() -> str:
    return _env_str("SEED_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL)


def seed_admin_password() -> str:
    return _env_str("SEED_ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)


def log_retention_days() -> int:
    days = _env_int("LOG_RETENTION_DAYS", 90)
    return days if days > 0 else 90


def cors_allow_origins() -> list[str]:
    # Comma-separated; empty means the admin/site front end is served same-origin.
    raw = os.environ.get("CORS_ALLOW_ORIGINS", "")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
