"""Runtime settings read from environment variables.

The settings are loaded once at startup. A missing or short JWT secret is a
hard error so the server never issues tokens signed with a weak key.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

MIN_SECRET_LENGTH = 32

TRUE_VALUES = {"1", "true", "yes", "on"}


class SettingsError(Exception):
    """Raised when the environment holds an unusable configuration."""


@dataclass(frozen=True)
class Settings:
    database_url: str
    default_currency: str
    jwt_secret: str
    jwt_issuer: str
    jwt_audience: str
    jwt_expires_minutes: int
    jwt_refresh_expires_days: int
    debug: bool = False
    log_level: str = "INFO"
    log_dir: str | None = None
    seed_demo_data: bool = False


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def _read_bool(environ: Mapping[str, str], key: str) -> bool:
    return environ.get(key, "").strip().lower() in TRUE_VALUES


def _read_positive_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise SettingsError(f"{key} must be an integer, got {raw!r}.") from exc
    if value <= 0:
        raise SettingsError(f"{key} must be greater than zero.")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build `Settings` from `environ` (defaults to `os.environ`).

    Raises:
        SettingsError: the JWT secret is missing or shorter than 32 characters,
            or a numeric/currency value does not parse.
    """
    if environ is None:
        environ = os.environ

    secret = environ.get("JWT_SECRET", "")
    if len(secret) < MIN_SECRET_LENGTH:
        raise SettingsError(
            f"JWT_SECRET must be set and at least {MIN_SECRET_LENGTH} characters long."
        )

    try:
        default_currency = normalize_currency(environ.get("DEFAULT_CURRENCY", "USD"))
    except ValueError as exc:
        raise SettingsError(f"DEFAULT_CURRENCY: {exc}") from exc

    log_dir = environ.get("LOG_DIR", "").strip() or None

    return Settings(
        database_url=environ.get("DATABASE_URL", "sqlite:///./finance.db"),
        default_currency=default_currency,
        jwt_secret=secret,
        jwt_issuer=environ.get("JWT_ISSUER", "finance-api"),
        jwt_audience=environ.get("JWT_AUDIENCE", "finance-api-clients"),
        jwt_expires_minutes=_read_positive_int(environ, "JWT_EXPIRES_MINUTES", 60),
        jwt_refresh_expires_days=_read_positive_int(environ, "JWT_REFRESH_EXPIRES_DAYS", 7),
        debug=_read_bool(environ, "DEBUG"),
        log_level=environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        log_dir=log_dir,
        seed_demo_data=_read_bool(environ, "SEED_DEMO_DATA"),
    )
