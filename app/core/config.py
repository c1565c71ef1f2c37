"""Configuration module for the invoicing service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from app.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}.") from exc


def _as_optional_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return _as_int(name, 0)


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    DEFAULT_TAX_RATE: int
    DEFAULT_PAYMENT_TERMS_DAYS: int
    DEFAULT_HOURLY_RATE: int | None
    STRICT_LESSON_RATES: bool
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str
    CELERY_TASK_ALWAYS_EAGER: bool
    API_PREFIX: str
    LOG_LEVEL: str
    LOG_FILE: str

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))
    broker_url = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))

    config = Config(
        APP_NAME="Lessonbook Invoicing",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./invoicing.db"),
        DEFAULT_TAX_RATE=_as_int("DEFAULT_TAX_RATE", 19),
        DEFAULT_PAYMENT_TERMS_DAYS=_as_int("DEFAULT_PAYMENT_TERMS_DAYS", 14),
        DEFAULT_HOURLY_RATE=_as_optional_int("DEFAULT_HOURLY_RATE"),
        STRICT_LESSON_RATES=_as_bool(os.getenv("STRICT_LESSON_RATES"), default=False),
        CELERY_BROKER_URL=broker_url,
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", broker_url),
        CELERY_TASK_ALWAYS_EAGER=_as_bool(os.getenv("CELERY_TASK_ALWAYS_EAGER"), default=False),
        API_PREFIX=os.getenv("API_PREFIX", "/api/v1"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2", "postgresql+psycopg"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if not 0 <= config.DEFAULT_TAX_RATE <= 100:
        raise ConfigurationError("DEFAULT_TAX_RATE must be between 0 and 100.")
    if config.DEFAULT_PAYMENT_TERMS_DAYS < 0:
        raise ConfigurationError("DEFAULT_PAYMENT_TERMS_DAYS must be >= 0.")
    if config.DEFAULT_HOURLY_RATE is not None and config.DEFAULT_HOURLY_RATE < 0:
        raise ConfigurationError("DEFAULT_HOURLY_RATE must be >= 0 (minor units).")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.is_production and "change_me" in config.DATABASE_URL.lower():
        raise ConfigurationError("Production DATABASE_URL uses placeholder credentials.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
