"""Startup validation and bootstrap helpers."""

from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from app.core.config import get_config
from app.core.logging_config import configure_logging
from app.database.db import get_active_database_url, get_engine, verify_database_connection
from app.models import Base

logger = logging.getLogger(__name__)


def validate_startup_config() -> None:
    """Fail fast when the configured database cannot be reached."""
    config = get_config()
    if not verify_database_connection():
        raise RuntimeError("Database connectivity check failed.")

    active_database_url = get_active_database_url()
    if config.is_production and active_database_url.startswith("sqlite"):
        logger.warning(
            "startup.production.sqlite_detected",
            extra={"event": "startup.production.sqlite_detected"},
        )

    logger.info(
        "startup.config.validated",
        extra={
            "event": "startup.config.validated",
            "context": {
                "env": config.ENV,
                "database_url_scheme": active_database_url.split("://", 1)[0],
                "default_tax_rate": config.DEFAULT_TAX_RATE,
                "strict_lesson_rates": config.STRICT_LESSON_RATES,
            },
        },
    )


def missing_tables(engine: Engine) -> list[str]:
    """Model tables that do not exist in the database yet."""
    existing = set(inspect(engine).get_table_names())
    return sorted(name for name in Base.metadata.tables if name not in existing)


def bootstrap() -> None:
    """Initialize logging, validate configuration and report an unmigrated schema."""
    configure_logging()
    validate_startup_config()
    missing = missing_tables(get_engine())
    if missing:
        logger.warning(
            "startup.schema.incomplete",
            extra={
                "event": "startup.schema.incomplete",
                "context": {"missing_tables": missing, "hint": "python -m app.database.init_db"},
            },
        )
