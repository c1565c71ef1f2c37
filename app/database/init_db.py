"""Schema bootstrap: apply Alembic migrations to the configured database."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy.engine import Engine

import app.database.db as db_module
from app.core.startup import bootstrap
from app.models import Base

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def build_alembic_config(database_url: str) -> AlembicConfig:
    cfg = AlembicConfig(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def create_schema(engine: Engine) -> None:
    """Create tables straight from the models; for throwaway local SQLite files."""
    Base.metadata.create_all(bind=engine)


def init_db(use_migrations: bool = True) -> None:
    bootstrap()
    active_url = db_module.get_active_database_url()
    if not use_migrations and active_url.startswith("sqlite"):
        create_schema(db_module.get_engine())
        event = "database.schema_created"
    else:
        command.upgrade(build_alembic_config(active_url), "head")
        event = "database.migrated"
    logger.info(
        event,
        extra={"event": event, "context": {"database_url_scheme": active_url.split("://", 1)[0]}},
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create or migrate the invoicing schema.")
    parser.add_argument("--create-all", action="store_true", help="SQLite only: create tables without Alembic.")
    args = parser.parse_args()
    init_db(use_migrations=not args.create_all)
