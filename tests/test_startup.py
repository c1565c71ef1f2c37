from __future__ import annotations

import pytest
from sqlalchemy import create_engine

import app.core.startup as startup_module
from app.models import Base


def test_startup_passes_when_database_reachable(monkeypatch):
    monkeypatch.setattr(startup_module, "verify_database_connection", lambda: True)

    startup_module.validate_startup_config()


def test_startup_raises_when_database_unreachable(monkeypatch):
    monkeypatch.setattr(startup_module, "verify_database_connection", lambda: False)

    with pytest.raises(RuntimeError, match="Database connectivity check failed"):
        startup_module.validate_startup_config()


def test_missing_tables_reports_unmigrated_schema(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'partial.db'}")
    try:
        Base.metadata.tables["workspaces"].create(bind=engine)
        missing = startup_module.missing_tables(engine)
    finally:
        engine.dispose()

    assert "workspaces" not in missing
    assert "invoices" in missing
    assert "invoice_number_sequences" in missing
