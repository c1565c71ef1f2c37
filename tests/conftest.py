from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import _build_config
from app.models import Base, Customer, Lesson, Workspace
from app.services.number_allocator import InvoiceNumberAllocator
from app.utils.locks import KeyedLock


@pytest.fixture
def engine(tmp_path):
    # File-backed so the allocator's own connection sees committed rows.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'invoicing_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def allocator(session_factory):
    return InvoiceNumberAllocator(session_factory, locks=KeyedLock())


@pytest.fixture
def make_config():
    def _make(**overrides):
        base = replace(
            _build_config("test"),
            DEFAULT_TAX_RATE=19,
            DEFAULT_PAYMENT_TERMS_DAYS=14,
            DEFAULT_HOURLY_RATE=None,
            STRICT_LESSON_RATES=False,
        )
        return replace(base, **overrides)

    return _make


class Seeder:
    """Commits fixture rows through the test session."""

    def __init__(self, session) -> None:
        self.session = session

    def _save(self, row):
        self.session.add(row)
        self.session.commit()
        return row

    def workspace(self, **fields) -> Workspace:
        return self._save(Workspace(name=fields.pop("name", "Music School"), **fields))

    def customer(self, workspace: Workspace, **fields) -> Customer:
        return self._save(Customer(workspace_id=workspace.id, name=fields.pop("name", "Alex Example"), **fields))

    def lesson(
        self,
        customer: Customer,
        start: datetime,
        end: datetime,
        rate: int | None = None,
        **fields,
    ) -> Lesson:
        return self._save(
            Lesson(
                workspace_id=customer.workspace_id,
                customer_id=customer.id,
                start=start,
                end=end,
                rate=rate,
                **fields,
            )
        )


@pytest.fixture
def seed(session):
    return Seeder(session)
