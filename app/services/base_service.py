"""Session ownership shared by the invoicing services."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.database.db import get_session_factory


class BaseService:
    """Holds one SQLAlchemy session; repositories built on it share its transaction.

    A session passed in by the caller (request scope, task scope) is left open
    on ``close``; a session the service opened itself is closed with it.
    """

    def __init__(self, db: Session | None = None) -> None:
        self._owns_session = db is None
        self.db = db if db is not None else get_session_factory()()

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """Commit everything written inside the block, or roll it all back."""
        try:
            yield self.db
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def close(self) -> None:
        if self._owns_session:
            self.db.close()

    def __enter__(self) -> "BaseService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.db.rollback()
        self.close()
