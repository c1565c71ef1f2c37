"""Invoice number allocation.

Numbers look like ``YY/MM/NNNN`` and are counted per workspace and calendar
month. Each allocation runs in its own short transaction and commits before it
returns, so a number handed out is consumed even if the invoice that was meant
to carry it is never written. Gaps are acceptable; duplicates are not.

Increments are serialized per ``(workspace_id, year, month)``: an in-process
lock covers threads sharing this interpreter, and ``SELECT ... FOR UPDATE`` on
the sequence row covers other processes on databases that support row locks.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.core.exceptions import SequenceExhausted
from app.core.logging import LogContext, build_log_event
from app.database.db import get_session_factory
from app.domain.numbering import MAX_SEQUENCE, Period, check_period, format_invoice_number, parse_invoice_number
from app.models.invoice_sequence import InvoiceNumberSequence
from app.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

_sequence_locks = KeyedLock()

# One retry covers the race where two processes create the first row of a period.
_MAX_ATTEMPTS = 2


class InvoiceNumberAllocator:
    def __init__(self, session_factory: sessionmaker | None = None, locks: KeyedLock | None = None) -> None:
        self.session_factory = session_factory or get_session_factory()
        self._locks = locks or _sequence_locks

    def allocate(self, workspace_id: int, period: Period, manual_override: str | None = None) -> str:
        """Return the next number for ``period``, or record and return ``manual_override``.

        A manual number must match ``YY/MM/NNNN`` and the period. It moves the
        counter forward when its sequence is higher than the stored one and
        never moves it backward.
        """
        key = (workspace_id, period.year, period.month)
        if manual_override is not None:
            parsed = parse_invoice_number(manual_override)
            check_period(parsed, period, manual_override)
            with self._locks.hold(key):
                stored = self._update(workspace_id, period, lambda row: _advance(row, parsed.sequence))
            logger.info(
                "invoice_number.manual_recorded",
                extra=build_log_event(
                    "invoice_number.manual_recorded",
                    LogContext(workspace_id=workspace_id),
                    invoice_number=manual_override,
                    last_sequence=stored,
                ),
            )
            return manual_override

        with self._locks.hold(key):
            sequence = self._update(workspace_id, period, _increment)
        number = format_invoice_number(period, sequence)
        logger.info(
            "invoice_number.allocated",
            extra=build_log_event(
                "invoice_number.allocated",
                LogContext(workspace_id=workspace_id),
                invoice_number=number,
            ),
        )
        return number

    def peek_next(self, workspace_id: int, period: Period) -> str:
        """Number the next automatic allocation would return; nothing is consumed."""
        with self.session_factory() as session:
            row = session.get(InvoiceNumberSequence, (workspace_id, period.year, period.month))
            last_sequence = row.last_sequence if row is not None else 0
        return format_invoice_number(period, last_sequence + 1)

    def last_sequence(self, workspace_id: int, period: Period) -> int:
        with self.session_factory() as session:
            row = session.get(InvoiceNumberSequence, (workspace_id, period.year, period.month))
            return row.last_sequence if row is not None else 0

    def _update(
        self,
        workspace_id: int,
        period: Period,
        mutate: Callable[[InvoiceNumberSequence], int],
    ) -> int:
        for attempt in range(1, _MAX_ATTEMPTS + 1):
            session: Session = self.session_factory()
            try:
                row = self._locked_row(session, workspace_id, period)
                if row is None:
                    row = InvoiceNumberSequence(
                        workspace_id=workspace_id,
                        year=period.year,
                        month=period.month,
                        last_sequence=0,
                    )
                    session.add(row)
                    session.flush()
                value = mutate(row)
                session.commit()
                return value
            except IntegrityError:
                session.rollback()
                if attempt == _MAX_ATTEMPTS:
                    raise
                logger.warning(
                    "invoice_number.sequence_insert_race",
                    extra=build_log_event(
                        "invoice_number.sequence_insert_race",
                        LogContext(workspace_id=workspace_id),
                        period=period.prefix,
                    ),
                )
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
        raise AssertionError("unreachable")

    @staticmethod
    def _locked_row(session: Session, workspace_id: int, period: Period) -> InvoiceNumberSequence | None:
        stmt = (
            select(InvoiceNumberSequence)
            .where(
                InvoiceNumberSequence.workspace_id == workspace_id,
                InvoiceNumberSequence.year == period.year,
                InvoiceNumberSequence.month == period.month,
            )
            .with_for_update()
        )
        return session.execute(stmt).scalar_one_or_none()


def _increment(row: InvoiceNumberSequence) -> int:
    if row.last_sequence >= MAX_SEQUENCE:
        raise SequenceExhausted(
            f"Invoice numbers for {row.year % 100:02d}/{row.month:02d} are exhausted in workspace {row.workspace_id}."
        )
    row.last_sequence += 1
    return row.last_sequence


def _advance(row: InvoiceNumberSequence, sequence: int) -> int:
    if sequence > row.last_sequence:
        row.last_sequence = sequence
    return row.last_sequence
