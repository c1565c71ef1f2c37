"""Lesson billing source backed by the calendar's lessons table."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.exceptions import LessonAlreadyInvoiced
from app.models.lesson import Lesson
from app.repositories.ports import BillableLesson


class SqlLessonBillingSource:
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_unbilled(self, workspace_id: int, start: datetime, end: datetime) -> list[BillableLesson]:
        stmt = (
            select(Lesson)
            .where(
                Lesson.workspace_id == workspace_id,
                Lesson.start >= start,
                Lesson.start < end,
                Lesson.is_billable.is_(True),
                Lesson.invoice_id.is_(None),
            )
            .order_by(Lesson.customer_id, Lesson.start, Lesson.id)
        )
        return [
            BillableLesson(
                id=row.id,
                customer_id=row.customer_id,
                start=row.start,
                end=row.end,
                rate=row.rate,
                invoiced=row.invoiced,
            )
            for row in self.db.execute(stmt).scalars()
        ]

    def mark_invoiced(self, lesson_ids: Sequence[int], invoice_id: int) -> None:
        if not lesson_ids:
            return
        # Only still-unbilled rows are claimed; a concurrent claim shows up as a short count.
        result = self.db.execute(
            update(Lesson)
            .where(Lesson.id.in_(list(lesson_ids)), Lesson.invoice_id.is_(None))
            .values(invoice_id=invoice_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(lesson_ids):
            raise LessonAlreadyInvoiced(
                f"Expected to mark {len(lesson_ids)} lesson(s) invoiced, marked {result.rowcount}."
            )

    def release(self, invoice_id: int) -> list[int]:
        lesson_ids = list(
            self.db.execute(select(Lesson.id).where(Lesson.invoice_id == invoice_id)).scalars()
        )
        if lesson_ids:
            self.db.execute(
                update(Lesson)
                .where(Lesson.id.in_(lesson_ids))
                .values(invoice_id=None)
                .execution_options(synchronize_session=False)
            )
        return lesson_ids
