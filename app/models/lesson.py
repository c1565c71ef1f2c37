"""Lesson model module.

Lessons belong to the calendar subsystem. Invoicing only reads them and links
them to the invoice that billed them.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import AuditMixin, Base, WorkspaceScopedMixin


class Lesson(Base, AuditMixin, WorkspaceScopedMixin):
    __tablename__ = "lessons"
    __table_args__ = (
        Index("idx_lessons_workspace_start", "workspace_id", "start"),
        Index("idx_lessons_invoice", "invoice_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255))
    # Naive UTC.
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    rate: Mapped[int | None] = mapped_column(Integer)
    is_billable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    invoice_id: Mapped[int | None] = mapped_column(ForeignKey("invoices.id", ondelete="SET NULL"))

    @property
    def invoiced(self) -> bool:
        return self.invoice_id is not None
