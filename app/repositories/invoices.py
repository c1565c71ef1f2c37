"""SQLAlchemy invoice repository."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.core.exceptions import NotFoundError
from app.models.enums import InvoiceStatus
from app.models.invoice import Invoice


class SqlInvoiceRepository:
    """Session-bound repository; callers own the transaction boundary."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, invoice: Invoice) -> int:
        self.db.add(invoice)
        self.db.flush()
        return invoice.id

    def get(self, invoice_id: int) -> Invoice | None:
        stmt = select(Invoice).options(selectinload(Invoice.items)).where(Invoice.id == invoice_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_or_raise(self, invoice_id: int) -> Invoice:
        invoice = self.get(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice not found: {invoice_id}")
        return invoice

    def list_by_workspace(
        self,
        workspace_id: int,
        status: InvoiceStatus | None = None,
        ids: Iterable[int] | None = None,
    ) -> list[Invoice]:
        stmt = (
            select(Invoice)
            .options(selectinload(Invoice.items), selectinload(Invoice.customer))
            .where(Invoice.workspace_id == workspace_id)
        )
        if status is not None:
            stmt = stmt.where(Invoice.status == status)
        if ids is not None:
            stmt = stmt.where(Invoice.id.in_(list(ids)))
        stmt = stmt.order_by(Invoice.date.desc(), Invoice.id.desc())
        return list(self.db.execute(stmt).scalars().all())

    def patch(self, invoice_id: int, fields: dict[str, Any]) -> Invoice:
        invoice = self.get_or_raise(invoice_id)
        for name, value in fields.items():
            if not hasattr(Invoice, name):
                raise AttributeError(f"Invoice has no field {name!r}")
            setattr(invoice, name, value)
        self.db.flush()
        return invoice

    def update_if_status(self, invoice_id: int, expected: InvoiceStatus, fields: dict[str, Any]) -> bool:
        """Apply ``fields`` only while the row still has ``expected`` status.

        Returns False when another transaction moved the invoice on first.
        """
        values = dict(fields) or {"status": expected}
        result = self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        invoice = self.db.get(Invoice, invoice_id)
        for name, value in values.items():
            set_committed_value(invoice, name, value)
        return True

    def find_by_number(self, workspace_id: int, invoice_number: str) -> Invoice | None:
        stmt = select(Invoice).where(
            Invoice.workspace_id == workspace_id,
            Invoice.invoice_number == invoice_number,
        )
        return self.db.execute(stmt).scalars().first()

    def delete(self, invoice_id: int) -> None:
        invoice = self.get_or_raise(invoice_id)
        self.db.delete(invoice)
        self.db.flush()
