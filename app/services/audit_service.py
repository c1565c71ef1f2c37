"""Invoice audit trail writer."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.audit_log import InvoiceAuditLog
from app.models.invoice import Invoice


def record_audit(db: Session, invoice: Invoice, action: str, actor_id: int | None = None) -> InvoiceAuditLog:
    """Add an audit row to the current transaction; the caller commits."""
    entry = InvoiceAuditLog(
        workspace_id=invoice.workspace_id,
        invoice_id=invoice.id,
        actor_id=actor_id,
        action=action,
    )
    db.add(entry)
    return entry


def list_audit(db: Session, invoice_id: int) -> list[InvoiceAuditLog]:
    stmt = (
        select(InvoiceAuditLog)
        .where(InvoiceAuditLog.invoice_id == invoice_id)
        .order_by(InvoiceAuditLog.id)
    )
    return list(db.execute(stmt).scalars())
