"""SQLAlchemy model package for the workspace-aware invoicing schema."""

from app.models.audit_log import InvoiceAuditLog
from app.models.base import Base
from app.models.customer import Customer
from app.models.enums import AuditAction, InvoiceStatus
from app.models.invoice import Invoice, InvoiceItem
from app.models.invoice_sequence import InvoiceNumberSequence
from app.models.lesson import Lesson
from app.models.workspace import Workspace

__all__ = [
    "AuditAction",
    "Base",
    "Customer",
    "Invoice",
    "InvoiceAuditLog",
    "InvoiceItem",
    "InvoiceNumberSequence",
    "InvoiceStatus",
    "Lesson",
    "Workspace",
]
