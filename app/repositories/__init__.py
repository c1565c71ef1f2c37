"""Persistence adapters for invoices and their external collaborators."""

from app.repositories.customers import SqlCustomerDirectory
from app.repositories.invoices import SqlInvoiceRepository
from app.repositories.lessons import SqlLessonBillingSource
from app.repositories.ports import (
    BillableLesson,
    CustomerDirectory,
    CustomerProfile,
    InvoiceRepository,
    LessonBillingSource,
)

__all__ = [
    "BillableLesson",
    "CustomerDirectory",
    "CustomerProfile",
    "InvoiceRepository",
    "LessonBillingSource",
    "SqlCustomerDirectory",
    "SqlInvoiceRepository",
    "SqlLessonBillingSource",
]
