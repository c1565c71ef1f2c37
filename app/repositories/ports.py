"""Collaborator contracts consumed by the invoicing core.

Customer storage and the lesson calendar live outside invoicing; the core only
talks to them through these protocols. The SQLAlchemy adapters in this package
are the default implementations.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from app.models.enums import InvoiceStatus
from app.models.invoice import Invoice


@dataclass(frozen=True)
class BillableLesson:
    id: int
    customer_id: int
    start: datetime
    end: datetime
    rate: int | None
    invoiced: bool = False


@dataclass(frozen=True)
class CustomerProfile:
    id: int
    workspace_id: int
    name: str
    default_hourly_rate: int | None = None
    payment_terms_days: int | None = None
    is_vat_exempt: bool = False
    service_description: str | None = None


class LessonBillingSource(Protocol):
    def list_unbilled(self, workspace_id: int, start: datetime, end: datetime) -> list[BillableLesson]:
        """Billable, not yet invoiced lessons with ``start`` in ``[start, end)``."""
        ...

    def mark_invoiced(self, lesson_ids: Sequence[int], invoice_id: int) -> None:
        ...

    def release(self, invoice_id: int) -> list[int]:
        """Unlink every lesson billed by ``invoice_id``; returns the lesson ids."""
        ...


class CustomerDirectory(Protocol):
    def get(self, customer_id: int) -> CustomerProfile | None:
        ...


class InvoiceRepository(Protocol):
    def create(self, invoice: Invoice) -> int:
        ...

    def get(self, invoice_id: int) -> Invoice | None:
        ...

    def list_by_workspace(
        self,
        workspace_id: int,
        status: InvoiceStatus | None = None,
        ids: Iterable[int] | None = None,
    ) -> list[Invoice]:
        ...

    def patch(self, invoice_id: int, fields: dict[str, Any]) -> Invoice:
        ...

    def update_if_status(self, invoice_id: int, expected: InvoiceStatus, fields: dict[str, Any]) -> bool:
        ...

    def find_by_number(self, workspace_id: int, invoice_number: str) -> Invoice | None:
        ...

    def delete(self, invoice_id: int) -> None:
        ...
