"""Invoice service exposing the invoicing operations to API handlers and tasks."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Config, get_config
from app.core.exceptions import DuplicateInvoiceNumber, InvoiceLocked, NotFoundError, ValidationError
from app.core.logging import LogContext, build_log_event
from app.domain.numbering import Period, check_period, parse_invoice_number
from app.models.customer import Customer
from app.models.enums import AuditAction, InvoiceStatus
from app.models.invoice import Invoice
from app.models.workspace import Workspace
from app.repositories.customers import SqlCustomerDirectory
from app.repositories.invoices import SqlInvoiceRepository
from app.repositories.lessons import SqlLessonBillingSource
from app.services.audit_service import record_audit
from app.services.base_service import BaseService
from app.services.invoice_builder import ItemInput, apply_totals, build_items, check_dates
from app.services.invoice_export import render_invoice_csv
from app.services.invoice_generator import GenerationResult, InvoiceGenerator
from app.services.invoice_lifecycle import InvoiceDispatcher, InvoiceLifecycle, coerce_status, ensure_editable
from app.services.number_allocator import InvoiceNumberAllocator
from app.utils.validators import sanitize_text

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"customer_id", "date", "due_date", "items", "notes", "payment_terms"})


class InvoiceService(BaseService):
    """Service for invoice creation, generation, edits and status changes."""

    def __init__(
        self,
        db: Session | None = None,
        allocator: InvoiceNumberAllocator | None = None,
        dispatcher: InvoiceDispatcher | None = None,
        config: Config | None = None,
    ) -> None:
        super().__init__(db)
        self.config = config or get_config()
        self.allocator = allocator or InvoiceNumberAllocator(
            sessionmaker(bind=self.db.get_bind(), expire_on_commit=False)
        )
        self.invoices = SqlInvoiceRepository(self.db)
        self.customers = SqlCustomerDirectory(self.db)
        self.lessons = SqlLessonBillingSource(self.db)
        self.lifecycle = InvoiceLifecycle(
            db=self.db,
            repository=self.invoices,
            customers=self.customers,
            dispatcher=dispatcher,
        )

    def create_invoice(
        self,
        workspace_id: int,
        customer_id: int,
        invoice_date: date,
        due_date: date,
        items: Sequence[ItemInput],
        notes: str | None = None,
        manual_number: str | None = None,
        payment_terms: str | None = None,
        actor_id: int | None = None,
    ) -> Invoice:
        """Create a draft invoice; ``manual_number`` carries over a legacy number."""
        self._require_workspace(workspace_id)
        self._require_customer(workspace_id, customer_id)
        check_dates(invoice_date, due_date)
        built_items = build_items(items)

        period = Period(year=invoice_date.year, month=invoice_date.month)
        if manual_number is not None:
            manual_number = manual_number.strip()
            check_period(parse_invoice_number(manual_number), period, manual_number)
            if self.invoices.find_by_number(workspace_id, manual_number) is not None:
                raise DuplicateInvoiceNumber(manual_number)

        invoice_number = self.allocator.allocate(workspace_id, period, manual_override=manual_number)
        invoice = Invoice(
            workspace_id=workspace_id,
            customer_id=customer_id,
            invoice_number=invoice_number,
            date=invoice_date,
            due_date=due_date,
            status=InvoiceStatus.DRAFT,
            notes=sanitize_text(notes),
            payment_terms=sanitize_text(payment_terms, max_len=64),
        )
        invoice.items = built_items
        apply_totals(invoice)

        try:
            with self.unit_of_work():
                self.invoices.create(invoice)
                record_audit(self.db, invoice, AuditAction.CREATED.value, actor_id=actor_id)
        except IntegrityError as exc:
            if self.invoices.find_by_number(workspace_id, invoice_number) is not None:
                raise DuplicateInvoiceNumber(invoice_number) from exc
            raise

        logger.info(
            "invoice.created",
            extra=build_log_event(
                "invoice.created",
                LogContext(workspace_id=workspace_id, invoice_id=invoice.id, customer_id=customer_id, actor_id=actor_id),
                invoice_number=invoice_number,
                manual_number=manual_number is not None,
                total=invoice.total,
            ),
        )
        return invoice

    def generate_monthly_invoices(
        self,
        workspace_id: int,
        year: int,
        month: int,
        cancel_event: threading.Event | None = None,
        actor_id: int | None = None,
    ) -> GenerationResult:
        generator = InvoiceGenerator(
            db=self.db,
            lessons=self.lessons,
            customers=self.customers,
            repository=self.invoices,
            allocator=self.allocator,
            config=self.config,
        )
        return generator.generate_for_period(workspace_id, year, month, cancel_event=cancel_event, actor_id=actor_id)

    def update_invoice_status(
        self,
        invoice_id: int,
        new_status: InvoiceStatus | str,
        actor_id: int | None = None,
    ) -> Invoice:
        return self.lifecycle.transition(invoice_id, new_status, actor_id=actor_id)

    def update_invoice(self, invoice_id: int, fields: dict[str, Any], actor_id: int | None = None) -> Invoice:
        """Edit a draft. Items, when given, replace the existing list."""
        invoice = self._require_invoice(invoice_id)
        ensure_editable(invoice)

        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        invoice_date = fields.get("date", invoice.date)
        due_date = fields.get("due_date", invoice.due_date)
        check_dates(invoice_date, due_date)
        if "customer_id" in fields:
            self._require_customer(invoice.workspace_id, fields["customer_id"])
        new_items = build_items(fields["items"]) if "items" in fields else None

        changes: dict[str, Any] = {"date": invoice_date, "due_date": due_date}
        if "customer_id" in fields:
            changes["customer_id"] = fields["customer_id"]
        if "notes" in fields:
            changes["notes"] = sanitize_text(fields["notes"])
        if "payment_terms" in fields:
            changes["payment_terms"] = sanitize_text(fields["payment_terms"], max_len=64)
        if new_items is not None:
            changes["items"] = new_items

        with self.unit_of_work():
            self._claim_draft(invoice)
            invoice = self.invoices.patch(invoice_id, changes)
            apply_totals(invoice)
            record_audit(self.db, invoice, AuditAction.UPDATED.value, actor_id=actor_id)

        logger.info(
            "invoice.updated",
            extra=build_log_event(
                "invoice.updated",
                LogContext(workspace_id=invoice.workspace_id, invoice_id=invoice.id, actor_id=actor_id),
                fields=sorted(fields),
                total=invoice.total,
            ),
        )
        return invoice

    def delete_invoice(self, invoice_id: int, actor_id: int | None = None) -> list[int]:
        """Delete a draft and release its lessons. The number stays consumed."""
        invoice = self._require_invoice(invoice_id)
        ensure_editable(invoice)
        workspace_id = invoice.workspace_id
        invoice_number = invoice.invoice_number
        with self.unit_of_work():
            self._claim_draft(invoice)
            released = self.lessons.release(invoice_id)
            self.invoices.delete(invoice_id)

        logger.info(
            "invoice.deleted",
            extra=build_log_event(
                "invoice.deleted",
                LogContext(workspace_id=workspace_id, invoice_id=invoice_id, actor_id=actor_id),
                invoice_number=invoice_number,
                released_lessons=len(released),
            ),
        )
        return released

    def get_invoice(self, invoice_id: int) -> Invoice:
        return self._require_invoice(invoice_id)

    def list_invoices(self, workspace_id: int, status: InvoiceStatus | str | None = None) -> list[Invoice]:
        resolved = coerce_status(status) if status is not None else None
        return self.invoices.list_by_workspace(workspace_id, status=resolved)

    def peek_next_number(self, workspace_id: int, year: int, month: int) -> str:
        return self.allocator.peek_next(workspace_id, Period(year=year, month=month))

    def export_csv(self, workspace_id: int, invoice_ids: Iterable[int]) -> str:
        """CSV for the selected invoices of a workspace; ids from other workspaces are skipped."""
        selected = self.invoices.list_by_workspace(workspace_id, ids=list(invoice_ids))
        return render_invoice_csv(selected)

    def _require_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice not found: {invoice_id}")
        return invoice

    def _claim_draft(self, invoice: Invoice) -> None:
        # Conditional on the stored status, so a send committed after the read wins.
        if not self.invoices.update_if_status(invoice.id, InvoiceStatus.DRAFT, {}):
            raise InvoiceLocked(f"Invoice {invoice.invoice_number} is no longer a draft.")

    def _require_workspace(self, workspace_id: int) -> Workspace:
        workspace = self.db.get(Workspace, workspace_id)
        if workspace is None:
            raise NotFoundError(f"Workspace not found: {workspace_id}")
        return workspace

    def _require_customer(self, workspace_id: int, customer_id: int) -> None:
        customer = self.db.get(Customer, customer_id)
        if customer is None or customer.workspace_id != workspace_id:
            raise NotFoundError(f"Customer {customer_id} not found in workspace {workspace_id}")
