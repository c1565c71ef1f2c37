"""Invoice status workflow.

    draft -> sent -> paid
      |        |
      +--------+-> cancelled

``paid`` and ``cancelled`` are terminal. Status only moves forward; financial
fields are editable only while an invoice is a draft.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from sqlalchemy.orm import Session

from app.core.exceptions import InvalidTransition, InvoiceLocked, NotFoundError, ValidationError
from app.core.logging import LogContext, build_log_event
from app.models.base import utcnow
from app.models.enums import AuditAction, InvoiceStatus
from app.models.invoice import Invoice
from app.orchestration.state_machine import StateMachine, invoice_state_machine
from app.repositories.customers import SqlCustomerDirectory
from app.repositories.invoices import SqlInvoiceRepository
from app.repositories.ports import CustomerDirectory, InvoiceRepository
from app.services.audit_service import record_audit
from app.services.base_service import BaseService

logger = logging.getLogger(__name__)


class InvoiceDispatcher(Protocol):
    """Delivers a sent invoice (PDF rendering, email); implemented outside invoicing."""

    def dispatch(self, invoice: Invoice) -> None:
        ...


def coerce_status(value: InvoiceStatus | str) -> InvoiceStatus:
    if isinstance(value, InvoiceStatus):
        return value
    try:
        return InvoiceStatus(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown invoice status: {value!r}") from exc


def ensure_editable(invoice: Invoice) -> None:
    if invoice.status != InvoiceStatus.DRAFT:
        raise InvoiceLocked(
            f"Invoice {invoice.invoice_number} is {InvoiceStatus(invoice.status).value}; only drafts can be edited."
        )


class InvoiceLifecycle(BaseService):
    def __init__(
        self,
        db: Session | None = None,
        repository: InvoiceRepository | None = None,
        customers: CustomerDirectory | None = None,
        dispatcher: InvoiceDispatcher | None = None,
        state_machine: StateMachine = invoice_state_machine,
    ) -> None:
        super().__init__(db)
        self.repository = repository or SqlInvoiceRepository(self.db)
        self.customers = customers or SqlCustomerDirectory(self.db)
        self.dispatcher = dispatcher
        self.state_machine = state_machine

    def transition(
        self,
        invoice_id: int,
        new_status: InvoiceStatus | str,
        actor_id: int | None = None,
        now: datetime | None = None,
    ) -> Invoice:
        """Apply a status change or raise ``InvalidTransition`` leaving the invoice untouched.

        Sending calls the dispatcher before the commit, so a failed delivery
        keeps the invoice in draft.
        """
        target = coerce_status(new_status)
        invoice = self.repository.get(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice not found: {invoice_id}")
        current = InvoiceStatus(invoice.status)
        self.state_machine.assert_transition(current, target)
        if target == InvoiceStatus.SENT:
            self._check_sendable(invoice)

        timestamp = now or utcnow()
        fields: dict = {"status": target}
        if target == InvoiceStatus.SENT and invoice.sent_at is None:
            fields["sent_at"] = timestamp
        if target == InvoiceStatus.PAID and invoice.paid_at is None:
            fields["paid_at"] = timestamp

        with self.unit_of_work():
            if not self.repository.update_if_status(invoice_id, current, fields):
                raise InvalidTransition(current.value, target.value, "status changed by a concurrent request")
            record_audit(self.db, invoice, AuditAction.status_change(target), actor_id=actor_id)
            if target == InvoiceStatus.SENT and self.dispatcher is not None:
                self.dispatcher.dispatch(invoice)

        logger.info(
            "invoice.status_changed",
            extra=build_log_event(
                "invoice.status_changed",
                LogContext(workspace_id=invoice.workspace_id, invoice_id=invoice.id, actor_id=actor_id),
                from_status=current.value,
                to_status=target.value,
            ),
        )
        return invoice

    def _check_sendable(self, invoice: Invoice) -> None:
        if not invoice.items:
            raise InvalidTransition(InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value, "invoice has no items")
        if self.customers.get(invoice.customer_id) is None:
            raise InvalidTransition(
                InvoiceStatus.DRAFT.value,
                InvoiceStatus.SENT.value,
                f"customer {invoice.customer_id} cannot be resolved",
            )
