from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from app.core.exceptions import InvalidTransition, NotFoundError, ValidationError
from app.models import InvoiceStatus
from app.models import invoice as invoice_model
from app.orchestration.state_machine import invoice_state_machine
from app.schemas import invoices as invoice_schemas
from app.services.audit_service import list_audit
from app.services.invoice_builder import ItemInput
from app.services.invoice_lifecycle import InvoiceLifecycle
from app.services.invoice_service import InvoiceService


class RecordingDispatcher:
    def __init__(self) -> None:
        self.sent: list[str] = []

    def dispatch(self, invoice) -> None:
        self.sent.append(invoice.invoice_number)


class FailingDispatcher:
    def dispatch(self, invoice) -> None:
        raise RuntimeError("mail server unavailable")


class InterleavingStateMachine:
    """Runs ``step`` once, between the transition check and the status write."""

    def __init__(self, step) -> None:
        self.step = step

    def assert_transition(self, current, target) -> None:
        invoice_state_machine.assert_transition(current, target)
        step, self.step = self.step, None
        if step is not None:
            step()


def _service(session, allocator, make_config, dispatcher=None) -> InvoiceService:
    return InvoiceService(db=session, allocator=allocator, dispatcher=dispatcher, config=make_config())


def _draft(service, seed, items=None):
    workspace = seed.workspace()
    customer = seed.customer(workspace)
    if items is None:
        items = [ItemInput(description="Guitar lesson", quantity=1, unit_price=5000, tax_rate=19)]
    return service.create_invoice(
        workspace_id=workspace.id,
        customer_id=customer.id,
        invoice_date=date(2024, 11, 30),
        due_date=date(2024, 12, 14),
        items=items,
    )


def test_sent_invoice_can_be_paid_but_not_reopened(session, seed, allocator, make_config):
    dispatcher = RecordingDispatcher()
    service = _service(session, allocator, make_config, dispatcher)
    invoice = _draft(service, seed)

    sent = service.update_invoice_status(invoice.id, "sent", actor_id=7)
    assert sent.status == InvoiceStatus.SENT
    assert sent.sent_at is not None
    assert dispatcher.sent == [invoice.invoice_number]

    paid = service.update_invoice_status(invoice.id, InvoiceStatus.PAID)
    assert paid.status == InvoiceStatus.PAID
    assert paid.paid_at is not None

    with pytest.raises(InvalidTransition):
        service.update_invoice_status(invoice.id, "draft")
    assert service.get_invoice(invoice.id).status == InvoiceStatus.PAID

    actions = [entry.action for entry in list_audit(session, invoice.id)]
    assert actions == ["created", "status_change_to_sent", "status_change_to_paid"]
    assert list_audit(session, invoice.id)[1].actor_id == 7


@pytest.mark.parametrize(
    ("path", "rejected"),
    [
        ([], "paid"),
        (["cancelled"], "sent"),
        (["cancelled"], "draft"),
        (["sent"], "draft"),
        (["sent", "paid"], "cancelled"),
    ],
)
def test_illegal_transitions_leave_status_unchanged(session, seed, allocator, make_config, path, rejected):
    service = _service(session, allocator, make_config)
    invoice = _draft(service, seed)
    for status in path:
        service.update_invoice_status(invoice.id, status)
    before = service.get_invoice(invoice.id).status

    with pytest.raises(InvalidTransition):
        service.update_invoice_status(invoice.id, rejected)

    assert service.get_invoice(invoice.id).status == before


def test_draft_and_sent_invoices_can_be_cancelled(session, seed, allocator, make_config):
    service = _service(session, allocator, make_config)
    draft = _draft(service, seed)
    assert service.update_invoice_status(draft.id, "cancelled").status == InvoiceStatus.CANCELLED


def test_sending_requires_items(session, seed, allocator, make_config):
    service = _service(session, allocator, make_config)
    invoice = _draft(service, seed, items=[])

    with pytest.raises(InvalidTransition, match="no items"):
        service.update_invoice_status(invoice.id, "sent")
    assert service.get_invoice(invoice.id).status == InvoiceStatus.DRAFT


def test_failed_dispatch_keeps_invoice_in_draft(session, seed, allocator, make_config):
    service = _service(session, allocator, make_config, FailingDispatcher())
    invoice = _draft(service, seed)

    with pytest.raises(RuntimeError):
        service.update_invoice_status(invoice.id, "sent")

    reloaded = service.get_invoice(invoice.id)
    assert reloaded.status == InvoiceStatus.DRAFT
    assert reloaded.sent_at is None
    assert [entry.action for entry in list_audit(session, invoice.id)] == ["created"]


def test_unknown_status_is_a_validation_error(session, seed, allocator, make_config):
    service = _service(session, allocator, make_config)
    invoice = _draft(service, seed)
    with pytest.raises(ValidationError):
        service.update_invoice_status(invoice.id, "archived")


def test_transition_of_missing_invoice(session, allocator, make_config):
    service = _service(session, allocator, make_config)
    with pytest.raises(NotFoundError):
        service.update_invoice_status(999, "sent")


def test_overdue_is_derived_from_status_and_due_date(session, seed, allocator, make_config):
    service = _service(session, allocator, make_config)
    invoice = _draft(service, seed)
    after_due = date(2024, 12, 15)

    assert invoice.overdue_on(after_due) is False
    service.update_invoice_status(invoice.id, "sent")
    assert invoice.overdue_on(date(2024, 12, 14)) is False
    assert invoice.overdue_on(after_due) is True
    service.update_invoice_status(invoice.id, "paid")
    assert invoice.overdue_on(after_due) is False


def test_is_overdue_follows_the_utc_date(session, seed, allocator, make_config, monkeypatch):
    service = _service(session, allocator, make_config)
    invoice = _draft(service, seed)
    service.update_invoice_status(invoice.id, "sent")

    monkeypatch.setattr(invoice_model, "utc_today", lambda: date(2024, 12, 14))
    assert invoice.is_overdue is False
    monkeypatch.setattr(invoice_model, "utc_today", lambda: date(2024, 12, 15))
    assert invoice.is_overdue is True

    monkeypatch.setattr(invoice_schemas, "utc_today", lambda: date(2024, 12, 15))
    assert invoice_schemas.InvoiceResponse.from_invoice(invoice).is_overdue is True


def test_transition_uses_given_clock(session, seed, allocator, make_config):
    service = _service(session, allocator, make_config)
    invoice = _draft(service, seed)
    moment = datetime(2024, 12, 2, 9, 30, tzinfo=timezone.utc)

    sent = service.lifecycle.transition(invoice.id, "sent", now=moment)

    assert sent.sent_at == moment


def test_concurrent_payment_is_not_overwritten_by_cancel(session, session_factory, seed, allocator, make_config):
    service = _service(session, allocator, make_config)
    invoice = _draft(service, seed)
    service.update_invoice_status(invoice.id, "sent")

    def pay_in_other_session() -> None:
        with session_factory() as other:
            InvoiceLifecycle(db=other).transition(invoice.id, "paid")

    racing = InvoiceLifecycle(db=session, state_machine=InterleavingStateMachine(pay_in_other_session))
    with pytest.raises(InvalidTransition, match="concurrent"):
        racing.transition(invoice.id, "cancelled")

    session.expire_all()
    reloaded = service.get_invoice(invoice.id)
    assert reloaded.status == InvoiceStatus.PAID
    assert reloaded.paid_at is not None
    actions = [entry.action for entry in list_audit(session, invoice.id)]
    assert actions == ["created", "status_change_to_sent", "status_change_to_paid"]
