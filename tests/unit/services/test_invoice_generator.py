from __future__ import annotations

import threading
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from app.core.exceptions import PartialGenerationFailure
from app.domain.numbering import Period
from app.models import Invoice, InvoiceAuditLog, InvoiceStatus, Lesson
from app.repositories.invoices import SqlInvoiceRepository
from app.repositories.lessons import SqlLessonBillingSource
from app.services.invoice_generator import InvoiceGenerator, month_bounds

RUN_DAY = date(2024, 12, 1)


def _generator(session, allocator, config):
    return InvoiceGenerator(db=session, allocator=allocator, config=config, today=lambda: RUN_DAY)


def _hour(day: int, hour: int = 15) -> tuple[datetime, datetime]:
    return datetime(2024, 11, day, hour, 0), datetime(2024, 11, day, hour + 1, 0)


def _invoice_count(session) -> int:
    return session.execute(select(func.count(Invoice.id))).scalar_one()


def _imported_invoice(session, customer, number: str) -> Invoice:
    """An invoice row carried over from elsewhere; the counter never saw its number."""
    invoice = Invoice(
        workspace_id=customer.workspace_id,
        customer_id=customer.id,
        invoice_number=number,
        date=date(2024, 11, 2),
        due_date=date(2024, 11, 16),
    )
    session.add(invoice)
    session.commit()
    return invoice


class ClaimingLessonSource(SqlLessonBillingSource):
    """Another session links ``lesson_id`` to an invoice right after the unbilled list is read."""

    def __init__(self, db, session_factory, lesson_id: int, invoice_id: int) -> None:
        super().__init__(db)
        self.session_factory = session_factory
        self.lesson_id = lesson_id
        self.invoice_id = invoice_id

    def list_unbilled(self, workspace_id, start, end):
        lessons = super().list_unbilled(workspace_id, start, end)
        with self.session_factory() as other:
            other.execute(update(Lesson).where(Lesson.id == self.lesson_id).values(invoice_id=self.invoice_id))
            other.commit()
        return lessons


def test_month_bounds_cover_december_rollover():
    assert month_bounds(Period(2024, 12)) == (datetime(2024, 12, 1), datetime(2025, 1, 1))
    assert month_bounds(Period(2024, 2)) == (datetime(2024, 2, 1), datetime(2024, 3, 1))


def test_three_lessons_become_one_draft(session, seed, allocator, make_config):
    workspace = seed.workspace()
    customer = seed.customer(workspace)
    lessons = [seed.lesson(customer, *_hour(day), rate=5000) for day in (4, 11, 18)]

    result = _generator(session, allocator, make_config()).generate_for_period(workspace.id, 2024, 11)

    assert result.ok
    assert len(result.created_ids) == 1
    invoice = SqlInvoiceRepository(session).get(result.created_ids[0])
    assert invoice.invoice_number == "24/11/0001"
    assert invoice.status == InvoiceStatus.DRAFT
    assert (invoice.subtotal, invoice.tax_total, invoice.total) == (15000, 2850, 17850)
    assert invoice.date == RUN_DAY
    assert invoice.due_date == date(2024, 12, 15)
    assert invoice.payment_terms == "14 Days"

    assert [item.position for item in invoice.items] == [1, 2, 3]
    first = invoice.items[0]
    assert first.description == "Lesson"
    assert first.unit == "Hour"
    assert first.quantity == Decimal("1.00")
    assert first.unit_price == 5000
    assert first.tax_rate == Decimal("19")
    assert first.service_date == date(2024, 11, 4)
    assert (first.start_time, first.end_time) == ("15:00", "16:00")
    assert first.lesson_id == lessons[0].id

    session.expire_all()
    assert all(session.get(Lesson, lesson.id).invoice_id == invoice.id for lesson in lessons)
    actions = session.execute(select(InvoiceAuditLog.action)).scalars().all()
    assert actions == ["created"]


def test_second_run_creates_nothing(session, seed, allocator, make_config):
    workspace = seed.workspace()
    customer = seed.customer(workspace)
    seed.lesson(customer, *_hour(4), rate=5000)
    generator = _generator(session, allocator, make_config())

    first = generator.generate_for_period(workspace.id, 2024, 11)
    second = generator.generate_for_period(workspace.id, 2024, 11)

    assert len(first.created_ids) == 1
    assert second.created_ids == []
    assert second.failures == []
    assert _invoice_count(session) == 1
    assert allocator.last_sequence(workspace.id, Period(2024, 11)) == 1


def test_new_lessons_after_first_run_get_their_own_draft(session, seed, allocator, make_config):
    workspace = seed.workspace()
    customer = seed.customer(workspace)
    seed.lesson(customer, *_hour(4), rate=5000)
    generator = _generator(session, allocator, make_config())
    generator.generate_for_period(workspace.id, 2024, 11)

    seed.lesson(customer, *_hour(25), rate=5000)
    result = generator.generate_for_period(workspace.id, 2024, 11)

    invoice = SqlInvoiceRepository(session).get(result.created_ids[0])
    assert invoice.invoice_number == "24/11/0002"
    assert len(invoice.items) == 1


def test_only_billable_lessons_inside_the_month_are_billed(session, seed, allocator, make_config):
    workspace = seed.workspace()
    customer = seed.customer(workspace)
    seed.lesson(customer, datetime(2024, 10, 31, 23, 0), datetime(2024, 11, 1, 0, 0), rate=5000)
    seed.lesson(customer, datetime(2024, 12, 1, 0, 0), datetime(2024, 12, 1, 1, 0), rate=5000)
    seed.lesson(customer, *_hour(6), rate=5000, is_billable=False)
    inside = seed.lesson(customer, datetime(2024, 11, 1, 0, 0), datetime(2024, 11, 1, 0, 45), rate=4000)

    result = _generator(session, allocator, make_config()).generate_for_period(workspace.id, 2024, 11)

    invoice = SqlInvoiceRepository(session).get(result.created_ids[0])
    assert [item.lesson_id for item in invoice.items] == [inside.id]
    assert invoice.items[0].quantity == Decimal("0.75")
    assert invoice.subtotal == 3000


def test_one_draft_per_customer(session, seed, allocator, make_config):
    workspace = seed.workspace()
    alice = seed.customer(workspace, name="Alice")
    bob = seed.customer(workspace, name="Bob")
    seed.lesson(alice, *_hour(4), rate=5000)
    seed.lesson(bob, *_hour(5), rate=6000)
    seed.lesson(alice, *_hour(12), rate=5000)

    result = _generator(session, allocator, make_config()).generate_for_period(workspace.id, 2024, 11)

    invoices = [SqlInvoiceRepository(session).get(invoice_id) for invoice_id in result.created_ids]
    by_customer = {invoice.customer_id: invoice for invoice in invoices}
    assert len(by_customer[alice.id].items) == 2
    assert len(by_customer[bob.id].items) == 1
    assert sorted(invoice.invoice_number for invoice in invoices) == ["24/11/0001", "24/11/0002"]


def test_vat_exempt_customer_pays_no_tax(session, seed, allocator, make_config):
    workspace = seed.workspace(default_tax_rate=7)
    customer = seed.customer(workspace, is_vat_exempt=True)
    seed.lesson(customer, *_hour(4), rate=5000)

    result = _generator(session, allocator, make_config()).generate_for_period(workspace.id, 2024, 11)

    invoice = SqlInvoiceRepository(session).get(result.created_ids[0])
    assert (invoice.subtotal, invoice.tax_total, invoice.total) == (5000, 0, 5000)


def test_workspace_defaults_override_configuration(session, seed, allocator, make_config):
    workspace = seed.workspace(default_tax_rate=7, default_payment_terms_days=30)
    customer = seed.customer(workspace)
    seed.lesson(customer, *_hour(4), rate=10000)

    result = _generator(session, allocator, make_config()).generate_for_period(workspace.id, 2024, 11)

    invoice = SqlInvoiceRepository(session).get(result.created_ids[0])
    assert invoice.tax_total == 700
    assert invoice.due_date == date(2024, 12, 31)
    assert invoice.payment_terms == "30 Days"


def test_customer_terms_and_service_description(session, seed, allocator, make_config):
    workspace = seed.workspace(default_payment_terms_days=30)
    customer = seed.customer(workspace, payment_terms_days=7, service_description="Piano lesson")
    seed.lesson(customer, *_hour(4), rate=5000)

    result = _generator(session, allocator, make_config()).generate_for_period(workspace.id, 2024, 11)

    invoice = SqlInvoiceRepository(session).get(result.created_ids[0])
    assert invoice.due_date == date(2024, 12, 8)
    assert invoice.items[0].description == "Piano lesson"


@pytest.mark.parametrize(
    ("customer_rate", "workspace_rate", "config_rate", "expected"),
    [
        (4000, 3000, 2000, 4000),
        (None, 3000, 2000, 3000),
        (None, None, 2000, 2000),
        (None, None, None, 0),
    ],
)
def test_missing_lesson_rate_falls_back(
    session, seed, allocator, make_config, customer_rate, workspace_rate, config_rate, expected
):
    workspace = seed.workspace(default_hourly_rate=workspace_rate)
    customer = seed.customer(workspace, default_hourly_rate=customer_rate)
    seed.lesson(customer, *_hour(4), rate=None)

    config = make_config(DEFAULT_HOURLY_RATE=config_rate)
    result = _generator(session, allocator, config).generate_for_period(workspace.id, 2024, 11)

    invoice = SqlInvoiceRepository(session).get(result.created_ids[0])
    assert invoice.items[0].unit_price == expected


def test_strict_mode_isolates_failing_customer(session, seed, allocator, make_config):
    workspace = seed.workspace()
    priced = seed.customer(workspace, name="Priced")
    unpriced = seed.customer(workspace, name="Unpriced")
    seed.lesson(priced, *_hour(4), rate=5000)
    orphan = seed.lesson(unpriced, *_hour(5), rate=None)

    config = make_config(STRICT_LESSON_RATES=True)
    result = _generator(session, allocator, config).generate_for_period(workspace.id, 2024, 11)

    assert len(result.created_ids) == 1
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.customer_id == unpriced.id
    assert failure.lesson_ids == [orphan.id]
    assert failure.error_type == "MissingRateError"

    session.expire_all()
    assert session.get(Lesson, orphan.id).invoice_id is None
    # The failed group never drew a number.
    assert allocator.peek_next(workspace.id, Period(2024, 11)) == "24/11/0002"

    with pytest.raises(PartialGenerationFailure) as exc:
        result.raise_for_failures()
    assert exc.value.created_ids == result.created_ids


def test_no_billable_lessons_creates_nothing(session, seed, allocator, make_config):
    workspace = seed.workspace()
    seed.customer(workspace)

    result = _generator(session, allocator, make_config()).generate_for_period(workspace.id, 2024, 11)

    assert result.created_ids == []
    assert result.ok
    assert _invoice_count(session) == 0
    assert allocator.peek_next(workspace.id, Period(2024, 11)) == "24/11/0001"


def test_cancelled_run_stops_before_next_group(session, seed, allocator, make_config):
    workspace = seed.workspace()
    customer = seed.customer(workspace)
    lesson = seed.lesson(customer, *_hour(4), rate=5000)
    cancel = threading.Event()
    cancel.set()

    result = _generator(session, allocator, make_config()).generate_for_period(
        workspace.id, 2024, 11, cancel_event=cancel
    )

    assert result.cancelled is True
    assert result.created_ids == []
    session.expire_all()
    assert session.get(Lesson, lesson.id).invoice_id is None


def test_lessons_of_other_workspaces_are_ignored(session, seed, allocator, make_config):
    mine = seed.workspace(name="Mine")
    other = seed.workspace(name="Other")
    seed.lesson(seed.customer(other), *_hour(4), rate=5000)

    result = _generator(session, allocator, make_config()).generate_for_period(mine.id, 2024, 11)

    assert result.created_ids == []


def test_number_taken_by_imported_invoice_fails_only_that_group(session, seed, allocator, make_config):
    workspace = seed.workspace()
    first = seed.customer(workspace, name="First")
    second = seed.customer(workspace, name="Second")
    imported_owner = seed.customer(workspace, name="Imported")
    first_lessons = [seed.lesson(first, *_hour(day), rate=5000) for day in (4, 11)]
    second_lesson = seed.lesson(second, *_hour(5), rate=6000)
    imported = _imported_invoice(session, imported_owner, "24/11/0001")

    result = _generator(session, allocator, make_config()).generate_for_period(workspace.id, 2024, 11)

    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.customer_id == first.id
    assert failure.lesson_ids == [lesson.id for lesson in first_lessons]
    assert failure.error_type == "DuplicateInvoiceNumber"
    assert len(result.created_ids) == 1

    session.expire_all()
    invoices = session.execute(select(Invoice).order_by(Invoice.id)).scalars().all()
    assert [(invoice.id, invoice.invoice_number) for invoice in invoices] == [
        (imported.id, "24/11/0001"),
        (result.created_ids[0], "24/11/0002"),
    ]
    assert all(session.get(Lesson, lesson.id).invoice_id is None for lesson in first_lessons)
    assert session.get(Lesson, second_lesson.id).invoice_id == result.created_ids[0]
    assert allocator.peek_next(workspace.id, Period(2024, 11)) == "24/11/0003"


def test_lesson_claimed_during_run_rolls_back_its_draft(session, session_factory, seed, allocator, make_config):
    workspace = seed.workspace()
    first = seed.customer(workspace, name="First")
    second = seed.customer(workspace, name="Second")
    claimed = seed.lesson(first, *_hour(4), rate=5000)
    unclaimed = seed.lesson(first, *_hour(11), rate=5000)
    seed.lesson(second, *_hour(5), rate=6000)
    earlier = _imported_invoice(session, first, "24/10/0007")

    generator = InvoiceGenerator(
        db=session,
        lessons=ClaimingLessonSource(session, session_factory, claimed.id, earlier.id),
        allocator=allocator,
        config=make_config(),
        today=lambda: RUN_DAY,
    )
    result = generator.generate_for_period(workspace.id, 2024, 11)

    assert [failure.customer_id for failure in result.failures] == [first.id]
    assert result.failures[0].error_type == "LessonAlreadyInvoiced"
    assert len(result.created_ids) == 1

    session.expire_all()
    drafts = session.execute(select(Invoice).where(Invoice.customer_id == first.id)).scalars().all()
    assert [invoice.id for invoice in drafts] == [earlier.id]
    assert session.get(Lesson, unclaimed.id).invoice_id is None
    assert session.get(Lesson, claimed.id).invoice_id == earlier.id
    created = session.get(Invoice, result.created_ids[0])
    assert (created.customer_id, created.invoice_number) == (second.id, "24/11/0002")
    audited = session.execute(select(InvoiceAuditLog.invoice_id)).scalars().all()
    assert audited == [created.id]
