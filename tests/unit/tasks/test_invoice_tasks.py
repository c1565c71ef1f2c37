from __future__ import annotations

from datetime import date, datetime

from sqlalchemy.exc import OperationalError

from app.domain.numbering import Period
from app.models import Invoice
from app.services.invoice_service import InvoiceService
from app.tasks.invoice_tasks import previous_period, run_monthly_generation


def test_previous_period_wraps_year():
    assert previous_period(date(2025, 1, 1)) == Period(2024, 12)
    assert previous_period(date(2024, 12, 1)) == Period(2024, 11)


def test_monthly_generation_covers_every_workspace(session, session_factory, seed):
    first = seed.workspace(name="First")
    second = seed.workspace(name="Second")
    seed.lesson(seed.customer(first), datetime(2024, 11, 4, 15), datetime(2024, 11, 4, 16), rate=5000)
    seed.lesson(seed.customer(second), datetime(2024, 11, 5, 15), datetime(2024, 11, 5, 16), rate=5000)
    seed.lesson(seed.customer(second), datetime(2024, 12, 2, 15), datetime(2024, 12, 2, 16), rate=5000)

    results = run_monthly_generation(session_factory, today=date(2024, 12, 1))

    assert [result.workspace_id for result in results] == [first.id, second.id]
    assert all(result.period == Period(2024, 11) for result in results)
    assert [len(result.created_ids) for result in results] == [1, 1]
    numbers = {invoice.workspace_id: invoice.invoice_number for invoice in session.query(Invoice).all()}
    assert numbers == {first.id: "24/11/0001", second.id: "24/11/0001"}


def test_failing_workspace_does_not_stop_later_ones(session, session_factory, seed, monkeypatch):
    broken = seed.workspace(name="Broken")
    healthy = seed.workspace(name="Healthy")
    seed.lesson(seed.customer(broken), datetime(2024, 11, 4, 15), datetime(2024, 11, 4, 16), rate=5000)
    seed.lesson(seed.customer(healthy), datetime(2024, 11, 5, 15), datetime(2024, 11, 5, 16), rate=5000)

    original = InvoiceService.generate_monthly_invoices

    def generate(self, workspace_id, year, month, **kwargs):
        if workspace_id == broken.id:
            raise OperationalError("SELECT lessons", {}, Exception("database is locked"))
        return original(self, workspace_id, year, month, **kwargs)

    monkeypatch.setattr(InvoiceService, "generate_monthly_invoices", generate)

    results = run_monthly_generation(session_factory, period=Period(2024, 11))

    assert [result.workspace_id for result in results] == [broken.id, healthy.id]
    assert results[0].error_type == "OperationalError"
    assert results[0].created_ids == []
    assert not results[0].ok
    assert results[1].ok
    assert len(results[1].created_ids) == 1
    assert [invoice.workspace_id for invoice in session.query(Invoice).all()] == [healthy.id]
