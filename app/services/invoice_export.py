"""CSV export of invoice sets."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from decimal import Decimal

from app.models.enums import InvoiceStatus
from app.models.invoice import Invoice

CSV_HEADER = ("invoice_number", "customer", "date", "due_date", "total", "status")


def format_minor_units(amount: int) -> str:
    return f"{(Decimal(amount) / 100):.2f}"


def render_invoice_csv(invoices: Iterable[Invoice]) -> str:
    """One row per invoice, comma delimited, header first. Encode as UTF-8 when writing out."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=",", lineterminator="\r\n")
    writer.writerow(CSV_HEADER)
    for invoice in invoices:
        writer.writerow(
            (
                invoice.invoice_number,
                invoice.customer.name if invoice.customer is not None else "",
                invoice.date.isoformat(),
                invoice.due_date.isoformat(),
                format_minor_units(invoice.total),
                InvoiceStatus(invoice.status).value,
            )
        )
    return buffer.getvalue()
