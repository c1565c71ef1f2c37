"""Turns line item input into invoice rows and keeps derived totals in sync."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from app.core.exceptions import ValidationError
from app.domain.line_items import MonetaryLineItem, compute_totals
from app.models.invoice import Invoice, InvoiceItem
from app.utils.validators import sanitize_text


@dataclass(frozen=True)
class ItemInput:
    description: str
    quantity: Decimal | int | float | str
    unit_price: int
    tax_rate: Decimal | int | float | str
    unit: str = "Unit"
    service_date: date | None = None
    start_time: str | None = None
    end_time: str | None = None
    lesson_id: int | None = None


def build_items(inputs: Iterable[ItemInput]) -> list[InvoiceItem]:
    items: list[InvoiceItem] = []
    for position, data in enumerate(inputs, start=1):
        money = MonetaryLineItem(quantity=data.quantity, unit_price=data.unit_price, tax_rate=data.tax_rate)
        description = sanitize_text(data.description, max_len=500)
        if not description:
            raise ValidationError(f"Item {position} needs a description.")
        items.append(
            InvoiceItem(
                position=position,
                description=description,
                quantity=money.quantity,
                unit=data.unit,
                unit_price=money.unit_price,
                tax_rate=money.tax_rate,
                total=money.net,
                service_date=data.service_date,
                start_time=data.start_time,
                end_time=data.end_time,
                lesson_id=data.lesson_id,
            )
        )
    return items


def apply_totals(invoice: Invoice) -> None:
    """Recompute subtotal, tax and total from the invoice's items."""
    totals = compute_totals(
        MonetaryLineItem(quantity=item.quantity, unit_price=item.unit_price, tax_rate=item.tax_rate)
        for item in invoice.items
    )
    invoice.subtotal = totals.subtotal
    invoice.tax_total = totals.tax_total
    invoice.total = totals.total


def check_dates(invoice_date: date, due_date: date) -> None:
    if due_date < invoice_date:
        raise ValidationError(f"Due date {due_date.isoformat()} lies before invoice date {invoice_date.isoformat()}.")
