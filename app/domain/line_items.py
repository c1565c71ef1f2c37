"""Monetary line item arithmetic.

All amounts are integer minor units (cents). Quantities are decimals with two
places; tax rates are percentages between 0 and 100. Rounding happens per line,
half-up, so the invoice totals are the plain sum of the line amounts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from app.core.exceptions import ValidationError

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal(100)
SECONDS_PER_HOUR = Decimal(3600)


def to_decimal(value: Decimal | int | float | str, field: str) -> Decimal:
    try:
        # str() first so floats like 0.1 do not carry binary noise.
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} is not a number: {value!r}") from exc


def round_minor(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def duration_hours(start: datetime, end: datetime) -> Decimal:
    """Duration between two instants in hours, rounded to two decimals."""
    if end < start:
        raise ValidationError("Lesson end lies before its start.")
    seconds = Decimal(int((end - start).total_seconds()))
    return (seconds / SECONDS_PER_HOUR).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MonetaryLineItem:
    quantity: Decimal
    unit_price: int
    tax_rate: Decimal

    def __post_init__(self) -> None:
        quantity = to_decimal(self.quantity, "quantity").quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        tax_rate = to_decimal(self.tax_rate, "tax_rate")
        if quantity < 0:
            raise ValidationError("quantity must be >= 0.")
        if isinstance(self.unit_price, bool) or not isinstance(self.unit_price, int):
            raise ValidationError("unit_price must be an integer amount of minor units.")
        if self.unit_price < 0:
            raise ValidationError("unit_price must be >= 0.")
        if not 0 <= tax_rate <= 100:
            raise ValidationError("tax_rate must be between 0 and 100.")
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "tax_rate", tax_rate)

    @property
    def net(self) -> int:
        return round_minor(self.quantity * self.unit_price)

    @property
    def tax(self) -> int:
        return round_minor(Decimal(self.net) * self.tax_rate / HUNDRED)

    @property
    def gross(self) -> int:
        return self.net + self.tax


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: int
    tax_total: int
    total: int


def compute_totals(items: Iterable[MonetaryLineItem]) -> InvoiceTotals:
    subtotal = 0
    tax_total = 0
    for item in items:
        subtotal += item.net
        tax_total += item.tax
    return InvoiceTotals(subtotal=subtotal, tax_total=tax_total, total=subtotal + tax_total)
