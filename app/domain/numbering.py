"""Invoice number format ``YY/MM/NNNN``."""

from __future__ import annotations

import re
from dataclasses import dataclass

from app.core.exceptions import InvalidNumberFormat, PeriodMismatch, SequenceExhausted, ValidationError

INVOICE_NUMBER_PATTERN = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
MAX_SEQUENCE = 9999


@dataclass(frozen=True, order=True)
class Period:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValidationError(f"month must be between 1 and 12, got {self.month}.")
        if not 1 <= self.year <= 9999:
            raise ValidationError(f"year out of range: {self.year}.")

    @property
    def prefix(self) -> str:
        return f"{self.year % 100:02d}/{self.month:02d}"


@dataclass(frozen=True)
class ParsedInvoiceNumber:
    yy: int
    mm: int
    sequence: int


def format_invoice_number(period: Period, sequence: int) -> str:
    if sequence > MAX_SEQUENCE:
        raise SequenceExhausted(f"Invoice numbers for {period.prefix} are exhausted.")
    return f"{period.prefix}/{sequence:04d}"


def parse_invoice_number(value: str) -> ParsedInvoiceNumber:
    match = INVOICE_NUMBER_PATTERN.match(value or "")
    if match is None:
        raise InvalidNumberFormat(f"Invoice number {value!r} does not match YY/MM/NNNN.")
    yy, mm, sequence = (int(part) for part in match.groups())
    if not 1 <= mm <= 12:
        raise InvalidNumberFormat(f"Invoice number {value!r} has an invalid month.")
    return ParsedInvoiceNumber(yy=yy, mm=mm, sequence=sequence)


def check_period(parsed: ParsedInvoiceNumber, period: Period, raw: str) -> None:
    if parsed.yy != period.year % 100 or parsed.mm != period.month:
        raise PeriodMismatch(f"Invoice number {raw} does not belong to period {period.prefix}.")
