"""Custom exceptions for the invoicing service."""

from __future__ import annotations

from typing import Any


class InvoicingError(Exception):
    """Base exception for the invoicing service."""

    pass


class ValidationError(InvoicingError):
    """Raised when validation fails."""

    pass


class NotFoundError(InvoicingError):
    """Raised when a resource is not found."""

    pass


class ConfigurationError(InvoicingError):
    """Raised when configuration is invalid."""

    pass


class InvalidNumberFormat(ValidationError):
    """Raised when a manual invoice number does not match YY/MM/NNNN."""

    pass


class PeriodMismatch(ValidationError):
    """Raised when the YY/MM of a manual number disagrees with the invoice period."""

    pass


class DuplicateInvoiceNumber(InvoicingError):
    """Raised when an invoice number already exists in the workspace."""

    def __init__(self, invoice_number: str) -> None:
        super().__init__(f"Invoice number {invoice_number} already exists")
        self.invoice_number = invoice_number


class InvoiceLocked(InvoicingError):
    """Raised when a non-draft invoice is edited."""

    pass


class InvalidTransition(InvoicingError):
    """Raised when a disallowed status transition is attempted."""

    def __init__(self, current: str, target: str, reason: str | None = None) -> None:
        message = f"Transition not allowed: {current} -> {target}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.current = current
        self.target = target


class MissingRateError(ValidationError):
    """Raised in strict mode when a lesson has no billable rate."""

    pass


class PartialGenerationFailure(InvoicingError):
    """Raised when some customer groups failed during a generation run."""

    def __init__(self, created_ids: list[int], failures: list[Any]) -> None:
        super().__init__(
            f"{len(failures)} customer group(s) failed, {len(created_ids)} invoice(s) created"
        )
        self.created_ids = created_ids
        self.failures = failures


class LessonAlreadyInvoiced(InvoicingError):
    """Raised when a lesson was claimed by another invoice in the meantime."""

    pass


class SequenceExhausted(InvoicingError):
    """Raised when a period has used every four-digit invoice number."""

    pass
